"""
Application state: the loaded receipts, the category filter and the
selection, plus every read and write that goes through the remote adapters.
"""

import logging
from contextlib import contextmanager
from dataclasses import replace
from typing import Dict, Iterator, List, Optional

from .errors import BusyError, RemoteError
from .models import Notice, Receipt
from .stats import Statistics, summarize
from .utils import ALL_CATEGORIES, CORPORATE_CARD, PERSONAL_CARD, BILLABLE, NOT_BILLABLE

logger = logging.getLogger(__name__)

EMPTY_SHEET_MESSAGE = "스프레드시트에 데이터가 없습니다. 샘플 데이터를 표시합니다."
LOAD_FAILED_MESSAGE = "데이터를 불러오는데 실패했습니다."
SAVE_FAILED_MESSAGE = "영수증 저장에 실패했습니다."
DELETE_FAILED_MESSAGE = "영수증 삭제에 실패했습니다."

# Shown when the sheet is reachable but has no rows yet
SAMPLE_RECEIPTS = (
    Receipt(id="sample-1", transaction_date="2024-01-10", vendor="맥도날드 송파점",
            amount=12000, category="식사", card_type=CORPORATE_CARD,
            billable=BILLABLE, memo="팀 점심 식사"),
    Receipt(id="sample-2", transaction_date="2024-01-09", vendor="이마트 강동점",
            amount=45000, category="마트", card_type=PERSONAL_CARD,
            billable=NOT_BILLABLE, memo="식료품 구매"),
    Receipt(id="sample-3", transaction_date="2024-01-08", vendor="올리브영 강남점",
            amount=32000, category="화장품", card_type=PERSONAL_CARD,
            billable=NOT_BILLABLE),
)


class ReceiptView:
    """Live, re-iterable view of the receipts matching a category."""

    def __init__(self, book: "ReceiptBook", category: str):
        self.book = book
        self.category = category

    def __iter__(self) -> Iterator[Receipt]:
        if self.category == ALL_CATEGORIES:
            return iter(list(self.book.receipts))
        return (r for r in list(self.book.receipts) if r.category == self.category)

    def __len__(self) -> int:
        return sum(1 for _ in self)


class ReceiptBook:
    """
    Owns the in-memory receipts for one session.

    The remote sheet is the system of record. Local state is replaced
    wholesale on load and patched only after a mutation is confirmed.
    """

    def __init__(self, source, mutations):
        """
        Args:
            source: Object with an async ``fetch()`` returning receipts (SheetSource)
            mutations: MutationClient used for updates and deletes
        """
        self.source = source
        self.mutations = mutations
        self.receipts: List[Receipt] = []
        self.selected_category = ALL_CATEGORIES
        self.selected: Optional[Receipt] = None
        self.loading = False
        self.busy = False
        self.notice: Optional[Notice] = None

    async def load(self) -> List[Receipt]:
        """Replace local state with a fresh fetch from the source."""
        self.loading = True
        self.notice = None
        try:
            receipts = await self.source.fetch()
            if not receipts:
                self.receipts = [replace(r) for r in SAMPLE_RECEIPTS]
                self.notice = Notice(EMPTY_SHEET_MESSAGE, fatal=False)
            else:
                self.receipts = self._unique(receipts)
        except Exception:
            logger.exception("Failed to load receipts")
            self.notice = Notice(LOAD_FAILED_MESSAGE, fatal=True)
        finally:
            self.loading = False
        return self.receipts

    @staticmethod
    def _unique(receipts: List[Receipt]) -> List[Receipt]:
        seen = set()
        unique = []
        for r in receipts:
            if not r.id:
                continue
            if r.id in seen:
                logger.warning("Dropping receipt with repeated id %s", r.id)
                continue
            seen.add(r.id)
            unique.append(r)
        return unique

    def get(self, receipt_id: str) -> Receipt:
        for r in self.receipts:
            if r.id == receipt_id:
                return r
        raise KeyError(receipt_id)

    def select(self, receipt_id: str) -> Receipt:
        """Open a receipt for detail editing."""
        self.selected = self.get(receipt_id)
        return self.selected

    def clear_selection(self):
        self.selected = None

    def select_category(self, name: str):
        self.selected_category = name

    def filtered_records(self) -> ReceiptView:
        return ReceiptView(self, self.selected_category)

    def category_chips(self) -> List[str]:
        """Filter options: the sentinel, then categories in first-seen order."""
        chips = [ALL_CATEGORIES]
        for r in self.receipts:
            if r.category and r.category not in chips:
                chips.append(r.category)
        return chips

    def category_counts(self) -> Dict[str, int]:
        return {chip: len(ReceiptView(self, chip)) for chip in self.category_chips()}

    def statistics(self) -> Statistics:
        return summarize(self.receipts)

    @contextmanager
    def _mutation(self):
        if self.busy:
            raise BusyError("Another change is still being sent")
        self.busy = True
        try:
            yield
        finally:
            self.busy = False

    async def save(self, updated: Receipt) -> Receipt:
        """
        Send an edited receipt and apply it locally once the webhook accepts it.

        Raises:
            MutationError: The webhook rejected the update; local state is unchanged.
        """
        if not updated.id:
            raise ValueError("Cannot save a receipt without an id")
        with self._mutation():
            try:
                await self.mutations.submit_update(updated)
            except RemoteError as e:
                self.notice = Notice(f"{SAVE_FAILED_MESSAGE} ({e})", fatal=True)
                raise
            self.receipts = [updated if r.id == updated.id else r for r in self.receipts]
            if self.selected is not None and self.selected.id == updated.id:
                self.selected = updated
        return updated

    async def remove(self, receipt_id: str) -> bool:
        """
        Delete a receipt remotely, then drop it locally.

        Raises:
            MutationError: The webhook rejected the delete; local state is unchanged.
        """
        with self._mutation():
            try:
                await self.mutations.submit_delete(receipt_id)
            except RemoteError as e:
                self.notice = Notice(f"{DELETE_FAILED_MESSAGE} ({e})", fatal=True)
                raise
            self.receipts = [r for r in self.receipts if r.id != receipt_id]
            if self.selected is not None and self.selected.id == receipt_id:
                self.selected = None
        return True

    async def ingest_analyzed(self, record: Receipt) -> List[Receipt]:
        """Reload after an analysis; the webhook assigns the new receipt's id."""
        logger.info("Reloading after analysis of %s", record.vendor or "receipt")
        return await self.load()
