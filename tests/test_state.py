"""Tests for the receipt book state controller."""

import asyncio
from dataclasses import replace

import httpx
import pytest

from receipt_ledger.core.errors import BusyError, MutationError, SourceError
from receipt_ledger.core.models import Receipt
from receipt_ledger.core.mutations import MutationClient
from receipt_ledger.core.state import (ReceiptBook, SAMPLE_RECEIPTS, EMPTY_SHEET_MESSAGE,
                                       LOAD_FAILED_MESSAGE)
from receipt_ledger.core.utils import ALL_CATEGORIES

from conftest import Recorder


class FakeSource:
    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    async def fetch(self):
        self.calls += 1
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return [replace(r) for r in result]


RECEIPTS = [
    Receipt(id="r1", transaction_date="2024-01-10", category="식대", vendor="맥도날드", amount=12000),
    Receipt(id="r2", transaction_date="2024-01-11", category="주차료", vendor="주차장", amount=3000),
    Receipt(id="r3", transaction_date="2024-01-12", category="식대", vendor="김밥천국", amount=8000),
    Receipt(id="r4", transaction_date="2024-01-13", category="", vendor="다이소", amount=2000),
]


def run_with_book(source, recorder, action):
    """Run action(book) inside an event loop with a mocked webhook."""
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as client:
            book = ReceiptBook(source, MutationClient("https://hooks.example.com/w", client))
            return book, await action(book)
    return asyncio.run(go())


def loaded(action=None, recorder=None, receipts=RECEIPTS):
    recorder = recorder or Recorder(httpx.Response(200))

    async def do(book):
        await book.load()
        if action is not None:
            return await action(book)
    return run_with_book(FakeSource(receipts), recorder, do)


class TestLoad:

    def test_load_replaces_state(self):
        book, _ = loaded()
        assert [r.id for r in book.receipts] == ["r1", "r2", "r3", "r4"]
        assert book.notice is None
        assert book.loading is False

    def test_empty_sheet_shows_samples(self):
        book, _ = loaded(receipts=[])
        assert [r.id for r in book.receipts] == [r.id for r in SAMPLE_RECEIPTS]
        assert book.notice.message == EMPTY_SHEET_MESSAGE
        assert book.notice.fatal is False
        assert book.loading is False

    def test_fetch_failure_sets_fatal_notice(self):
        async def do(book):
            await book.load()
        book, _ = run_with_book(FakeSource(SourceError("down")), Recorder(httpx.Response(200)), do)
        assert book.receipts == []
        assert book.notice.message == LOAD_FAILED_MESSAGE
        assert book.notice.fatal is True
        assert book.loading is False

    def test_failed_reload_keeps_previous_receipts(self):
        async def do(book):
            await book.load()
            await book.load()
        source = FakeSource(RECEIPTS, SourceError("down"))
        book, _ = run_with_book(source, Recorder(httpx.Response(200)), do)
        assert len(book.receipts) == 4
        assert book.notice.fatal is True

    def test_repeated_ids_keep_first(self):
        dupes = RECEIPTS + [Receipt(id="r1", vendor="other", amount=1)]
        book, _ = loaded(receipts=dupes)
        assert [r.id for r in book.receipts] == ["r1", "r2", "r3", "r4"]
        assert book.get("r1").vendor == "맥도날드"

    def test_empty_ids_are_not_admitted(self):
        book, _ = loaded(receipts=[Receipt(id=""), RECEIPTS[0]])
        assert [r.id for r in book.receipts] == ["r1"]


class TestFilter:

    def test_all_returns_everything_in_order(self):
        book, _ = loaded()
        assert [r.id for r in book.filtered_records()] == ["r1", "r2", "r3", "r4"]

    def test_category_subset(self):
        book, _ = loaded()
        book.select_category("식대")
        view = book.filtered_records()
        assert [r.id for r in view] == ["r1", "r3"]
        # restartable
        assert [r.id for r in view] == ["r1", "r3"]
        assert len(view) == 2

    def test_unknown_category_is_empty(self):
        book, _ = loaded()
        book.select_category("숙박비")
        assert list(book.filtered_records()) == []

    def test_chips_in_first_seen_order(self):
        book, _ = loaded()
        assert book.category_chips() == [ALL_CATEGORIES, "식대", "주차료"]

    def test_counts(self):
        book, _ = loaded()
        assert book.category_counts() == {ALL_CATEGORIES: 4, "식대": 2, "주차료": 1}


class TestSave:

    def test_save_replaces_record(self):
        async def edit(book):
            return await book.save(replace(book.get("r2"), amount=3500, memo="야간"))
        book, _ = loaded(edit)
        assert book.get("r2").amount == 3500
        assert book.get("r2").memo == "야간"
        ids = [r.id for r in book.filtered_records()]
        assert ids == ["r1", "r2", "r3", "r4"]
        assert len(set(ids)) == len(ids)

    def test_failed_save_leaves_state_untouched(self):
        recorder = Recorder(httpx.Response(500, text="db locked"))
        before = {}

        async def edit(book):
            before["r2"] = replace(book.get("r2"))
            before["all"] = list(book.receipts)
            with pytest.raises(MutationError) as exc:
                await book.save(replace(book.get("r2"), amount=1))
            return exc.value
        book, error = loaded(edit, recorder)
        assert "500" in str(error)
        assert book.get("r2") == before["r2"]
        assert book.receipts == before["all"]
        assert book.notice is not None
        assert book.notice.fatal is True
        assert book.busy is False

    def test_save_updates_selection(self):
        async def edit(book):
            book.select("r1")
            await book.save(replace(book.get("r1"), vendor="맥도날드 송파점"))
        book, _ = loaded(edit)
        assert book.selected.vendor == "맥도날드 송파점"

    def test_clear_selection(self):
        book, _ = loaded()
        book.select("r2")
        book.clear_selection()
        assert book.selected is None
        assert book.get("r2").vendor == "주차장"

    def test_save_requires_id(self):
        async def edit(book):
            with pytest.raises(ValueError):
                await book.save(Receipt(id=""))
        loaded(edit)

    def test_busy_guard(self):
        async def edit(book):
            book.busy = True
            with pytest.raises(BusyError):
                await book.save(book.get("r1"))
        loaded(edit)


class TestRemove:

    def test_remove_drops_record(self):
        async def delete(book):
            book.select("r3")
            return await book.remove("r3")
        book, result = loaded(delete)
        assert result is True
        assert "r3" not in [r.id for r in book.filtered_records()]
        assert book.selected is None

    def test_failed_remove_keeps_record(self):
        recorder = Recorder(httpx.Response(503, text="busy"))

        async def delete(book):
            with pytest.raises(MutationError):
                await book.remove("r3")
        book, _ = loaded(delete, recorder)
        assert book.get("r3").vendor == "김밥천국"
        assert len(book.receipts) == 4
        assert book.notice.fatal is True


class TestIngestAnalyzed:

    def test_reloads_from_source(self):
        new = Receipt(id="r5", vendor="스타벅스", amount=5500, category="커피이용")

        async def ingest(book):
            await book.load()
            await book.ingest_analyzed(Receipt(id="", vendor="스타벅스", amount=5500))
        source = FakeSource(RECEIPTS, RECEIPTS + [new])
        book, _ = run_with_book(source, Recorder(httpx.Response(200)), ingest)
        assert source.calls == 2
        assert book.get("r5").vendor == "스타벅스"


class TestStatistics:

    def test_totals_match_all_amounts(self):
        book, _ = loaded()
        stats = book.statistics()
        assert stats.grand_total == sum(r.amount for r in RECEIPTS)
        assert sum(g.total for g in stats.categories) == stats.grand_total
