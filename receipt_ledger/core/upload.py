"""
Upload flow: choose an image, pick hints, submit for analysis.

The flow is the only owner of the staging area. Staged data survives an
interruption and is cleared on complete, cancel or reset. A failed
submission keeps the image and hints so the user can retry.
"""

import logging
from pathlib import Path
from typing import Optional

from .analyzer import AnalysisClient
from .errors import ReceiptLedgerError
from .models import PendingUpload, Receipt, UploadOptions
from .staging import StagingArea
from .state import ReceiptBook
from .utils import IMAGE_EXTS

logger = logging.getLogger(__name__)

ANALYSIS_FAILED_MESSAGE = "영수증 분석에 실패했습니다. 다시 시도해주세요."
NO_IMAGE_MESSAGE = "이미지를 먼저 선택해주세요."


class UploadFlow:
    def __init__(self, analyzer: AnalysisClient, staging: StagingArea, book: ReceiptBook):
        self.analyzer = analyzer
        self.staging = staging
        self.book = book
        self.pending: Optional[PendingUpload] = None
        self.result: Optional[Receipt] = None
        self.error: Optional[str] = None
        self.analyzing = False

    def choose_image(self, data: bytes, filename: str) -> PendingUpload:
        """Select an image, keeping hints already picked."""
        options = self.pending.options if self.pending else UploadOptions()
        self.pending = PendingUpload(image=data, filename=filename, options=options)
        self.error = None
        self.result = None
        self.staging.stage(self.pending)
        return self.pending

    def choose_file(self, path: Path) -> PendingUpload:
        if path.suffix.lower() not in IMAGE_EXTS:
            raise ValueError(f"Not an image file: {path.name}")
        return self.choose_image(path.read_bytes(), path.name)

    def _hints_changed(self):
        if self.pending is not None:
            opts = self.pending.options
            self.staging.update_hints(opts.card_type, opts.billable)

    def set_card_type(self, card_type: Optional[str]):
        if self.pending is None:
            raise ValueError(NO_IMAGE_MESSAGE)
        self.pending.options.card_type = card_type or None
        self._hints_changed()

    def set_billable(self, billable: Optional[str]):
        if self.pending is None:
            raise ValueError(NO_IMAGE_MESSAGE)
        self.pending.options.billable = billable or None
        self._hints_changed()

    def resume(self) -> Optional[PendingUpload]:
        """Restore an upload staged before an interruption."""
        self.pending = self.staging.resume()
        if self.pending is not None:
            logger.info("Resumed staged upload %s", self.pending.filename)
        return self.pending

    async def submit(self) -> Receipt:
        """
        Send the pending image for analysis and reload the book on success.

        Raises:
            ValueError: No image has been chosen.
            AnalysisError: The webhook failed; the pending upload is kept for retry.
        """
        if self.pending is None:
            self.error = NO_IMAGE_MESSAGE
            raise ValueError(NO_IMAGE_MESSAGE)

        self.analyzing = True
        self.error = None
        try:
            self.result = await self.analyzer.submit(
                self.pending.image, self.pending.filename, self.pending.options
            )
        except (ReceiptLedgerError, ValueError):
            logger.exception("Analysis failed for %s", self.pending.filename)
            self.error = ANALYSIS_FAILED_MESSAGE
            raise
        finally:
            self.analyzing = False

        await self.book.ingest_analyzed(self.result)
        return self.result

    def _clear(self):
        self.pending = None
        self.result = None
        self.error = None
        self.staging.clear()

    def complete(self):
        """Finish the flow after a successful analysis."""
        self._clear()

    def cancel(self):
        """Abandon the flow."""
        self._clear()

    def reset(self):
        """Start over within the flow (choose a different image)."""
        self._clear()
