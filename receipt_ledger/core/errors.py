"""
Exception types raised by the receipt ledger adapters and controller.
"""

from typing import Optional


class ReceiptLedgerError(Exception):
    """Base class for receipt ledger errors."""


class ConfigError(ReceiptLedgerError):
    """A required setting is missing."""


class BusyError(ReceiptLedgerError):
    """Another mutation is still outstanding."""


class RemoteError(ReceiptLedgerError):
    """A remote endpoint rejected a request or could not be reached."""

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class SourceError(RemoteError):
    """The record source could not be fetched."""


class MutationError(RemoteError):
    """The mutation webhook rejected an update or delete."""


class AnalysisError(RemoteError):
    """The analysis webhook failed or returned an unreadable response."""
