"""
Receipt Ledger

Browse, edit and scan expense receipts kept in a Google Sheet, with a
small relay that forwards contact form submissions to Notion.
"""

__version__ = "1.0.0"
__author__ = "Receipt Ledger Contributors"

from receipt_ledger.core.models import Receipt

__all__ = ["Receipt"]
