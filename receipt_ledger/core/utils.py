"""
Utility functions and constants for receipt handling.
"""

import hashlib
import math
import re
from typing import Any, Optional

# File type constants
IMAGE_EXTS = {".png", ".jpg", ".jpeg", ".heic", ".bmp", ".webp", ".gif"}

# Card type labels as stored in the sheet
CORPORATE_CARD = "법인카드"
PERSONAL_CARD = "개인카드"
CARD_TYPES = (CORPORATE_CARD, PERSONAL_CARD)

# Billable flag values
BILLABLE = "O"
NOT_BILLABLE = "X"
BILLABLE_VALUES = (BILLABLE, NOT_BILLABLE)

# Category filter sentinel and the bucket for receipts without a category
ALL_CATEGORIES = "전체"
OTHER_CATEGORY = "기타"

NON_DIGITS = re.compile(r"[^0-9]")


def coerce_amount(value: Any) -> int:
    """Coerce a numeric cell or field value to a non-negative whole amount."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if isinstance(value, float) and not math.isfinite(value):
        return 0
    return max(int(value), 0)


def digits_to_amount(value: Any) -> int:
    """Strip every non-digit character and read what is left as an amount.

    Handles values like "₩12,000" or "12000원". Numbers are taken as they
    are, so 12000.0 stays 12000.
    """
    if value is None:
        return 0
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return coerce_amount(value)
    digits = NON_DIGITS.sub("", str(value))
    return int(digits) if digits else 0


def text_or_none(value: Any) -> Optional[str]:
    """Return value as a string, or None when it is empty."""
    if value is None or value == "":
        return None
    return str(value)


def compute_receipt_fingerprint(date: Optional[str], vendor: Optional[str], amount: Optional[int]) -> str:
    """Create a fingerprint for duplicate detection based on date, vendor, and amount."""
    parts = [
        (date or "").strip(),
        (vendor or "").strip().lower(),
        str(amount) if amount is not None else ""
    ]
    fingerprint_str = "|".join(parts)
    return hashlib.sha256(fingerprint_str.encode()).hexdigest()


def money_fmt(v: Optional[int]) -> str:
    """Format amount as won."""
    return f"₩{v:,}" if v is not None else ""


def parse_amount_input(value: str) -> int:
    """Read a typed amount: blank is 0, leading digits are kept ("012" -> 12)."""
    m = re.match(r"\s*[+-]?\d+", value or "")
    return max(int(m.group(0)), 0) if m else 0
