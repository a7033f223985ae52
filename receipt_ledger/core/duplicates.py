"""
Flags receipts that look like the same expense recorded twice.

Submissions carry no idempotency key, so a flaky connection can make the
webhook append the same receipt more than once. Suspects are only reported;
nothing is merged or deleted.
"""

from typing import Dict, Iterable, List

from .models import Receipt
from .utils import compute_receipt_fingerprint


def find_possible_duplicates(receipts: Iterable[Receipt]) -> List[List[Receipt]]:
    """
    Group receipts sharing the same date, vendor, and amount.

    Returns:
        One list per fingerprint seen more than once, in first-seen order.
        Receipts with no vendor and no amount are never flagged.
    """
    groups: Dict[str, List[Receipt]] = {}
    for r in receipts:
        if not r.vendor and not r.amount:
            continue
        fingerprint = compute_receipt_fingerprint(r.transaction_date, r.vendor, r.amount)
        groups.setdefault(fingerprint, []).append(r)
    return [group for group in groups.values() if len(group) > 1]
