"""
Spending statistics over a set of receipts.
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from .models import Receipt
from .utils import (BILLABLE, NOT_BILLABLE, CORPORATE_CARD, PERSONAL_CARD,
                    OTHER_CATEGORY)


@dataclass
class Bucket:
    """Total amount and receipt count for one group."""
    total: int = 0
    count: int = 0

    def add(self, amount: int):
        self.total += amount
        self.count += 1


@dataclass
class CardShare(Bucket):
    share: float = 0.0


@dataclass
class CategoryGroup:
    category: str
    total: int
    count: int
    bar_width: float


@dataclass
class Statistics:
    grand_total: int = 0
    count: int = 0
    cards: Dict[str, CardShare] = field(default_factory=dict)
    billable: Dict[str, Bucket] = field(default_factory=dict)
    categories: List[CategoryGroup] = field(default_factory=list)


def card_split(receipts: Iterable[Receipt]) -> Dict[str, CardShare]:
    """Sum amounts for corporate and personal cards, with each card's percentage share."""
    cards = {CORPORATE_CARD: CardShare(), PERSONAL_CARD: CardShare()}
    for r in receipts:
        if r.card_type in cards:
            cards[r.card_type].add(r.amount)

    total = sum(c.total for c in cards.values())
    for c in cards.values():
        c.share = c.total / total * 100 if total > 0 else 0.0
    return cards


def billable_split(receipts: Iterable[Receipt]) -> Dict[str, Bucket]:
    """Sum amounts for billable ("O"), not billable ("X") and unset receipts."""
    buckets = {BILLABLE: Bucket(), NOT_BILLABLE: Bucket(), None: Bucket()}
    for r in receipts:
        key = r.billable if r.billable in (BILLABLE, NOT_BILLABLE) else None
        buckets[key].add(r.amount)
    return buckets


def category_breakdown(receipts: Iterable[Receipt]) -> List[CategoryGroup]:
    """
    Group receipts by category, largest total first.

    Receipts without a category count towards OTHER_CATEGORY. Each group's
    bar width is its total as a percentage of the largest group's total.
    """
    groups: "OrderedDict[str, Bucket]" = OrderedDict()
    for r in receipts:
        cat = r.category or OTHER_CATEGORY
        groups.setdefault(cat, Bucket()).add(r.amount)

    # sorted() is stable, so equal totals keep first-seen order
    ranked = sorted(groups.items(), key=lambda item: item[1].total, reverse=True)
    if not ranked:
        return []

    max_total = ranked[0][1].total
    return [
        CategoryGroup(
            category=cat,
            total=bucket.total,
            count=bucket.count,
            bar_width=bucket.total / max_total * 100 if max_total > 0 else 0.0,
        )
        for cat, bucket in ranked
    ]


def summarize(receipts: Iterable[Receipt]) -> Statistics:
    """Compute every statistic shown on the stats screen."""
    receipts = list(receipts)
    return Statistics(
        grand_total=sum(r.amount for r in receipts),
        count=len(receipts),
        cards=card_split(receipts),
        billable=billable_split(receipts),
        categories=category_breakdown(receipts),
    )
