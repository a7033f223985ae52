"""
Data models for receipt records.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from .utils import coerce_amount, digits_to_amount, text_or_none

# Python field name -> wire name used by the sheet and the webhooks.
# Order matches the sheet's column order.
WIRE_FIELDS = {
    "id": "id",
    "image": "image",
    "transaction_date": "거래일",
    "billable": "청구대상여부",
    "category": "구분",
    "vendor": "이용지점",
    "amount": "금액",
    "card_type": "카드종류",
    "memo": "메모",
    "note": "비고",
    "url": "url",
}


@dataclass
class Receipt:
    """Represents a single expense receipt."""
    id: str
    transaction_date: str = ""
    category: str = ""
    vendor: str = ""
    amount: int = 0
    image: Optional[str] = None
    billable: Optional[str] = None
    card_type: Optional[str] = None
    memo: Optional[str] = None
    note: Optional[str] = None
    url: Optional[str] = None

    def __post_init__(self):
        self.amount = coerce_amount(self.amount)

    def to_wire(self) -> Dict[str, Any]:
        """Convert to the payload shape the webhooks expect."""
        return {wire: getattr(self, name) for name, wire in WIRE_FIELDS.items()}

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "Receipt":
        """Build a receipt from a wire-named mapping."""
        amount = data.get(WIRE_FIELDS["amount"])
        if isinstance(amount, str):
            amount = digits_to_amount(amount)
        return cls(
            id=str(data.get("id") or ""),
            transaction_date=str(data.get(WIRE_FIELDS["transaction_date"]) or ""),
            category=str(data.get(WIRE_FIELDS["category"]) or ""),
            vendor=str(data.get(WIRE_FIELDS["vendor"]) or ""),
            amount=amount,
            image=text_or_none(data.get("image")),
            billable=text_or_none(data.get(WIRE_FIELDS["billable"])),
            card_type=text_or_none(data.get(WIRE_FIELDS["card_type"])),
            memo=text_or_none(data.get(WIRE_FIELDS["memo"])),
            note=text_or_none(data.get(WIRE_FIELDS["note"])),
            url=text_or_none(data.get("url")),
        )


@dataclass
class UploadOptions:
    """Optional hints that bias the remote analysis."""
    card_type: Optional[str] = None
    billable: Optional[str] = None


@dataclass
class PendingUpload:
    """An image chosen for analysis, plus the hints picked for it."""
    image: bytes
    filename: str
    options: UploadOptions = field(default_factory=UploadOptions)


@dataclass
class Notice:
    """User-visible status message. Fatal notices replace content."""
    message: str
    fatal: bool = False
