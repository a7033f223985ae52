"""
Record source: reads receipts from the Google Sheets query endpoint.

The gviz endpoint answers with JSON wrapped in a JavaScript callback:

    /*O_o*/
    google.visualization.Query.setResponse({...});

Each row is ``{"c": [cell, ...]}`` where a cell is ``null`` or
``{"v": raw_value, "f": formatted_value}``. Columns are positional:

    0 id | 1 image | 2 거래일 | 3 청구대상여부 | 4 구분 | 5 이용지점
    6 금액 | 7 카드종류 | 8 메모 | 9 비고 | 10 url
"""

import csv
import io
import json
import logging
import re
from typing import Any, List, Optional, Sequence

import httpx

from .errors import SourceError
from .models import Receipt
from .utils import coerce_amount, text_or_none

logger = logging.getLogger(__name__)

GVIZ_URL = "https://docs.google.com/spreadsheets/d/{sheet_id}/gviz/tq"
CSV_EXPORT_URL = "https://docs.google.com/spreadsheets/d/{sheet_id}/export"

# Length of "/*O_o*/\ngoogle.visualization.Query.setResponse(" and ");"
GVIZ_PREFIX_LEN = 47
GVIZ_SUFFIX_LEN = 2

COLUMN_COUNT = 11


def strip_gviz_wrapper(text: str) -> str:
    """Remove the fixed callback prefix and suffix around the JSON body."""
    return text[GVIZ_PREFIX_LEN:-GVIZ_SUFFIX_LEN]


def _cell_parts(cell: Any):
    """Return (raw, formatted) for a gviz cell or a bare value."""
    if isinstance(cell, dict):
        return cell.get("v"), cell.get("f")
    return cell, None


def _is_absent(cell: Any) -> bool:
    raw, formatted = _cell_parts(cell)
    return raw in (None, "") and formatted in (None, "")


def _text(value: Any) -> Optional[str]:
    # Whole-number cells come back as floats (1.0); keep them readable
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return text_or_none(value)


def row_to_receipt(cells: Sequence[Any]) -> Optional[Receipt]:
    """Map one row of cells to a Receipt, or None if the row should be skipped."""
    if not cells or all(_is_absent(cell) for cell in cells):
        return None

    def raw(i: int) -> Any:
        return _cell_parts(cells[i])[0] if i < len(cells) else None

    def formatted(i: int) -> Any:
        return _cell_parts(cells[i])[1] if i < len(cells) else None

    receipt = Receipt(
        id=_text(raw(0)) or "",
        image=_text(raw(1)),
        transaction_date=_text(formatted(2)) or _text(raw(2)) or "",
        billable=_text(raw(3)),
        category=_text(raw(4)) or "",
        vendor=_text(raw(5)) or "",
        amount=raw(6),
        card_type=_text(raw(7)),
        memo=_text(raw(8)),
        note=_text(raw(9)),
        url=_text(raw(10)),
    )
    if not receipt.id:
        return None
    return receipt


def rows_to_receipts(rows: Sequence[Sequence[Any]]) -> List[Receipt]:
    """Convert table rows to receipts, dropping empty rows and rows without an id."""
    receipts = []
    for cells in rows:
        receipt = row_to_receipt(cells)
        if receipt is not None:
            receipts.append(receipt)
    return receipts


def parse_receipts(text: str) -> List[Receipt]:
    """
    Parse a gviz response body into receipts.

    Any failure while parsing the payload yields an empty list; the error is
    logged, never raised.
    """
    try:
        data = json.loads(strip_gviz_wrapper(text))
        rows = data["table"]["rows"]
        return rows_to_receipts([row.get("c") for row in rows])
    except Exception:
        logger.exception("Failed to parse receipts from sheet response")
        return []


def parse_csv_export(text: str) -> List[Receipt]:
    """
    Parse the sheet's CSV export into receipts.

    Rows shorter than the header are skipped, rows without an id get a
    positional one and rows without a vendor are dropped.
    """
    try:
        lines = list(csv.reader(io.StringIO(text)))
    except csv.Error:
        logger.exception("Failed to parse receipts from CSV export")
        return []
    if not lines:
        return []

    header = lines[0]
    receipts = []
    for i, values in enumerate(lines[1:], start=1):
        if len(values) < len(header) or len(values) < COLUMN_COUNT:
            continue
        cleaned = re.sub(r"[^0-9.\-]", "", values[6])
        try:
            amount = float(cleaned) if cleaned else 0
        except ValueError:
            amount = 0
        receipt = Receipt(
            id=values[0] or f"receipt-{i}",
            image=text_or_none(values[1]),
            transaction_date=values[2],
            billable=text_or_none(values[3]),
            category=values[4],
            vendor=values[5],
            amount=coerce_amount(amount),
            card_type=text_or_none(values[7]),
            memo=text_or_none(values[8]),
            note=text_or_none(values[9]),
            url=text_or_none(values[10]),
        )
        if receipt.id and receipt.vendor:
            receipts.append(receipt)
    return receipts


class SheetSource:
    """Read-only access to the receipts sheet."""

    def __init__(self, sheet_id: str, sheet_name: str, client: httpx.AsyncClient):
        self.sheet_id = sheet_id
        self.sheet_name = sheet_name
        self.client = client

    @property
    def query_url(self) -> str:
        return GVIZ_URL.format(sheet_id=self.sheet_id)

    async def _get(self, url: str, params: dict) -> str:
        logger.debug("GET %s %s", url, params)
        try:
            response = await self.client.get(url, params=params)
        except httpx.HTTPError as e:
            raise SourceError(f"Could not reach sheet {self.sheet_id}: {e}") from e
        if not response.is_success:
            raise SourceError(
                f"Sheet query failed: {response.status_code}",
                status=response.status_code,
                body=response.text,
            )
        return response.text

    async def fetch(self) -> List[Receipt]:
        """Fetch all receipts through the gviz JSON endpoint."""
        text = await self._get(self.query_url, {"tqx": "out:json", "sheet": self.sheet_name})
        receipts = parse_receipts(text)
        logger.info("Fetched %d receipt(s) from sheet %s", len(receipts), self.sheet_name)
        return receipts

    async def fetch_csv(self, gid: int = 0) -> List[Receipt]:
        """Fetch receipts through the CSV export instead."""
        url = CSV_EXPORT_URL.format(sheet_id=self.sheet_id)
        text = await self._get(url, {"format": "csv", "gid": gid})
        return parse_csv_export(text)
