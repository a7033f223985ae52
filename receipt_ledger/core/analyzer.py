"""
Analysis client: submits a receipt photo to the analysis webhook.

The webhook reads the image with an AI model, appends the resulting row to
the sheet and echoes the extracted fields back. The echo is not shaped
consistently (wrapped in ``data`` or not, a list or a single object, Korean
or English keys), so it goes through ``normalize_analysis``.
"""

import base64
import io
import json
import logging
from typing import Any, Mapping, Optional, Sequence, Tuple

import httpx
from PIL import Image, UnidentifiedImageError

from .errors import AnalysisError
from .models import Receipt, UploadOptions
from .utils import digits_to_amount, text_or_none

logger = logging.getLogger(__name__)

# Extraction rules: field -> candidate keys, localized name first.
FIELD_RULES: Tuple[Tuple[str, Sequence[str]], ...] = (
    ("transaction_date", ("거래일", "date")),
    ("vendor", ("이용지점", "vendor")),
    ("amount", ("금액", "amount")),
    ("category", ("구분", "category")),
    ("card_type", ("카드종류", "cardType")),
    ("billable", ("청구대상여부", "billable")),
    ("memo", ("메모", "memo")),
    ("note", ("비고", "remark", "note")),
    ("image", ("image",)),
    ("id", ("id",)),
)

TEXT_FIELDS = {"transaction_date", "vendor", "category"}


def image_to_data_url(data: bytes) -> str:
    """Encode image bytes as a data URL, using Pillow to detect the MIME type."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            mime = Image.MIME.get(img.format, "application/octet-stream")
    except UnidentifiedImageError as e:
        raise ValueError("Selected file is not a readable image") from e
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime};base64,{encoded}"


def first_present(data: Mapping[str, Any], keys: Sequence[str]) -> Any:
    """Return the first non-empty value among keys, or None."""
    for key in keys:
        value = data.get(key)
        if value:
            return value
    return None


def unwrap_payload(payload: Any) -> Mapping[str, Any]:
    """Reduce the webhook's response to a single field mapping."""
    data = payload
    if isinstance(payload, Mapping):
        wrapped = payload.get("data")
        # an empty list or object under "data" still counts as present
        if wrapped or isinstance(wrapped, (Mapping, list)):
            data = wrapped
    if isinstance(data, list):
        data = data[0] if data else {}
    return data if isinstance(data, Mapping) else {}


def normalize_analysis(payload: Any, fallback_image: Optional[str] = None) -> Receipt:
    """
    Map an analysis response to a Receipt.

    Args:
        payload: Parsed JSON body returned by the webhook
        fallback_image: Locally computed data URL, used if the webhook returns no image

    Returns:
        Receipt with the extracted fields. ``id`` is empty unless the webhook sent one.
    """
    data = unwrap_payload(payload)
    values = {name: first_present(data, keys) for name, keys in FIELD_RULES}

    fields = {}
    for name, value in values.items():
        if name == "amount":
            fields[name] = digits_to_amount(value) if value else 0
        elif name in TEXT_FIELDS or name == "id":
            fields[name] = str(value) if value else ""
        else:
            fields[name] = text_or_none(value)

    fields["image"] = fields["image"] or fallback_image
    return Receipt(**fields)


def _strip_code_fence(text: str) -> str:
    # Some workflow nodes wrap the JSON in a markdown code block
    stripped = text.strip()
    if not stripped.startswith("```"):
        return text
    json_lines = []
    in_code = False
    for line in stripped.split("\n"):
        if line.startswith("```"):
            in_code = not in_code
            continue
        if in_code:
            json_lines.append(line)
    return "\n".join(json_lines)


class AnalysisClient:
    """Client for the analyze-and-save webhook."""

    def __init__(self, url: str, client: httpx.AsyncClient):
        self.url = url
        self.client = client

    async def submit(self, image: bytes, filename: str,
                     options: Optional[UploadOptions] = None) -> Receipt:
        """
        Submit an image for analysis. The webhook also persists the result.

        Args:
            image: Raw image bytes
            filename: Name sent with the image part
            options: Optional card type / billable hints

        Returns:
            The normalized receipt echoed by the webhook
        """
        options = options or UploadOptions()
        image_b64 = image_to_data_url(image)
        mime = image_b64[len("data:"):image_b64.index(";")]

        form = {"imageBase64": image_b64}
        if options.card_type:
            form["cardType"] = options.card_type
        if options.billable:
            form["billable"] = options.billable

        logger.info("Submitting %s (%d bytes) for analysis", filename, len(image))
        try:
            response = await self.client.post(
                self.url,
                data=form,
                files={"image": (filename, image, mime)},
            )
        except httpx.HTTPError as e:
            raise AnalysisError(f"Analysis request failed: {e}") from e

        body = response.text
        if not response.is_success:
            logger.error("Analysis rejected: %s %s", response.status_code, body)
            raise AnalysisError(
                f"Analysis failed: {response.status_code} {response.reason_phrase}\n{body}",
                status=response.status_code,
                body=body,
            )

        try:
            payload = json.loads(_strip_code_fence(body))
        except ValueError as e:
            raise AnalysisError(
                f"Could not parse analysis response: {response.status_code}",
                status=response.status_code,
                body=body,
            ) from e

        receipt = normalize_analysis(payload, fallback_image=image_b64)
        logger.info("Analysis complete: %s %s %s", receipt.transaction_date,
                    receipt.vendor, receipt.amount)
        return receipt
