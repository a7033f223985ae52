"""
Notion API client for the contact form relay.
"""

import logging
from typing import Dict, Optional

import httpx
from pydantic import BaseModel

from receipt_ledger.core.errors import RemoteError
from receipt_ledger.core.settings import NOTION_API_VERSION

logger = logging.getLogger(__name__)

NOTION_PAGES_URL = "https://api.notion.com/v1/pages"
NEW_STATUS = "신규"


class NotionError(RemoteError):
    """Notion refused to create the page."""


class FormSubmission(BaseModel):
    name: str
    email: Optional[str] = None
    company: str = ""
    phone: Optional[str] = None
    position: str = ""
    message: str = ""
    timestamp: Optional[str] = None


def _rich_text(content: str) -> Dict:
    return {"rich_text": [{"text": {"content": content}}]}


def build_page_payload(form: FormSubmission, database_id: str) -> Dict:
    """Map a form submission onto the contact database's properties."""
    properties = {
        "성함": {"title": [{"text": {"content": form.name}}]},
        "이메일": {"email": form.email},
        "회사명": _rich_text(form.company),
        "전화번호": {"phone_number": form.phone},
        "직함": _rich_text(form.position),
        "문의내용": _rich_text(form.message),
        "상태": {"select": {"name": NEW_STATUS}},
    }
    if form.timestamp:
        properties["접수일시"] = {"date": {"start": form.timestamp}}
    return {"parent": {"database_id": database_id}, "properties": properties}


async def create_page(client: httpx.AsyncClient, api_key: str, database_id: str,
                      form: FormSubmission) -> Dict:
    """
    Create a page in the contact database.

    Returns:
        Notion's page object (has ``id`` and ``url``)

    Raises:
        NotionError: Notion answered with anything other than 200
    """
    response = await client.post(
        NOTION_PAGES_URL,
        json=build_page_payload(form, database_id),
        headers={
            "Authorization": f"Bearer {api_key}",
            "Notion-Version": NOTION_API_VERSION,
        },
    )
    logger.info("Notion API response code: %s", response.status_code)
    if response.status_code != 200:
        logger.error("Notion API response body: %s", response.text)
        raise NotionError(f"Notion API Error: {response.text}",
                          status=response.status_code, body=response.text)
    return response.json()
