"""
Mutation client: sends update/delete intents to the workflow webhook.

Each call is a single POST of ``{"action": ..., "data": ...}``. There are no
retries and no idempotency key, so callers must not resubmit automatically.
"""

import logging

import httpx

from .errors import MutationError
from .models import Receipt

logger = logging.getLogger(__name__)


class MutationClient:
    """Client for the update/delete webhook."""

    def __init__(self, url: str, client: httpx.AsyncClient):
        self.url = url
        self.client = client

    async def _post(self, action: str, data: dict) -> bool:
        logger.debug("POST %s action=%s id=%s", self.url, action, data.get("id"))
        try:
            response = await self.client.post(self.url, json={"action": action, "data": data})
        except httpx.HTTPError as e:
            raise MutationError(f"{action} failed: {e}") from e

        if not response.is_success:
            body = response.text
            logger.error("%s of %s rejected: %s %s", action, data.get("id"), response.status_code, body)
            raise MutationError(
                f"{action} failed: {response.status_code} {body}",
                status=response.status_code,
                body=body,
            )

        logger.info("%s of %s accepted", action, data.get("id"))
        return True

    async def submit_update(self, receipt: Receipt) -> bool:
        """Send the full record as an update."""
        return await self._post("update", receipt.to_wire())

    async def submit_delete(self, receipt_id: str) -> bool:
        """Ask the webhook to delete a record by id."""
        return await self._post("delete", {"id": receipt_id})
