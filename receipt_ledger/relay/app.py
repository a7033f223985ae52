"""
FastAPI app for the contact form relay.
"""

import datetime as dt
import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from receipt_ledger.core.errors import ConfigError, ReceiptLedgerError
from receipt_ledger.core.settings import Settings
from .notion import FormSubmission, create_page

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None,
               transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
    """
    Build the relay app.

    Args:
        settings: Settings holding the Notion key and database id (read from env if None)
        transport: Optional httpx transport, used by tests to fake Notion
    """
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with httpx.AsyncClient(transport=transport, timeout=settings.http_timeout) as client:
            app.state.client = client
            yield

    app = FastAPI(title="Contact Form Relay", lifespan=lifespan)

    @app.get("/")
    def health():
        return {
            "status": "ok",
            "message": "Contact Form API is running",
            "timestamp": dt.datetime.now(dt.timezone.utc).isoformat(),
        }

    @app.post("/")
    async def submit(request: Request):
        try:
            data = json.loads(await request.body())
            form = FormSubmission.model_validate(data)
        except (ValueError, ValidationError) as e:
            logger.warning("Rejected form submission: %s", e)
            return JSONResponse({"status": "error", "message": str(e)}, status_code=400)

        logger.info("Received form submission from %s", form.name)
        try:
            page = await create_page(
                request.app.state.client,
                settings.require("notion_api_key"),
                settings.require("notion_database_id"),
                form,
            )
        except ConfigError as e:
            logger.error("Relay is not configured: %s", e)
            return JSONResponse({"status": "error", "message": str(e)}, status_code=500)
        except (ReceiptLedgerError, httpx.HTTPError) as e:
            logger.error("Error processing form submission: %s", e)
            return JSONResponse({"status": "error", "message": str(e)}, status_code=502)

        return {
            "status": "success",
            "message": "Contact form submitted successfully",
            "notionPageId": page.get("id"),
        }

    return app
