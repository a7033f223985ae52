"""
Runtime configuration from environment variables (and an optional .env file).
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigError

DEFAULT_SHEET_NAME = "Receipts"
DEFAULT_STAGING_DB = Path.home() / ".receipt-ledger" / "staging.db"
DEFAULT_HTTP_TIMEOUT = 30.0
NOTION_API_VERSION = "2022-06-28"


@dataclass
class Settings:
    sheet_id: Optional[str] = None
    sheet_name: str = DEFAULT_SHEET_NAME
    webhook_url: Optional[str] = None
    analysis_url: Optional[str] = None
    staging_db: Path = DEFAULT_STAGING_DB
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    notion_api_key: Optional[str] = None
    notion_database_id: Optional[str] = None

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "Settings":
        """Read settings from the environment, loading .env first if present."""
        load_dotenv(env_file)
        timeout = os.getenv("RECEIPT_LEDGER_HTTP_TIMEOUT")
        return cls(
            sheet_id=os.getenv("RECEIPT_SHEET_ID"),
            sheet_name=os.getenv("RECEIPT_SHEET_NAME", DEFAULT_SHEET_NAME),
            webhook_url=os.getenv("RECEIPT_WEBHOOK_URL"),
            analysis_url=os.getenv("RECEIPT_ANALYSIS_URL"),
            staging_db=Path(os.getenv("RECEIPT_LEDGER_STAGING_DB", DEFAULT_STAGING_DB)).expanduser(),
            http_timeout=float(timeout) if timeout else DEFAULT_HTTP_TIMEOUT,
            notion_api_key=os.getenv("NOTION_API_KEY"),
            notion_database_id=os.getenv("NOTION_DATABASE_ID"),
        )

    def override(self, **values) -> "Settings":
        """Return a copy with every non-None keyword applied."""
        known = {f.name for f in fields(self)}
        current = {name: getattr(self, name) for name in known}
        current.update({k: v for k, v in values.items() if k in known and v is not None})
        return Settings(**current)

    def require(self, name: str):
        """Return a setting, raising ConfigError when it is unset."""
        value = getattr(self, name)
        if not value:
            env_name = {
                "sheet_id": "RECEIPT_SHEET_ID",
                "webhook_url": "RECEIPT_WEBHOOK_URL",
                "notion_api_key": "NOTION_API_KEY",
                "notion_database_id": "NOTION_DATABASE_ID",
            }.get(name, name.upper())
            raise ConfigError(f"Missing setting {name} (set {env_name})")
        return value

    @property
    def resolved_analysis_url(self) -> str:
        """Analysis webhook, falling back to the shared workflow webhook."""
        return self.analysis_url or self.require("webhook_url")
