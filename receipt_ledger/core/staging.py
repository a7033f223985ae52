"""
Staging area for a pending upload.

Holds the chosen image and hints while the user is away (for example in
the camera app) so the upload can be resumed. One slot per scope.
"""

import datetime as dt
import logging
import sqlite3
from pathlib import Path
from typing import Optional

from .models import PendingUpload, UploadOptions

logger = logging.getLogger(__name__)


def init_staging_db(db_path: Path):
    """Initialize SQLite database for staged uploads."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(db_path.as_posix()) as conn:
        cur = conn.cursor()
        cur.execute("""
        CREATE TABLE IF NOT EXISTS pending_upload (
            scope TEXT PRIMARY KEY,
            image BLOB NOT NULL,
            filename TEXT NOT NULL,
            card_type TEXT,
            billable TEXT,
            staged_at TEXT
        )
        """)
        conn.commit()


class StagingArea:
    """Scoped key-value slot for one pending upload."""

    def __init__(self, db_path: Path, scope: str = "default"):
        self.db_path = db_path
        self.scope = scope
        init_staging_db(db_path)

    def _connect(self):
        return sqlite3.connect(self.db_path.as_posix())

    def stage(self, pending: PendingUpload):
        """Store (or replace) the pending upload for this scope."""
        with self._connect() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO pending_upload
                (scope, image, filename, card_type, billable, staged_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (self.scope, pending.image, pending.filename,
                  pending.options.card_type, pending.options.billable,
                  dt.datetime.now().isoformat(timespec="seconds")))
            conn.commit()
        logger.debug("Staged %s in scope %s", pending.filename, self.scope)

    def update_hints(self, card_type: Optional[str], billable: Optional[str]):
        """Change the staged hints without touching the image."""
        with self._connect() as conn:
            conn.execute("""
                UPDATE pending_upload SET card_type = ?, billable = ?
                WHERE scope = ?
            """, (card_type, billable, self.scope))
            conn.commit()

    def resume(self) -> Optional[PendingUpload]:
        """Return the staged upload, or None if nothing is staged."""
        with self._connect() as conn:
            row = conn.execute("""
                SELECT image, filename, card_type, billable
                FROM pending_upload
                WHERE scope = ?
            """, (self.scope,)).fetchone()
        if row is None:
            return None
        return PendingUpload(
            image=bytes(row[0]),
            filename=row[1],
            options=UploadOptions(card_type=row[2], billable=row[3]),
        )

    def clear(self):
        """Drop the staged upload for this scope."""
        with self._connect() as conn:
            conn.execute("DELETE FROM pending_upload WHERE scope = ?", (self.scope,))
            conn.commit()
        logger.debug("Cleared staging scope %s", self.scope)
