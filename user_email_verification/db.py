# user_email_verification/db.py
import os
import sqlite3

VERIFICATION_TABLE_NAME = "user_email_verification"

SCHEMA_SQL = f"""
CREATE TABLE IF NOT EXISTS {VERIFICATION_TABLE_NAME} (
  uid INTEGER PRIMARY KEY,
  verified INTEGER NOT NULL DEFAULT 0,
  last_reminder INTEGER NOT NULL DEFAULT 0,
  reminders INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_uev_pending
  ON {VERIFICATION_TABLE_NAME} (verified, last_reminder);
"""

# -------------------- basics --------------------


def _db_path() -> str:
    # Prefer DATABASE_URL if set; otherwise fall back to DATABASE_PATH; otherwise dev.db
    url = os.environ.get("DATABASE_URL")
    if url:
        if not url.startswith("sqlite:///"):
            raise RuntimeError(f"Only sqlite supported; got {url}")
        return url.removeprefix("sqlite:///")
    path = os.environ.get("DATABASE_PATH")
    if path:
        return path
    return "dev.db"


def get_connection(db_path: str | None = None) -> sqlite3.Connection:
    """
    Shared SQLite connection helper for the store and scripts.

    - If db_path is None, uses _db_path() (DATABASE_URL/DATABASE_PATH/dev.db).
    - Sets row_factory to sqlite3.Row for dict-like access.
    - Waits up to 30s on a locked database before failing, so that
      concurrent workers serialise their single-row updates.
    """
    if db_path is None:
        db_path = _db_path()
    con = sqlite3.connect(db_path, timeout=30)
    con.row_factory = sqlite3.Row
    return con


def ensure_schema(con: sqlite3.Connection) -> None:
    """Create the verification table and its index if missing."""
    con.executescript(SCHEMA_SQL)
    con.commit()
