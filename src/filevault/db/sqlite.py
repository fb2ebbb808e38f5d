"""SQLite connection and schema helpers.

Every repository call opens its own short-lived connection and runs on a
worker thread, so request handlers never share a connection. Concurrency
control is left to SQLite's database-level write lock; ``busy_timeout``
makes competing writers wait instead of failing.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

BUSY_TIMEOUT_SECONDS = 30.0

SCHEMA: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS shares (
        id TEXT PRIMARY KEY,
        token TEXT UNIQUE NOT NULL,
        path TEXT NOT NULL,
        created_by TEXT NOT NULL,
        share_type TEXT NOT NULL DEFAULT 'public'
            CHECK (share_type IN ('public', 'password')),
        password_hash TEXT,
        permission TEXT NOT NULL DEFAULT 'download'
            CHECK (permission IN ('view', 'download')),
        expires_at TEXT,
        max_downloads INTEGER CHECK (max_downloads IS NULL OR max_downloads >= 0),
        downloads INTEGER NOT NULL DEFAULT 0,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_shares_token ON shares(token)",
    "CREATE INDEX IF NOT EXISTS idx_shares_created_by ON shares(created_by)",
    "CREATE INDEX IF NOT EXISTS idx_shares_path ON shares(path)",
)


def connect(database_path: str | Path) -> sqlite3.Connection:
    conn = sqlite3.connect(
        str(database_path),
        timeout=BUSY_TIMEOUT_SECONDS,
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def transaction(database_path: str | Path) -> Iterator[sqlite3.Connection]:
    """Yield a connection; commit on success, roll back on error, always close."""
    conn = connect(database_path)
    try:
        with conn:
            yield conn
    finally:
        conn.close()


def init_db(database_path: str | Path) -> None:
    """Create the database file, tables and indexes if missing."""
    path = Path(database_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with transaction(path) as conn:
        conn.execute("PRAGMA journal_mode=WAL")
        for statement in SCHEMA:
            conn.execute(statement)
