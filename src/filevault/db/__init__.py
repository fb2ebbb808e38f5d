"""SQLite persistence for share links."""

from .share_repo import SQLiteShareRepository
from .sqlite import init_db

__all__ = [
    "SQLiteShareRepository",
    "init_db",
]
