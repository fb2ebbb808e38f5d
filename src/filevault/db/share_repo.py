"""SQLite-backed ShareRepository implementation.

Persists share links in the ``shares`` table. All blocking sqlite3 work is
pushed to a worker thread with ``asyncio.to_thread``.

Consistency guarantees:
  - ``id`` and ``token`` are unique at the schema level; token collisions
    on insert are retried with a fresh token.
  - ``increment_downloads`` is one conditional UPDATE. The row only changes
    when the share is active, unexpired and under its cap, so concurrent accessors can
    neither over- nor under-count.
  - ``sqlite3.Error`` never escapes: it is logged and re-raised as
    ``ShareStoreError``.
"""

from __future__ import annotations

import asyncio
import sqlite3
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import Any, Callable, TypeVar

from ..observability.logging import get_logger
from ..sharing.model import (
    MAX_TOKEN_ATTEMPTS,
    Permission,
    Share,
    ShareAlreadyExists,
    ShareDownloadLimitReached,
    ShareExpired,
    ShareInactive,
    ShareNotFound,
    ShareStoreError,
    ShareType,
    as_utc,
    generate_share_id,
    generate_share_token,
    utcnow,
)
from .sqlite import init_db, transaction

logger = get_logger(__name__)

T = TypeVar('T')

_COLUMNS = (
    'id, token, path, created_by, share_type, password_hash, permission, '
    'expires_at, max_downloads, downloads, is_active, created_at'
)


def _ts(value: datetime | None) -> str | None:
    """Fixed-width UTC timestamp so text ordering matches time ordering."""
    if value is None:
        return None
    return as_utc(value).isoformat(timespec='microseconds')


def _parse_ts(value: str | None) -> datetime | None:
    if value is None:
        return None
    return as_utc(datetime.fromisoformat(value))


def _row_to_share(row: sqlite3.Row) -> Share:
    return Share(
        id=row['id'],
        token=row['token'],
        path=row['path'],
        created_by=row['created_by'],
        share_type=ShareType(row['share_type']),
        password_hash=row['password_hash'],
        permission=Permission(row['permission']),
        expires_at=_parse_ts(row['expires_at']),
        max_downloads=row['max_downloads'],
        downloads=row['downloads'],
        is_active=bool(row['is_active']),
        created_at=_parse_ts(row['created_at']),
    )


class SQLiteShareRepository:
    """ShareRepository backed by a SQLite ``shares`` table."""

    TABLE = 'shares'

    def __init__(self, database_path: str | Path, *, initialize: bool = True) -> None:
        self._path = Path(database_path)
        if initialize:
            init_db(self._path)

    async def _run(self, op: str, fn: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(partial(fn, *args))
        except sqlite3.Error as exc:
            logger.error('share_store_error', op=op, error=str(exc))
            raise ShareStoreError() from exc

    # ── create ────────────────────────────────────────────────────────

    def _insert(self, share: Share) -> Share:
        stored = share.copy()
        stored.id = stored.id or generate_share_id()
        stored.token = stored.token or generate_share_token()
        stored.created_at = stored.created_at or utcnow()

        for attempt in range(1, MAX_TOKEN_ATTEMPTS + 1):
            try:
                with transaction(self._path) as conn:
                    conn.execute(
                        f'INSERT INTO {self.TABLE} ({_COLUMNS}) '
                        'VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)',
                        (
                            stored.id,
                            stored.token,
                            stored.path,
                            stored.created_by,
                            stored.share_type.value,
                            stored.password_hash,
                            stored.permission.value,
                            _ts(stored.expires_at),
                            stored.max_downloads,
                            stored.downloads,
                            int(stored.is_active),
                            _ts(stored.created_at),
                        ),
                    )
                return stored
            except sqlite3.IntegrityError as exc:
                message = str(exc)
                if f'{self.TABLE}.token' in message:
                    logger.warning('share_token_collision', attempt=attempt)
                    stored.token = generate_share_token()
                    continue
                if f'{self.TABLE}.id' in message:
                    raise ShareAlreadyExists(f'Share id {stored.id} already exists') from exc
                raise
        raise ShareAlreadyExists('Could not allocate a unique share token')

    async def create(self, share: Share) -> Share:
        return await self._run('create', self._insert, share)

    # ── reads ─────────────────────────────────────────────────────────

    def _fetch_one(self, column: str, value: str) -> Share:
        with transaction(self._path) as conn:
            row = conn.execute(
                f'SELECT {_COLUMNS} FROM {self.TABLE} WHERE {column} = ?',
                (value,),
            ).fetchone()
        if row is None:
            raise ShareNotFound()
        return _row_to_share(row)

    def _fetch_many(self, column: str, value: str) -> list[Share]:
        with transaction(self._path) as conn:
            rows = conn.execute(
                f'SELECT {_COLUMNS} FROM {self.TABLE} WHERE {column} = ? '
                'ORDER BY created_at DESC, rowid DESC',
                (value,),
            ).fetchall()
        return [_row_to_share(r) for r in rows]

    async def get_by_id(self, share_id: str) -> Share:
        return await self._run('get_by_id', self._fetch_one, 'id', share_id)

    async def get_by_token(self, token: str) -> Share:
        return await self._run('get_by_token', self._fetch_one, 'token', token)

    async def get_by_user(self, user_id: str) -> list[Share]:
        return await self._run('get_by_user', self._fetch_many, 'created_by', user_id)

    async def get_by_path(self, path: str) -> list[Share]:
        return await self._run('get_by_path', self._fetch_many, 'path', path)

    # ── writes ────────────────────────────────────────────────────────

    def _update(self, share: Share) -> Share:
        with transaction(self._path) as conn:
            cur = conn.execute(
                f'UPDATE {self.TABLE} SET path = ?, share_type = ?, password_hash = ?, '
                'permission = ?, expires_at = ?, max_downloads = ?, is_active = ? '
                'WHERE id = ?',
                (
                    share.path,
                    share.share_type.value,
                    share.password_hash,
                    share.permission.value,
                    _ts(share.expires_at),
                    share.max_downloads,
                    int(share.is_active),
                    share.id,
                ),
            )
            if cur.rowcount == 0:
                raise ShareNotFound()
            row = conn.execute(
                f'SELECT {_COLUMNS} FROM {self.TABLE} WHERE id = ?', (share.id,),
            ).fetchone()
        return _row_to_share(row)

    async def update(self, share: Share) -> Share:
        return await self._run('update', self._update, share)

    def _delete(self, share_id: str) -> None:
        with transaction(self._path) as conn:
            cur = conn.execute(f'DELETE FROM {self.TABLE} WHERE id = ?', (share_id,))
            if cur.rowcount == 0:
                raise ShareNotFound()

    async def delete(self, share_id: str) -> None:
        await self._run('delete', self._delete, share_id)

    def _increment(self, share_id: str) -> int:
        now = _ts(utcnow())
        with transaction(self._path) as conn:
            cur = conn.execute(
                f'UPDATE {self.TABLE} SET downloads = downloads + 1 '
                'WHERE id = ? AND is_active = 1 '
                'AND (expires_at IS NULL OR expires_at > ?) '
                'AND (max_downloads IS NULL OR downloads < max_downloads)',
                (share_id, now),
            )
            row = conn.execute(
                f'SELECT downloads, is_active, expires_at FROM {self.TABLE} WHERE id = ?',
                (share_id,),
            ).fetchone()
        if row is None:
            raise ShareNotFound()
        if cur.rowcount == 0:
            if not row['is_active']:
                raise ShareInactive()
            if row['expires_at'] is not None and row['expires_at'] <= now:
                raise ShareExpired()
            raise ShareDownloadLimitReached()
        return row['downloads']

    async def increment_downloads(self, share_id: str) -> int:
        return await self._run('increment_downloads', self._increment, share_id)

    def _purge(self, before: datetime) -> int:
        with transaction(self._path) as conn:
            cur = conn.execute(
                f'DELETE FROM {self.TABLE} WHERE expires_at IS NOT NULL AND expires_at < ?',
                (_ts(before),),
            )
            return cur.rowcount

    async def purge_expired(self, before: datetime) -> int:
        return await self._run('purge_expired', self._purge, before)
