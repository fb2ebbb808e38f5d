"""Share-link domain model.

A share is a token-addressable capability exposing one path of the storage
tree, optionally password-protected, optionally time- or volume-bounded.

Security invariants:
  - Tokens are 256-bit ``secrets.token_urlsafe`` values.
  - Share passwords are stored only as salted hashes and never serialized
    back to clients.
  - Validity is evaluated against the wall clock at the moment of access;
    nothing caches it.

This module provides:
  1. ``ShareType`` / ``Permission``: closed two-variant enumerations.
  2. ``Share``: domain object matching the ``shares`` table.
  3. ``ShareRepository``: storage protocol.
  4. ``InMemoryShareRepository``: test/local implementation.
  5. Token and password helpers.
  6. The ``ShareError`` hierarchy, one stable code per terminal outcome.
"""

from __future__ import annotations

import asyncio
import itertools
import secrets
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from passlib.context import CryptContext

# ── Constants ─────────────────────────────────────────────────────────

TOKEN_BYTES = 32  # 256-bit tokens.
MAX_TOKEN_ATTEMPTS = 5

_password_context = CryptContext(schemes=['pbkdf2_sha256'], deprecated='auto')


class ShareType(str, Enum):
    PUBLIC = 'public'
    PASSWORD = 'password'


class Permission(str, Enum):
    VIEW = 'view'
    DOWNLOAD = 'download'


# ── Token / password operations ───────────────────────────────────────


def generate_share_token() -> str:
    """Generate a cryptographically random URL-safe share token."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def generate_share_id() -> str:
    return str(uuid.uuid4())


def hash_password(plaintext: str) -> str:
    """Salted one-way hash of a share password."""
    return _password_context.hash(plaintext)


def verify_password(plaintext: str, hashed: str | None) -> bool:
    """Constant-time verification of a share password against its hash."""
    if not plaintext or not hashed:
        return False
    try:
        return _password_context.verify(plaintext, hashed)
    except ValueError:
        # Stored value is not a recognised hash.
        return False


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ── Domain exceptions ─────────────────────────────────────────────────


class ShareError(Exception):
    """Base class for share failures. ``code`` and ``status`` are stable."""

    code = 'share_error'
    status = 500
    default_detail = 'Share operation failed'

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ShareNotFound(ShareError):
    code = 'share_not_found'
    status = 404
    default_detail = 'Share not found'


class SharePathNotFound(ShareError):
    code = 'path_not_found'
    status = 404
    default_detail = 'Path not found'


class ShareContentMissing(ShareError):
    code = 'share_content_missing'
    status = 404
    default_detail = 'Shared content not found'


class ShareGone(ShareError):
    """Share exists but can no longer be used."""

    status = 410


class ShareInactive(ShareGone):
    code = 'share_inactive'
    default_detail = 'Share is no longer active'


class ShareExpired(ShareGone):
    code = 'share_expired'
    default_detail = 'Share has expired'


class ShareDownloadLimitReached(ShareGone):
    code = 'share_download_limit_reached'
    default_detail = 'Maximum downloads reached'


class InvalidSharePassword(ShareError):
    code = 'invalid_password'
    status = 401
    default_detail = 'Invalid password'


class ShareForbidden(ShareError):
    code = 'forbidden'
    status = 403
    default_detail = 'Permission denied'


class ShareValidationError(ShareError):
    code = 'validation_error'
    status = 400
    default_detail = 'Invalid share request'


class ShareAlreadyExists(ShareError):
    code = 'share_conflict'
    status = 409
    default_detail = 'Share already exists'


class ShareStoreError(ShareError):
    """Storage failure; the detail shown to clients is always generic."""

    code = 'internal_error'
    status = 500
    default_detail = 'Share storage failure'


# ── Domain model ──────────────────────────────────────────────────────


@dataclass
class Share:
    """Share link domain object matching the ``shares`` schema.

    Attributes:
        id: Owner-visible identity used for management operations.
        token: Public identifier embedded in the share URL.
        path: Storage-relative path of the shared file or directory.
        created_by: Owning user id.
        share_type: public or password.
        password_hash: Salted hash, present iff share_type is password.
        permission: view (listing/metadata only) or download.
        expires_at: Absolute expiry; None means never.
        max_downloads: Delivery cap; None means unlimited.
        downloads: Authorized file deliveries so far.
        is_active: False once revoked.
        created_at: Creation timestamp.
    """

    path: str
    created_by: str
    share_type: ShareType = ShareType.PUBLIC
    permission: Permission = Permission.DOWNLOAD
    password_hash: str | None = None
    expires_at: datetime | None = None
    max_downloads: int | None = None
    downloads: int = 0
    is_active: bool = True
    id: str = ''
    token: str = ''
    created_at: datetime = field(default_factory=utcnow)

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or utcnow()) > as_utc(self.expires_at)

    def has_reached_max_downloads(self) -> bool:
        if self.max_downloads is None:
            return False
        return self.downloads >= self.max_downloads

    def is_valid(self, now: datetime | None = None) -> bool:
        return (
            self.is_active
            and not self.is_expired(now)
            and not self.has_reached_max_downloads()
        )

    def check_live(self, now: datetime | None = None) -> None:
        """Raise the terminal ``ShareGone`` reason, checked in fixed order."""
        if not self.is_active:
            raise ShareInactive()
        if self.is_expired(now):
            raise ShareExpired()
        if self.has_reached_max_downloads():
            raise ShareDownloadLimitReached()

    @property
    def requires_password(self) -> bool:
        return self.share_type is ShareType.PASSWORD

    @property
    def filename(self) -> str:
        return self.path.rstrip('/').rsplit('/', 1)[-1]

    def copy(self) -> Share:
        return replace(self)

    def to_public_dict(self, url: str) -> dict[str, Any]:
        """Safe representation: never includes the password hash."""
        data: dict[str, Any] = {
            'id': self.id,
            'token': self.token,
            'path': self.path,
            'shareType': self.share_type.value,
            'permission': self.permission.value,
            'downloads': self.downloads,
            'createdAt': as_utc(self.created_at).isoformat(),
            'isActive': self.is_active,
            'url': url,
        }
        if self.expires_at is not None:
            data['expiresAt'] = as_utc(self.expires_at).isoformat()
        if self.max_downloads is not None:
            data['maxDownloads'] = self.max_downloads
        return data


# ── Repository protocol ──────────────────────────────────────────────


@runtime_checkable
class ShareRepository(Protocol):
    """Share storage.

    Implementations: InMemoryShareRepository (testing/local),
    SQLiteShareRepository (production).
    """

    async def create(self, share: Share) -> Share:
        """Persist a new share, assigning id/token/created_at when absent.

        Token collisions are retried internally with a fresh token.

        Raises:
            ShareAlreadyExists: id collision, or tokens kept colliding.
        """
        ...

    async def get_by_id(self, share_id: str) -> Share: ...

    async def get_by_token(self, token: str) -> Share: ...

    async def get_by_user(self, user_id: str) -> list[Share]:
        """All shares owned by ``user_id``, newest first."""
        ...

    async def get_by_path(self, path: str) -> list[Share]: ...

    async def update(self, share: Share) -> Share:
        """Replace the mutable fields; ``downloads`` is never written here.

        Raises:
            ShareNotFound: The row disappeared.
        """
        ...

    async def delete(self, share_id: str) -> None: ...

    async def increment_downloads(self, share_id: str) -> int:
        """Atomically consume one download and return the new count.

        Liveness checks and the increment are a single step.

        Raises:
            ShareNotFound: No such share.
            ShareInactive: The share was revoked.
            ShareExpired: The share expired before the download.
            ShareDownloadLimitReached: The cap is already reached.
        """
        ...

    async def purge_expired(self, before: datetime) -> int:
        """Delete shares that expired before ``before``; return the count."""
        ...


# ── In-memory implementation ─────────────────────────────────────────


class InMemoryShareRepository:
    """In-memory share store for testing and local development.

    Each stored share is copied on the way in and out so callers never
    mutate repository state directly.
    """

    def __init__(self) -> None:
        self._shares: dict[str, Share] = {}
        self._by_token: dict[str, str] = {}
        self._order: dict[str, int] = {}
        self._seq = itertools.count()
        self._lock = asyncio.Lock()

    async def create(self, share: Share) -> Share:
        async with self._lock:
            stored = share.copy()
            if not stored.id:
                stored.id = generate_share_id()
            if stored.id in self._shares:
                raise ShareAlreadyExists(f'Share id {stored.id} already exists')

            if not stored.token:
                stored.token = generate_share_token()
            attempts = 1
            while stored.token in self._by_token:
                if attempts >= MAX_TOKEN_ATTEMPTS:
                    raise ShareAlreadyExists('Could not allocate a unique share token')
                stored.token = generate_share_token()
                attempts += 1

            self._shares[stored.id] = stored
            self._by_token[stored.token] = stored.id
            self._order[stored.id] = next(self._seq)
            return stored.copy()

    async def get_by_id(self, share_id: str) -> Share:
        share = self._shares.get(share_id)
        if share is None:
            raise ShareNotFound()
        return share.copy()

    async def get_by_token(self, token: str) -> Share:
        share_id = self._by_token.get(token)
        if share_id is None:
            raise ShareNotFound()
        return self._shares[share_id].copy()

    def _newest_first(self, shares: list[Share]) -> list[Share]:
        return [
            s.copy()
            for s in sorted(
                shares,
                key=lambda s: (as_utc(s.created_at), self._order[s.id]),
                reverse=True,
            )
        ]

    async def get_by_user(self, user_id: str) -> list[Share]:
        return self._newest_first(
            [s for s in self._shares.values() if s.created_by == user_id],
        )

    async def get_by_path(self, path: str) -> list[Share]:
        return self._newest_first(
            [s for s in self._shares.values() if s.path == path],
        )

    async def update(self, share: Share) -> Share:
        async with self._lock:
            current = self._shares.get(share.id)
            if current is None:
                raise ShareNotFound()
            updated = replace(
                current,
                path=share.path,
                share_type=share.share_type,
                password_hash=share.password_hash,
                permission=share.permission,
                expires_at=share.expires_at,
                max_downloads=share.max_downloads,
                is_active=share.is_active,
            )
            self._shares[share.id] = updated
            return updated.copy()

    async def delete(self, share_id: str) -> None:
        async with self._lock:
            share = self._shares.pop(share_id, None)
            if share is None:
                raise ShareNotFound()
            self._by_token.pop(share.token, None)
            self._order.pop(share_id, None)

    async def increment_downloads(self, share_id: str) -> int:
        async with self._lock:
            share = self._shares.get(share_id)
            if share is None:
                raise ShareNotFound()
            if not share.is_active:
                raise ShareInactive()
            if share.is_expired():
                raise ShareExpired()
            if share.has_reached_max_downloads():
                raise ShareDownloadLimitReached()
            share.downloads += 1
            return share.downloads

    async def purge_expired(self, before: datetime) -> int:
        async with self._lock:
            expired = [
                s for s in self._shares.values()
                if s.expires_at is not None and as_utc(s.expires_at) < before
            ]
            for share in expired:
                del self._shares[share.id]
                self._by_token.pop(share.token, None)
                self._order.pop(share.id, None)
            return len(expired)
