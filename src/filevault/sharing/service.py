"""Share access controller.

Owns every share state transition:

  Owner operations (authenticated, ownership-checked):
    create, list, get, update (revoke/reactivate/extend), delete.

  Public token flow:
    resolve token → liveness (inactive, expired, quota; in that order)
    → password gate → target resolution (directory first) → delivery.

Download accounting:
  A file delivery consumes one download through
  ``ShareRepository.increment_downloads`` *before* any byte is streamed.
  The repository re-checks liveness and increments in one atomic step,
  so the liveness check above is only a fast path; the increment is the
  authoritative gate. A client disconnecting mid-stream does not give
  the download back.
"""

from __future__ import annotations

import asyncio
import posixpath
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Union

from ..observability.logging import get_logger
from ..observability.metrics import (
    SHARE_ACCESS_TOTAL,
    SHARE_DOWNLOADS_TOTAL,
    SHARES_CREATED_TOTAL,
)
from ..observability.redaction import redact_token
from ..security.sessions import User
from ..settings import Settings
from ..storage import FileInfo, FileStorage, InvalidStoragePath, StorageNotFound
from .audit import (
    SHARE_ACCESSED,
    SHARE_CREATED,
    SHARE_DELETED,
    SHARE_DENIED,
    SHARE_DOWNLOADED,
    SHARE_UPDATED,
    InMemoryShareAuditEmitter,
    ShareAuditEmitter,
    ShareAuditEvent,
)
from .model import (
    InvalidSharePassword,
    Permission,
    Share,
    ShareContentMissing,
    ShareError,
    ShareForbidden,
    ShareNotFound,
    SharePathNotFound,
    ShareRepository,
    ShareType,
    ShareValidationError,
    as_utc,
    hash_password,
    utcnow,
    verify_password,
)

logger = get_logger(__name__)


class _Unset:
    def __repr__(self) -> str:
        return 'UNSET'


UNSET: Any = _Unset()


# ── Access results ───────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class PasswordRequired:
    """The share needs a password; only the shared path is disclosed."""

    path: str


@dataclass(frozen=True, slots=True)
class DirectoryListing:
    share: Share
    path: str
    files: list[FileInfo] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class FileMetadata:
    """A view-only file share: metadata, never bytes."""

    share: Share
    file: FileInfo


@dataclass(frozen=True, slots=True)
class FileDelivery:
    """Authorized byte delivery; ``downloads`` already counts this one."""

    share: Share
    file_path: Path
    filename: str
    downloads: int


AccessResult = Union[PasswordRequired, DirectoryListing, FileMetadata, FileDelivery]


# ── Path helpers ─────────────────────────────────────────────────────


def normalize_share_path(path: str | None) -> str | None:
    """Normalize a storage-relative path.

    Returns ``'.'`` for the storage root, or None when the path is empty or
    climbs out of the root.
    """
    if path is None or not path.strip():
        return None
    normalized = posixpath.normpath(path.strip().lstrip('/') or '.')
    if normalized == '..' or normalized.startswith('../'):
        return None
    return normalized


def join_within(base: str, subpath: str) -> str | None:
    """Join ``subpath`` onto ``base``; None if the result leaves ``base``."""
    sub = subpath.strip().lstrip('/')
    if not sub:
        return base
    joined = posixpath.normpath(posixpath.join(base, sub))
    if base == '.':
        inside = joined != '..' and not joined.startswith('../')
    else:
        inside = joined == base or joined.startswith(base + '/')
    return joined if inside else None


# ── Controller ───────────────────────────────────────────────────────


class ShareAccessController:
    """State machine for share creation, management and public access.

    Args:
        repo: Share persistence.
        storage: File storage backend the shares point into.
        settings: Supplies the public base URL and hidden listing entries.
        audit: Audit sink; defaults to an in-memory emitter.
    """

    def __init__(
        self,
        repo: ShareRepository,
        storage: FileStorage,
        settings: Settings,
        audit: ShareAuditEmitter | None = None,
    ) -> None:
        self.repo = repo
        self.storage = storage
        self.settings = settings
        self.audit = audit if audit is not None else InMemoryShareAuditEmitter()

    # ── Presentation ──────────────────────────────────────────────────

    def share_url(self, share: Share) -> str:
        return self.settings.share_url(share.token)

    def to_public(self, share: Share) -> dict[str, Any]:
        return share.to_public_dict(self.share_url(share))

    # ── Creation ──────────────────────────────────────────────────────

    async def create_share(
        self,
        owner: User,
        *,
        path: str | None,
        share_type: ShareType | None = None,
        password: str | None = None,
        permission: Permission | None = None,
        expires_at: datetime | None = None,
        max_downloads: int | None = None,
    ) -> Share:
        """Create a share owned by ``owner``.

        Raises:
            ShareValidationError: Missing path, traversal, negative cap, or
                a password share without a password.
            SharePathNotFound: The path names neither a file nor a folder.
        """
        if path is None or not path.strip():
            raise ShareValidationError('Path is required')
        normalized = normalize_share_path(path)
        if normalized is None:
            raise ShareValidationError('Invalid path')

        try:
            exists = await asyncio.to_thread(self.storage.exists, normalized)
        except InvalidStoragePath as exc:
            raise ShareValidationError('Invalid path') from exc
        if not exists:
            raise SharePathNotFound()

        share_type = share_type or ShareType.PUBLIC
        permission = permission or Permission.DOWNLOAD

        if share_type is ShareType.PASSWORD and not password:
            raise ShareValidationError(
                'Password is required for password-protected shares',
            )
        if max_downloads is not None and max_downloads < 0:
            raise ShareValidationError('maxDownloads must be non-negative')

        share = Share(
            path=normalized,
            created_by=owner.id,
            share_type=share_type,
            permission=permission,
            password_hash=(
                hash_password(password) if share_type is ShareType.PASSWORD else None
            ),
            expires_at=as_utc(expires_at),
            max_downloads=max_downloads,
            downloads=0,
            is_active=True,
        )
        share = await self.repo.create(share)

        SHARES_CREATED_TOTAL.labels(share_type=share_type.value).inc()
        logger.info(
            'share_created',
            share_id=share.id,
            share_type=share_type.value,
            permission=permission.value,
        )
        await self.audit.emit(ShareAuditEvent(
            event_type=SHARE_CREATED,
            share_id=share.id,
            token_prefix=redact_token(share.token),
            path=share.path,
            actor_user_id=owner.id,
        ))
        return share

    # ── Ownership-gated operations ────────────────────────────────────

    async def list_shares(self, owner: User) -> list[Share]:
        return await self.repo.get_by_user(owner.id)

    async def get_share(self, owner: User, share_id: str) -> Share:
        """Fetch one share, enforcing ownership.

        Raises:
            ShareNotFound: Unknown id.
            ShareForbidden: ``owner`` did not create the share.
        """
        share = await self.repo.get_by_id(share_id)
        if share.created_by != owner.id:
            logger.warning('share_ownership_denied', share_id=share_id, user_id=owner.id)
            raise ShareForbidden()
        return share

    async def update_share(
        self,
        owner: User,
        share_id: str,
        *,
        is_active: bool = UNSET,
        expires_at: datetime | None = UNSET,
        max_downloads: int | None = UNSET,
        permission: Permission = UNSET,
    ) -> Share:
        """Revoke, reactivate or re-bound a share. ``None`` clears a limit."""
        share = await self.get_share(owner, share_id)
        changed: list[str] = []

        if is_active is not UNSET:
            if is_active is None:
                raise ShareValidationError('isActive cannot be null')
            share.is_active = bool(is_active)
            changed.append('isActive')
        if expires_at is not UNSET:
            share.expires_at = as_utc(expires_at)
            changed.append('expiresAt')
        if max_downloads is not UNSET:
            if max_downloads is not None and max_downloads < 0:
                raise ShareValidationError('maxDownloads must be non-negative')
            share.max_downloads = max_downloads
            changed.append('maxDownloads')
        if permission is not UNSET:
            if permission is None:
                raise ShareValidationError('permission cannot be null')
            share.permission = Permission(permission)
            changed.append('permission')

        if not changed:
            return share

        share = await self.repo.update(share)
        logger.info('share_updated', share_id=share.id, fields=changed)
        await self.audit.emit(ShareAuditEvent(
            event_type=SHARE_UPDATED,
            share_id=share.id,
            path=share.path,
            actor_user_id=owner.id,
            detail=','.join(changed),
        ))
        return share

    async def delete_share(self, owner: User, share_id: str) -> None:
        share = await self.get_share(owner, share_id)
        await self.repo.delete(share.id)
        logger.info('share_deleted', share_id=share.id)
        await self.audit.emit(ShareAuditEvent(
            event_type=SHARE_DELETED,
            share_id=share.id,
            path=share.path,
            actor_user_id=owner.id,
        ))

    async def purge_expired(self, now: datetime | None = None) -> int:
        """Delete every share whose expiry is in the past."""
        removed = await self.repo.purge_expired(now or utcnow())
        if removed:
            logger.info('expired_shares_purged', count=removed)
        return removed

    # ── Public token flow ─────────────────────────────────────────────

    async def access(
        self,
        token: str,
        *,
        password: str | None = None,
        with_secret: bool = False,
        subpath: str = '',
        actor: User | None = None,
    ) -> AccessResult:
        """Resolve a share token and deliver what its permission allows.

        Args:
            token: Public share token.
            password: Submitted secret (read-with-secret intent only).
            with_secret: True for the credentialed variant (POST).
            subpath: Folder inside a directory share to list.
            actor: Signed-in caller, if any; recorded for audit only.

        Raises:
            ShareNotFound, ShareInactive, ShareExpired,
            ShareDownloadLimitReached, InvalidSharePassword,
            ShareValidationError, ShareContentMissing.
        """
        share: Share | None = None
        try:
            if not token:
                raise ShareNotFound()
            share = await self.repo.get_by_token(token)
            share.check_live()

            if share.requires_password:
                if not with_secret or not password:
                    result: AccessResult = PasswordRequired(path=share.path)
                    self._record_outcome('password_required')
                    return result
                if not verify_password(password, share.password_hash):
                    raise InvalidSharePassword()

            result = await self._deliver(share, subpath)
        except ShareError as exc:
            await self._record_denial(token, share, exc, actor)
            raise

        await self._record_success(token, share, result, actor)
        return result

    def _is_hidden(self, path: str) -> bool:
        top = path.split('/', 1)[0].lower()
        return top in {name.lower() for name in self.settings.hidden_paths}

    def _resolve(
        self, share: Share, target: str, subpath: str,
    ) -> DirectoryListing | tuple[Path, FileInfo]:
        """Blocking storage lookups; runs in a worker thread."""
        if self.storage.is_directory(target):
            files = self.storage.list(target, exclude=self.settings.hidden_paths)
            return DirectoryListing(share=share, path=target, files=files)
        if subpath:
            raise ShareContentMissing('Folder not found')
        return self.storage.get_file_path(share.path), self.storage.describe(share.path)

    async def _deliver(self, share: Share, subpath: str) -> AccessResult:
        target = share.path
        if subpath:
            target = join_within(share.path, subpath)
            if target is None:
                raise ShareValidationError('Invalid path')
            if share.path == '.' and self._is_hidden(target):
                raise ShareContentMissing('Folder not found')

        try:
            resolved = await asyncio.to_thread(self._resolve, share, target, subpath)
        except (StorageNotFound, InvalidStoragePath) as exc:
            raise ShareContentMissing() from exc
        if isinstance(resolved, DirectoryListing):
            return resolved
        file_path, info = resolved

        if share.permission is not Permission.DOWNLOAD:
            return FileMetadata(share=share, file=info)

        downloads = await self.repo.increment_downloads(share.id)
        share.downloads = downloads
        return FileDelivery(
            share=share,
            file_path=file_path,
            filename=share.filename,
            downloads=downloads,
        )

    # ── Outcome recording ─────────────────────────────────────────────

    @staticmethod
    def _record_outcome(outcome: str) -> None:
        SHARE_ACCESS_TOTAL.labels(outcome=outcome).inc()

    async def _record_success(
        self,
        token: str,
        share: Share,
        result: AccessResult,
        actor: User | None,
    ) -> None:
        if isinstance(result, FileDelivery):
            outcome, event_type = 'download', SHARE_DOWNLOADED
            SHARE_DOWNLOADS_TOTAL.inc()
        elif isinstance(result, DirectoryListing):
            outcome, event_type = 'listing', SHARE_ACCESSED
        else:
            outcome, event_type = 'metadata', SHARE_ACCESSED

        self._record_outcome(outcome)
        logger.info('share_accessed', share_id=share.id, outcome=outcome)
        await self.audit.emit(ShareAuditEvent(
            event_type=event_type,
            share_id=share.id,
            token_prefix=redact_token(token),
            path=share.path,
            actor_user_id=actor.id if actor else '',
            detail=outcome,
        ))

    async def _record_denial(
        self,
        token: str,
        share: Share | None,
        exc: ShareError,
        actor: User | None,
    ) -> None:
        self._record_outcome(exc.code)
        logger.info(
            'share_access_denied',
            share_id=share.id if share else None,
            token_prefix=redact_token(token),
            code=exc.code,
        )
        await self.audit.emit(ShareAuditEvent(
            event_type=SHARE_DENIED,
            share_id=share.id if share else None,
            token_prefix=redact_token(token),
            path=share.path if share else '',
            actor_user_id=actor.id if actor else '',
            detail=exc.code,
        ))
