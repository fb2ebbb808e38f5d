"""Public share access endpoints.

  GET  /api/s/{token}         → password prompt, listing, metadata or bytes
  POST /api/s/{token}         → same, with ``{"password": "..."}`` submitted

Both accept an optional ``?path=`` naming a folder inside a directory
share.

Responses (decided by ``ShareAccessController.access``):
  - Password share without a password: ``{"requiresPassword": true,
    "path": ...}`` and nothing else about the target.
  - Directory: ``{"path", "permission", "isDir": true, "files": [...]}``.
  - File with ``view`` permission: ``{"path", "permission", "isDir":
    false, "file": {...}}``.
  - File with ``download`` permission: the bytes, as an attachment named
    after the last component of the shared path.

Error responses:
  - 404: unknown token, or the shared content is gone from storage.
  - 410: share inactive, expired, or download limit reached.
  - 401: wrong password.
  - 400: sub-path escapes the shared folder.

This module provides:
  ``create_share_access_router``: FastAPI router factory.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse
from pydantic import BaseModel

from ..security.auth_guard import get_optional_user
from ..security.sessions import User
from .model import ShareError
from .routes import share_error_response
from .service import (
    AccessResult,
    DirectoryListing,
    FileDelivery,
    FileMetadata,
    PasswordRequired,
    ShareAccessController,
)

# ── Request schemas ──────────────────────────────────────────────────


class ShareAccessRequest(BaseModel):
    """Request body for password submission."""

    password: str | None = None


# ── Rendering ────────────────────────────────────────────────────────


def render_access_result(result: AccessResult) -> Any:
    if isinstance(result, PasswordRequired):
        return {'requiresPassword': True, 'path': result.path}
    if isinstance(result, DirectoryListing):
        return {
            'path': result.path,
            'permission': result.share.permission.value,
            'isDir': True,
            'files': [f.to_dict() for f in result.files],
        }
    if isinstance(result, FileMetadata):
        return {
            'path': result.share.path,
            'permission': result.share.permission.value,
            'isDir': False,
            'file': result.file.to_dict(),
        }
    if isinstance(result, FileDelivery):
        return FileResponse(
            result.file_path,
            filename=result.filename,
            media_type='application/octet-stream',
        )
    raise TypeError(f'Unexpected access result: {result!r}')


# ── Route factory ────────────────────────────────────────────────────


def create_share_access_router(controller: ShareAccessController) -> APIRouter:
    """Create share access router for token-based reads.

    Args:
        controller: Share access controller.

    Returns:
        FastAPI router with the metadata read and the password submission.
    """
    router = APIRouter(tags=['share-access'])

    @router.get('/api/s/{token}')
    async def read_share(
        token: str,
        path: str = '',
        user: User | None = Depends(get_optional_user),
    ):
        """Read a share without credentials."""
        try:
            result = await controller.access(token, subpath=path, actor=user)
        except ShareError as exc:
            return share_error_response(exc)
        return render_access_result(result)

    @router.post('/api/s/{token}')
    async def unlock_share(
        token: str,
        body: ShareAccessRequest | None = None,
        path: str = '',
        user: User | None = Depends(get_optional_user),
    ):
        """Read a share, submitting its password."""
        try:
            result = await controller.access(
                token,
                password=body.password if body else None,
                with_secret=True,
                subpath=path,
                actor=user,
            )
        except ShareError as exc:
            return share_error_response(exc)
        return render_access_result(result)

    return router
