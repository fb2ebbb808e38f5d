"""Share management API endpoints.

  POST   /api/shares             → create share link
  GET    /api/shares             → list the caller's shares, newest first
  GET    /api/shares/{id}        → one share (owner only)
  GET    /api/shares/{id}/info   → alias of the above
  PATCH  /api/shares/{id}        → revoke, reactivate, re-bound
  DELETE /api/shares/{id}        → delete share link

Auth contract:
  - All endpoints require an authenticated user.
  - Only the creator may read, change or delete a share; others get 403.

This module provides:
  ``create_share_router``: FastAPI router factory with injected deps.
  ``share_error_response``: ``ShareError`` → JSON error body.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field

from ..security.auth_guard import get_current_user
from ..security.sessions import User
from .model import Permission, ShareError, ShareStoreError, ShareType
from .service import UNSET, ShareAccessController

# ── Request schemas ──────────────────────────────────────────────────


class CreateShareRequest(BaseModel):
    """Request body for share link creation."""

    model_config = ConfigDict(populate_by_name=True)

    path: str = Field(default='', description='Storage-relative path')
    share_type: ShareType | None = Field(default=None, alias='shareType')
    password: str | None = None
    permission: Permission | None = None
    expires_at: datetime | None = Field(default=None, alias='expiresAt')
    max_downloads: int | None = Field(default=None, ge=0, alias='maxDownloads')


class UpdateShareRequest(BaseModel):
    """Partial update. An explicit ``null`` clears expiry or the cap."""

    model_config = ConfigDict(populate_by_name=True)

    is_active: bool | None = Field(default=None, alias='isActive')
    expires_at: datetime | None = Field(default=None, alias='expiresAt')
    max_downloads: int | None = Field(default=None, ge=0, alias='maxDownloads')
    permission: Permission | None = None

    def changes(self) -> dict:
        """Only the fields the client actually sent."""
        sent = self.model_fields_set
        return {
            name: getattr(self, name) if name in sent else UNSET
            for name in ('is_active', 'expires_at', 'max_downloads', 'permission')
        }


# ── Shared helpers ───────────────────────────────────────────────────


def share_error_response(exc: ShareError) -> JSONResponse:
    """Render a share failure with its stable code."""
    detail = ShareStoreError.default_detail if isinstance(exc, ShareStoreError) else exc.detail
    return JSONResponse(
        status_code=exc.status,
        content={'error': exc.code, 'detail': detail},
    )


# ── Route factory ────────────────────────────────────────────────────


def create_share_router(controller: ShareAccessController) -> APIRouter:
    """Create share management router with injected dependencies.

    Args:
        controller: Share access controller.

    Returns:
        FastAPI router with share lifecycle routes.
    """
    router = APIRouter(tags=['shares'])

    @router.post('/api/shares', status_code=201)
    async def create_share(
        body: CreateShareRequest,
        user: User = Depends(get_current_user),
    ):
        """Create a share link. Returns 201 with the share and its URL."""
        try:
            share = await controller.create_share(
                user,
                path=body.path,
                share_type=body.share_type,
                password=body.password,
                permission=body.permission,
                expires_at=body.expires_at,
                max_downloads=body.max_downloads,
            )
        except ShareError as exc:
            return share_error_response(exc)
        return controller.to_public(share)

    @router.get('/api/shares')
    async def list_shares(user: User = Depends(get_current_user)):
        try:
            shares = await controller.list_shares(user)
        except ShareError as exc:
            return share_error_response(exc)
        return [controller.to_public(s) for s in shares]

    @router.get('/api/shares/{share_id}')
    @router.get('/api/shares/{share_id}/info')
    async def get_share(share_id: str, user: User = Depends(get_current_user)):
        try:
            share = await controller.get_share(user, share_id)
        except ShareError as exc:
            return share_error_response(exc)
        return controller.to_public(share)

    @router.patch('/api/shares/{share_id}')
    async def update_share(
        share_id: str,
        body: UpdateShareRequest,
        user: User = Depends(get_current_user),
    ):
        """Revoke (``isActive: false``), reactivate or change limits."""
        try:
            share = await controller.update_share(user, share_id, **body.changes())
        except ShareError as exc:
            return share_error_response(exc)
        return controller.to_public(share)

    @router.delete('/api/shares/{share_id}', status_code=204)
    async def delete_share(share_id: str, user: User = Depends(get_current_user)):
        try:
            await controller.delete_share(user, share_id)
        except ShareError as exc:
            return share_error_response(exc)
        return Response(status_code=204)

    return router
