"""Share links into the storage tree: tokens, passwords, expiry, quotas."""

from .model import (
    InMemoryShareRepository,
    InvalidSharePassword,
    Permission,
    Share,
    ShareAlreadyExists,
    ShareContentMissing,
    ShareDownloadLimitReached,
    ShareError,
    ShareExpired,
    ShareForbidden,
    ShareGone,
    ShareInactive,
    ShareNotFound,
    SharePathNotFound,
    ShareRepository,
    ShareStoreError,
    ShareType,
    ShareValidationError,
    generate_share_token,
    hash_password,
    verify_password,
)
from .service import (
    DirectoryListing,
    FileDelivery,
    FileMetadata,
    PasswordRequired,
    ShareAccessController,
)
from .routes import (
    CreateShareRequest,
    UpdateShareRequest,
    create_share_router,
    share_error_response,
)
from .access import (
    ShareAccessRequest,
    create_share_access_router,
)
from .audit import (
    InMemoryShareAuditEmitter,
    LoggingShareAuditEmitter,
    ShareAuditEmitter,
    ShareAuditEvent,
)

__all__ = [
    'CreateShareRequest',
    'DirectoryListing',
    'FileDelivery',
    'FileMetadata',
    'InMemoryShareAuditEmitter',
    'InMemoryShareRepository',
    'InvalidSharePassword',
    'LoggingShareAuditEmitter',
    'PasswordRequired',
    'Permission',
    'Share',
    'ShareAccessController',
    'ShareAccessRequest',
    'ShareAlreadyExists',
    'ShareAuditEmitter',
    'ShareAuditEvent',
    'ShareContentMissing',
    'ShareDownloadLimitReached',
    'ShareError',
    'ShareExpired',
    'ShareForbidden',
    'ShareGone',
    'ShareInactive',
    'ShareNotFound',
    'SharePathNotFound',
    'ShareRepository',
    'ShareStoreError',
    'ShareType',
    'ShareValidationError',
    'UpdateShareRequest',
    'create_share_access_router',
    'create_share_router',
    'generate_share_token',
    'hash_password',
    'share_error_response',
    'verify_password',
]
