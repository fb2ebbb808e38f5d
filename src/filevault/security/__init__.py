"""Authentication collaborators: session stores and the auth guard."""

from .auth_guard import (
    AuthGuardMiddleware,
    extract_bearer_token,
    get_current_user,
    get_optional_user,
)
from .sessions import (
    InMemorySessionStore,
    InvalidSession,
    JWTSessionStore,
    SessionStore,
    User,
    UserNotFound,
)

__all__ = [
    'AuthGuardMiddleware',
    'InMemorySessionStore',
    'InvalidSession',
    'JWTSessionStore',
    'SessionStore',
    'User',
    'UserNotFound',
    'extract_bearer_token',
    'get_current_user',
    'get_optional_user',
]
