"""Auth guard middleware.

Extracts the bearer token from incoming requests, validates it against the
``SessionStore`` and sets ``request.state.user`` on success.

Path classes:
  - Public prefixes (``/api/s/``, ``/health``, ``/metrics``, docs): optional
    auth. A valid token sets the user; a missing or bad one is ignored.
  - Everything else: a missing or invalid token gets a 401.
"""

from __future__ import annotations

from fastapi import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ..observability.logging import get_logger
from .sessions import InvalidSession, SessionStore, User

logger = get_logger(__name__)

BEARER_PREFIX = 'bearer '

DEFAULT_PUBLIC_PREFIXES: tuple[str, ...] = (
    '/api/s/',
    '/health',
    '/metrics',
    '/docs',
    '/openapi.json',
)


def extract_bearer_token(request: Request) -> str | None:
    """Return the bearer token from the Authorization header, if any."""
    header = request.headers.get('authorization', '')
    if not header.lower().startswith(BEARER_PREFIX):
        return None
    token = header[len(BEARER_PREFIX):].strip()
    return token or None


def _unauthorized(code: str, detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content={'error': 'unauthorized', 'code': code, 'detail': detail},
        headers={'WWW-Authenticate': 'Bearer'},
    )


class AuthGuardMiddleware(BaseHTTPMiddleware):
    """Starlette middleware that enforces authentication on requests.

    Args:
        app: The ASGI application.
        session_store: Validates bearer tokens.
        public_prefixes: Path prefixes served with optional auth.
    """

    def __init__(
        self,
        app,
        session_store: SessionStore,
        public_prefixes: tuple[str, ...] = DEFAULT_PUBLIC_PREFIXES,
    ) -> None:
        super().__init__(app)
        self._store = session_store
        self._public_prefixes = public_prefixes

    def _is_public(self, path: str) -> bool:
        return any(path == p.rstrip('/') or path.startswith(p) for p in self._public_prefixes)

    async def dispatch(self, request: Request, call_next) -> Response:
        request.state.user = None

        # CORS preflight never carries credentials.
        if request.method == 'OPTIONS':
            return await call_next(request)

        public = self._is_public(request.url.path)
        token = extract_bearer_token(request)

        if token:
            try:
                request.state.user = await self._store.validate_token(token)
            except InvalidSession as exc:
                if not public:
                    return _unauthorized(exc.code, exc.detail)
                logger.debug('optional_auth_ignored', code=exc.code)
        elif not public:
            return _unauthorized('no_credentials', 'Authentication required')

        return await call_next(request)


def get_current_user(request: Request) -> User:
    """FastAPI dependency that returns the authenticated user.

    Raises:
        HTTPException: 401 if no authenticated user on the request.
    """
    user: User | None = getattr(request.state, 'user', None)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={
                'error': 'unauthorized',
                'code': 'no_credentials',
                'detail': 'Authentication required',
            },
            headers={'WWW-Authenticate': 'Bearer'},
        )
    return user


def get_optional_user(request: Request) -> User | None:
    """FastAPI dependency for routes that behave differently when signed in."""
    return getattr(request.state, 'user', None)
