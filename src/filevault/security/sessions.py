"""User/session store collaborators.

The share subsystem never authenticates users itself; it consumes a
``SessionStore`` that turns a bearer token into a ``User``.

Implementations:
  - ``InMemorySessionStore``: opaque tokens issued in-process (tests/local).
  - ``JWTSessionStore``: HS256 session tokens signed with ``session_secret``
    by the login service and verified here with PyJWT.
"""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import jwt

SESSION_ALGORITHM = 'HS256'
DEFAULT_SESSION_TTL_SECONDS = 24 * 3600


@dataclass(frozen=True, slots=True)
class User:
    """Authenticated user as seen by the share subsystem."""

    id: str
    email: str = ''
    name: str = ''


class InvalidSession(Exception):
    """Raised when a session token cannot be validated."""

    def __init__(self, code: str, detail: str = '') -> None:
        self.code = code
        self.detail = detail
        super().__init__(f'{code}: {detail}' if detail else code)


class UserNotFound(Exception):
    """No user with the given id is known to the store."""


@runtime_checkable
class SessionStore(Protocol):
    """Token validation and user lookup."""

    async def validate_token(self, token: str) -> User: ...
    async def get_by_id(self, user_id: str) -> User: ...


class InMemorySessionStore:
    """Opaque-token session store for tests and local development."""

    def __init__(self) -> None:
        self._users: dict[str, User] = {}
        self._sessions: dict[str, tuple[str, float]] = {}

    def add_user(self, user: User) -> User:
        self._users[user.id] = user
        return user

    def issue_token(
        self, user_id: str, *, ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS,
    ) -> str:
        if user_id not in self._users:
            raise UserNotFound(user_id)
        token = secrets.token_urlsafe(32)
        self._sessions[token] = (user_id, time.time() + ttl_seconds)
        return token

    async def validate_token(self, token: str) -> User:
        session = self._sessions.get(token)
        if session is None:
            raise InvalidSession('invalid_session', 'Unknown session token')
        user_id, expires_at = session
        if time.time() >= expires_at:
            self._sessions.pop(token, None)
            raise InvalidSession('session_expired', 'Session has expired')
        user = self._users.get(user_id)
        if user is None:
            raise InvalidSession('invalid_session', 'Session user no longer exists')
        return user

    async def get_by_id(self, user_id: str) -> User:
        user = self._users.get(user_id)
        if user is None:
            raise UserNotFound(user_id)
        return user


class JWTSessionStore:
    """Session store backed by HS256 JWTs.

    Tokens carry ``sub`` (user id), ``exp`` and optionally ``email`` and
    ``name``. Users are remembered once one of their tokens validates, so
    ``get_by_id`` only knows users that have authenticated against this
    process.
    """

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError('JWTSessionStore requires a non-empty secret')
        self._secret = secret
        self._known: dict[str, User] = {}

    def issue_token(
        self, user: User, *, ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS,
    ) -> str:
        now = int(time.time())
        claims = {
            'sub': user.id,
            'email': user.email,
            'name': user.name,
            'iat': now,
            'exp': now + ttl_seconds,
        }
        return jwt.encode(claims, self._secret, algorithm=SESSION_ALGORITHM)

    async def validate_token(self, token: str) -> User:
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[SESSION_ALGORITHM],
                options={'require': ['sub', 'exp']},
            )
        except jwt.ExpiredSignatureError as exc:
            raise InvalidSession('session_expired', 'Session has expired') from exc
        except jwt.InvalidTokenError as exc:
            raise InvalidSession('invalid_session', str(exc)) from exc

        user = User(
            id=str(claims['sub']),
            email=claims.get('email', '') or '',
            name=claims.get('name', '') or '',
        )
        self._known[user.id] = user
        return user

    async def get_by_id(self, user_id: str) -> User:
        user = self._known.get(user_id)
        if user is None:
            raise UserNotFound(user_id)
        return user
