"""Tests for auth guard middleware.

Validates:
  - Protected routes return 401 without credentials or with bad ones.
  - Public prefixes pass through with optional auth.
  - Valid Bearer tokens set ``request.state.user``.
  - ``get_current_user`` dependency enforces auth at route level.
"""

from __future__ import annotations

import pytest
from fastapi import Depends, FastAPI, Request
from httpx import ASGITransport, AsyncClient

from filevault.security.auth_guard import (
    AuthGuardMiddleware,
    extract_bearer_token,
    get_current_user,
    get_optional_user,
)
from filevault.security.sessions import InMemorySessionStore, User

ALICE = User(id='alice', email='alice@example.com')


# ── App factory ──────────────────────────────────────────────────────


def _make_app(store: InMemorySessionStore, *, guard: bool = True) -> FastAPI:
    app = FastAPI()
    if guard:
        app.add_middleware(AuthGuardMiddleware, session_store=store)

    @app.get('/health')
    async def health():
        return {'status': 'ok'}

    @app.get('/api/s/{token}')
    async def public(token: str, user: User | None = Depends(get_optional_user)):
        return {'token': token, 'user': user.id if user else None}

    @app.get('/api/shares')
    async def protected(user: User = Depends(get_current_user)):
        return {'user': user.id}

    @app.get('/api/raw')
    async def raw(request: Request):
        return {'user': request.state.user.id}

    return app


@pytest.fixture
def store():
    s = InMemorySessionStore()
    s.add_user(ALICE)
    return s


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url='http://test')


class TestProtectedRoutes:

    @pytest.mark.asyncio
    async def test_no_credentials(self, store):
        async with _client(_make_app(store)) as c:
            r = await c.get('/api/shares')
            assert r.status_code == 401
            assert r.json()['code'] == 'no_credentials'
            assert r.headers['www-authenticate'] == 'Bearer'

    @pytest.mark.asyncio
    async def test_invalid_token(self, store):
        async with _client(_make_app(store)) as c:
            r = await c.get('/api/shares', headers={'Authorization': 'Bearer nope'})
            assert r.status_code == 401
            assert r.json()['code'] == 'invalid_session'

    @pytest.mark.asyncio
    async def test_valid_token_sets_user(self, store):
        token = store.issue_token('alice')
        async with _client(_make_app(store)) as c:
            r = await c.get('/api/raw', headers={'Authorization': f'Bearer {token}'})
            assert r.status_code == 200
            assert r.json() == {'user': 'alice'}

    @pytest.mark.asyncio
    async def test_options_preflight_passes(self, store):
        async with _client(_make_app(store)) as c:
            r = await c.options('/api/shares')
            assert r.status_code != 401


class TestPublicRoutes:

    @pytest.mark.asyncio
    async def test_health_without_auth(self, store):
        async with _client(_make_app(store)) as c:
            r = await c.get('/health')
            assert r.status_code == 200

    @pytest.mark.asyncio
    async def test_share_access_anonymous(self, store):
        async with _client(_make_app(store)) as c:
            r = await c.get('/api/s/tok')
            assert r.json() == {'token': 'tok', 'user': None}

    @pytest.mark.asyncio
    async def test_share_access_with_user(self, store):
        token = store.issue_token('alice')
        async with _client(_make_app(store)) as c:
            r = await c.get('/api/s/tok', headers={'Authorization': f'Bearer {token}'})
            assert r.json()['user'] == 'alice'

    @pytest.mark.asyncio
    async def test_bad_token_ignored_on_public_route(self, store):
        async with _client(_make_app(store)) as c:
            r = await c.get('/api/s/tok', headers={'Authorization': 'Bearer nope'})
            assert r.status_code == 200
            assert r.json()['user'] is None


class TestDependency:

    @pytest.mark.asyncio
    async def test_get_current_user_without_middleware(self, store):
        async with _client(_make_app(store, guard=False)) as c:
            r = await c.get('/api/shares')
            assert r.status_code == 401
            assert r.json()['detail']['code'] == 'no_credentials'


class _FakeRequest:
    def __init__(self, headers):
        self.headers = headers


@pytest.mark.parametrize('header,expected', [
    ('Bearer abc', 'abc'),
    ('bearer abc', 'abc'),
    ('Bearer   abc  ', 'abc'),
    ('Bearer ', None),
    ('Basic abc', None),
    ('', None),
])
def test_extract_bearer_token(header, expected):
    request = _FakeRequest({'authorization': header} if header else {})
    assert extract_bearer_token(request) == expected
