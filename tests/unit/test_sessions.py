"""Tests for session stores.

Validates:
  - In-memory opaque tokens: issue, validate, expiry, unknown user.
  - JWT tokens: signature, expiry and required claims.
"""

from __future__ import annotations

import time

import jwt
import pytest

from filevault.security.sessions import (
    InMemorySessionStore,
    InvalidSession,
    JWTSessionStore,
    SessionStore,
    User,
    UserNotFound,
)

TEST_SECRET = 'test-session-secret-that-is-long-enough'
ALICE = User(id='alice', email='alice@example.com', name='Alice')


class TestInMemorySessionStore:

    @pytest.fixture
    def store(self):
        s = InMemorySessionStore()
        s.add_user(ALICE)
        return s

    def test_satisfies_protocol(self, store):
        assert isinstance(store, SessionStore)

    @pytest.mark.asyncio
    async def test_issue_and_validate(self, store):
        token = store.issue_token('alice')
        assert await store.validate_token(token) == ALICE

    @pytest.mark.asyncio
    async def test_unknown_token(self, store):
        with pytest.raises(InvalidSession) as exc_info:
            await store.validate_token('nope')
        assert exc_info.value.code == 'invalid_session'

    @pytest.mark.asyncio
    async def test_expired_token(self, store):
        token = store.issue_token('alice', ttl_seconds=-1)
        with pytest.raises(InvalidSession) as exc_info:
            await store.validate_token(token)
        assert exc_info.value.code == 'session_expired'

    def test_issue_for_unknown_user(self, store):
        with pytest.raises(UserNotFound):
            store.issue_token('ghost')

    @pytest.mark.asyncio
    async def test_get_by_id(self, store):
        assert await store.get_by_id('alice') == ALICE
        with pytest.raises(UserNotFound):
            await store.get_by_id('ghost')


class TestJWTSessionStore:

    @pytest.fixture
    def store(self):
        return JWTSessionStore(TEST_SECRET)

    def test_requires_secret(self):
        with pytest.raises(ValueError):
            JWTSessionStore('')

    @pytest.mark.asyncio
    async def test_roundtrip(self, store):
        user = await store.validate_token(store.issue_token(ALICE))
        assert user == ALICE

    @pytest.mark.asyncio
    async def test_wrong_secret(self, store):
        token = JWTSessionStore('another-secret-also-long-enough!!').issue_token(ALICE)
        with pytest.raises(InvalidSession) as exc_info:
            await store.validate_token(token)
        assert exc_info.value.code == 'invalid_session'

    @pytest.mark.asyncio
    async def test_expired(self, store):
        token = store.issue_token(ALICE, ttl_seconds=-10)
        with pytest.raises(InvalidSession) as exc_info:
            await store.validate_token(token)
        assert exc_info.value.code == 'session_expired'

    @pytest.mark.asyncio
    async def test_missing_sub_rejected(self, store):
        token = jwt.encode(
            {'exp': int(time.time()) + 60}, TEST_SECRET, algorithm='HS256',
        )
        with pytest.raises(InvalidSession):
            await store.validate_token(token)

    @pytest.mark.asyncio
    async def test_garbage(self, store):
        with pytest.raises(InvalidSession):
            await store.validate_token('not.a.jwt')

    @pytest.mark.asyncio
    async def test_get_by_id_knows_authenticated_users(self, store):
        with pytest.raises(UserNotFound):
            await store.get_by_id('alice')
        await store.validate_token(store.issue_token(ALICE))
        assert (await store.get_by_id('alice')).email == 'alice@example.com'
