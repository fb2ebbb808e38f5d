"""Tests for public share access endpoints.

Validates:
  - Directory shares return listings; file shares stream with an
    attachment content-disposition.
  - View permission never streams bytes.
  - Gone reasons map to distinct 410 codes.
  - Password flow: marker on GET, listing on correct POST, 401 on wrong.
  - Sub-folder browsing via ``?path=``.
  - No auth needed; a signed-in caller is tolerated.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from filevault.app import create_app
from filevault.security.sessions import InMemorySessionStore, User
from filevault.sharing.audit import SHARE_DOWNLOADED, InMemoryShareAuditEmitter
from filevault.sharing.model import InMemoryShareRepository

OWNER = User(id='owner', email='owner@example.com')


# ── Test helpers ──────────────────────────────────────────────────────


@pytest.fixture
def sessions():
    store = InMemorySessionStore()
    store.add_user(OWNER)
    return store


@pytest.fixture
def audit():
    return InMemoryShareAuditEmitter()


@pytest.fixture
def app(settings, storage, sessions, audit):
    return create_app(
        settings,
        share_repo=InMemoryShareRepository(),
        session_store=sessions,
        storage=storage,
        audit_emitter=audit,
    )


@pytest.fixture
def owner(sessions):
    return {'Authorization': f'Bearer {sessions.issue_token("owner")}'}


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url='http://test')


async def _create(c: AsyncClient, headers: dict, **body) -> dict:
    r = await c.post('/api/shares', json=body, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


# =====================================================================
# Delivery
# =====================================================================


class TestDirectoryShare:

    @pytest.mark.asyncio
    async def test_listing(self, app, owner):
        async with _client(app) as c:
            share = await _create(c, owner, path='docs')
            r = await c.get(f'/api/s/{share["token"]}')
            assert r.status_code == 200
            data = r.json()
            assert data['path'] == 'docs'
            assert data['isDir'] is True
            assert data['permission'] == 'download'
            assert [f['name'] for f in data['files']] == ['sub', 'guide.md', 'readme.txt']
            sub = data['files'][0]
            assert sub['isDir'] is True
            assert sub['path'] == 'docs/sub'

    @pytest.mark.asyncio
    async def test_listing_does_not_count(self, app, owner):
        async with _client(app) as c:
            share = await _create(c, owner, path='docs', maxDownloads=1)
            for _ in range(3):
                r = await c.get(f'/api/s/{share["token"]}')
                assert r.status_code == 200
            info = (await c.get(f'/api/shares/{share["id"]}', headers=owner)).json()
            assert info['downloads'] == 0

    @pytest.mark.asyncio
    async def test_subfolder(self, app, owner):
        async with _client(app) as c:
            share = await _create(c, owner, path='docs')
            r = await c.get(f'/api/s/{share["token"]}', params={'path': 'sub'})
            assert r.status_code == 200
            assert [f['name'] for f in r.json()['files']] == ['note.txt']

    @pytest.mark.asyncio
    async def test_subfolder_escape_is_400(self, app, owner):
        async with _client(app) as c:
            share = await _create(c, owner, path='docs')
            r = await c.get(f'/api/s/{share["token"]}', params={'path': '../photos'})
            assert r.status_code == 400
            assert r.json()['error'] == 'validation_error'

    @pytest.mark.asyncio
    async def test_root_share_hides_avatars(self, app, owner):
        async with _client(app) as c:
            share = await _create(c, owner, path='/')
            r = await c.get(f'/api/s/{share["token"]}')
            names = [f['name'] for f in r.json()['files']]
            assert '.avatars' not in names


class TestFileShare:

    @pytest.mark.asyncio
    async def test_download_streams_attachment(self, app, owner, audit):
        async with _client(app) as c:
            share = await _create(c, owner, path='report.pdf')
            r = await c.get(f'/api/s/{share["token"]}')
            assert r.status_code == 200
            assert r.content == b'%PDF-1.4 report'
            assert r.headers['content-type'] == 'application/octet-stream'
            disposition = r.headers['content-disposition']
            assert disposition.startswith('attachment')
            assert 'report.pdf' in disposition
            assert len(audit.find(SHARE_DOWNLOADED, share['id'])) == 1

    @pytest.mark.asyncio
    async def test_nested_file_uses_last_component(self, app, owner):
        async with _client(app) as c:
            share = await _create(c, owner, path='docs/sub/note.txt')
            r = await c.get(f'/api/s/{share["token"]}')
            assert 'filename="note.txt"' in r.headers['content-disposition']
            assert r.text == 'note'

    @pytest.mark.asyncio
    async def test_view_permission_returns_metadata(self, app, owner):
        async with _client(app) as c:
            share = await _create(c, owner, path='report.pdf', permission='view')
            r = await c.get(f'/api/s/{share["token"]}')
            assert r.status_code == 200
            assert r.headers['content-type'].startswith('application/json')
            data = r.json()
            assert data['isDir'] is False
            assert data['file']['name'] == 'report.pdf'
            assert data['file']['size'] == len(b'%PDF-1.4 report')
            assert 'content-disposition' not in r.headers

    @pytest.mark.asyncio
    async def test_single_use_link(self, app, owner):
        async with _client(app) as c:
            share = await _create(c, owner, path='report.pdf', maxDownloads=1)
            r1 = await c.get(f'/api/s/{share["token"]}')
            r2 = await c.get(f'/api/s/{share["token"]}')
            assert r1.status_code == 200
            assert r2.status_code == 410
            assert r2.json()['error'] == 'share_download_limit_reached'

            info = (await c.get(f'/api/shares/{share["id"]}', headers=owner)).json()
            assert info['downloads'] == 1

    @pytest.mark.asyncio
    async def test_missing_content_is_404(self, app, owner, storage_root):
        async with _client(app) as c:
            share = await _create(c, owner, path='docs/guide.md')
            (storage_root / 'docs' / 'guide.md').unlink()
            r = await c.get(f'/api/s/{share["token"]}')
            assert r.status_code == 404
            assert r.json()['error'] == 'share_content_missing'


# =====================================================================
# Terminal states
# =====================================================================


class TestGoneAndNotFound:

    @pytest.mark.asyncio
    async def test_unknown_token_is_404(self, app):
        async with _client(app) as c:
            r = await c.get('/api/s/not-a-real-token')
            assert r.status_code == 404
            assert r.json() == {'error': 'share_not_found', 'detail': 'Share not found'}

    @pytest.mark.asyncio
    async def test_expired_is_410(self, app, owner):
        past = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()
        async with _client(app) as c:
            share = await _create(c, owner, path='docs', expiresAt=past)
            r = await c.get(f'/api/s/{share["token"]}')
            assert r.status_code == 410
            assert r.json()['error'] == 'share_expired'

    @pytest.mark.asyncio
    async def test_reasons_are_distinguishable(self, app, owner):
        past = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()
        async with _client(app) as c:
            expired = await _create(c, owner, path='docs', expiresAt=past)
            exhausted = await _create(c, owner, path='report.pdf', maxDownloads=0)
            revoked = await _create(c, owner, path='photos')
            await c.patch(
                f'/api/shares/{revoked["id"]}', json={'isActive': False}, headers=owner,
            )

            codes = set()
            for share in (expired, exhausted, revoked):
                r = await c.get(f'/api/s/{share["token"]}')
                assert r.status_code == 410
                codes.add(r.json()['error'])
            assert codes == {
                'share_expired', 'share_download_limit_reached', 'share_inactive',
            }


# =====================================================================
# Password flow
# =====================================================================


class TestPasswordShare:

    @pytest.mark.asyncio
    async def test_scenario(self, app, owner):
        async with _client(app) as c:
            share = await _create(
                c, owner, path='docs', shareType='password',
                password='s3cr3t', permission='view',
            )
            url = f'/api/s/{share["token"]}'

            r = await c.get(url)
            assert r.status_code == 200
            assert r.json() == {'requiresPassword': True, 'path': 'docs'}

            r = await c.post(url, json={'password': 's3cr3t'})
            assert r.status_code == 200
            assert [f['name'] for f in r.json()['files']] == ['sub', 'guide.md', 'readme.txt']

            r = await c.post(url, json={'password': 'wrong'})
            assert r.status_code == 401
            assert r.json()['error'] == 'invalid_password'

    @pytest.mark.asyncio
    async def test_post_without_body_returns_marker(self, app, owner):
        async with _client(app) as c:
            share = await _create(
                c, owner, path='docs', shareType='password', password='pw',
            )
            r = await c.post(f'/api/s/{share["token"]}')
            assert r.json() == {'requiresPassword': True, 'path': 'docs'}

    @pytest.mark.asyncio
    async def test_marker_hides_file_or_folder(self, app, owner):
        async with _client(app) as c:
            share = await _create(
                c, owner, path='report.pdf', shareType='password', password='pw',
            )
            r = await c.get(f'/api/s/{share["token"]}')
            assert set(r.json()) == {'requiresPassword', 'path'}

    @pytest.mark.asyncio
    async def test_correct_password_downloads_file(self, app, owner):
        async with _client(app) as c:
            share = await _create(
                c, owner, path='report.pdf', shareType='password',
                password='pw', maxDownloads=1,
            )
            url = f'/api/s/{share["token"]}'
            r = await c.post(url, json={'password': 'bad'})
            assert r.status_code == 401

            r = await c.post(url, json={'password': 'pw'})
            assert r.status_code == 200
            assert r.content == b'%PDF-1.4 report'

            r = await c.post(url, json={'password': 'pw'})
            assert r.status_code == 410


# =====================================================================
# Auth interplay
# =====================================================================


class TestPublicAccessAuth:

    def test_signed_in_caller_allowed(self, app, sessions):
        with TestClient(app) as client:
            token = sessions.issue_token('owner')
            headers = {'Authorization': f'Bearer {token}'}
            share = client.post('/api/shares', json={'path': 'docs'}, headers=headers).json()
            r = client.get(f'/api/s/{share["token"]}', headers=headers)
            assert r.status_code == 200

    def test_bad_session_ignored_on_public_route(self, app, sessions):
        with TestClient(app) as client:
            token = sessions.issue_token('owner')
            share = client.post(
                '/api/shares', json={'path': 'docs'},
                headers={'Authorization': f'Bearer {token}'},
            ).json()
            r = client.get(
                f'/api/s/{share["token"]}',
                headers={'Authorization': 'Bearer expired-or-garbage'},
            )
            assert r.status_code == 200
