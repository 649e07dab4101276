from __future__ import annotations

import asyncio

import pytest

from fileserver import main
from fileserver.config import Settings
from fileserver.schemas import MountConfig


def _call(app, method: str, path: str, query: bytes = b''):
    scope = {
        'type': 'http',
        'asgi': {'version': '3.0'},
        'http_version': '1.1',
        'method': method,
        'scheme': 'http',
        'path': path,
        'raw_path': path.encode(),
        'root_path': '',
        'query_string': query,
        'headers': [(b'host', b'testserver')],
        'client': ('127.0.0.1', 12345),
        'server': ('testserver', 80),
    }
    messages = []

    async def _run():
        sent = False
        disconnected = asyncio.Event()

        async def receive():
            nonlocal sent
            if not sent:
                sent = True
                return {'type': 'http.request', 'body': b'', 'more_body': False}
            await disconnected.wait()
            return {'type': 'http.disconnect'}

        async def send(message):
            messages.append(message)

        await app(scope, receive, send)

    asyncio.run(_run())
    start = next(m for m in messages if m['type'] == 'http.response.start')
    body = b''.join(m.get('body', b'') for m in messages if m['type'] == 'http.response.body')
    return start['status'], dict(start['headers']), body


def _app(*mounts: MountConfig):
    return main.create_app(Settings(_env_file=None, mounts=list(mounts)))


@pytest.fixture()
def share(tmp_path):
    root = tmp_path / 'share'
    (root / 'docs').mkdir(parents=True)
    (root / 'docs' / 'a.txt').write_bytes(b'alpha')
    (root / 'notes.txt').write_bytes(b'notes')
    return root


@pytest.mark.parametrize('path', ['/files', '/files/'])
def test_prefix_with_trailing_slash_lists_mount_root(share, path):
    app = _app(MountConfig(route_prefix='/files/', root_path=str(share)))

    status, headers, body = _call(app, 'GET', path)

    assert status == 200
    assert headers[b'content-type'].startswith(b'text/html')
    assert b'notes.txt' in body
    assert b'Index of share' in body


def test_prefix_with_trailing_slash_serves_files(share):
    app = _app(MountConfig(route_prefix='/files/', root_path=str(share)))

    status, _, body = _call(app, 'GET', '/files/notes.txt')

    assert status == 200
    assert body == b'notes'


def test_nested_mount_wins_over_parent(share, tmp_path):
    other = tmp_path / 'other'
    other.mkdir()
    (other / 'inner.txt').write_bytes(b'inner')
    app = _app(
        MountConfig(route_prefix='/files', root_path=str(share)),
        MountConfig(route_prefix='/files/docs', root_path=str(other)),
    )

    assert _call(app, 'GET', '/files/docs/inner.txt')[2] == b'inner'
    assert _call(app, 'GET', '/files/docs/a.txt')[0] == 404
    assert _call(app, 'GET', '/files/notes.txt')[2] == b'notes'


def test_unsupported_method_is_plain_text_405(share):
    app = _app(MountConfig(route_prefix='/files', root_path=str(share)))

    status, headers, body = _call(app, 'PUT', '/files/notes.txt')

    assert status == 405
    assert body == b'Method Not Allowed'
    assert headers[b'content-type'].startswith(b'text/plain')
    assert b'GET' in headers[b'allow']


def test_missing_path_is_plain_text_404(share):
    app = _app(MountConfig(route_prefix='/files', root_path=str(share)))

    status, _, body = _call(app, 'GET', '/files/nope')

    assert status == 404
    assert body == b'Not Found'
