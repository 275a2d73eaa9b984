"""
Shared fixtures and helpers for the Stalking Stairs Mod Manager test suite.

No test touches the network: every request goes through ``FakeGitHub``, an
``httpx.MockTransport`` handler with canned responses per URL.
"""

import io
import json
import zipfile
from pathlib import Path

import httpx
import pytest
import pytest_asyncio

from error_log import ErrorLog

MANIFEST_URL = "https://example.test/mods.json"


def zip_bytes(members: dict[str, str | bytes]) -> bytes:
    """Build an in-memory zip archive from {member: content}."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for member, data in members.items():
            zf.writestr(member, data)
    return buf.getvalue()


class FakeGitHub:
    """Serve canned responses keyed by full URL and record every request.

    Each queued item is one of: an exception (raised as a transport error),
    an int status code, str/bytes body, a dict/list (served as JSON), or a
    callable taking the request and returning an ``httpx.Response``. Items
    are consumed in order; the last one keeps being served.
    """

    def __init__(self):
        self.routes: dict[str, list] = {}
        self.requests: list[httpx.Request] = []

    def add(self, url: str, *items):
        self.routes[url] = list(items)

    def count(self, url: str) -> int:
        return sum(1 for r in self.requests if str(r.url) == url)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get(str(request.url))
        if not queue:
            return httpx.Response(404, json={"message": "Not Found"})
        item = queue.pop(0) if len(queue) > 1 else queue[0]

        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(request)
        if isinstance(item, int):
            return httpx.Response(item)
        if isinstance(item, (dict, list)):
            return httpx.Response(200, content=json.dumps(item).encode())
        if isinstance(item, str):
            item = item.encode()
        return httpx.Response(200, content=item)


@pytest.fixture
def github():
    return FakeGitHub()


@pytest_asyncio.fixture
async def client(github):
    async with httpx.AsyncClient(transport=httpx.MockTransport(github.handler)) as c:
        yield c


@pytest.fixture
def game_dir(tmp_path) -> Path:
    game = tmp_path / "game"
    game.mkdir()
    return game


@pytest.fixture
def temp_dir(tmp_path) -> Path:
    tmp = tmp_path / "tmp"
    tmp.mkdir()
    return tmp


@pytest.fixture
def error_log(tmp_path) -> ErrorLog:
    return ErrorLog(tmp_path / "logs", fallback_dir=tmp_path)
