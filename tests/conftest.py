import asyncio
import os
import socket
import sys
import urllib.request
from pathlib import Path

import httpx
import pytest


REPO_ROOT = Path(__file__).resolve().parents[1]
SRC = REPO_ROOT / "src"

# Prefer repo sources over any installed package.
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from deed_explorer.settings import Settings  # noqa: E402


PIN_BASE = "https://cdn.test/pin/"
ENTITY_BASE = "https://cdn.test/entity/"
MAPPING_URL = "https://cdn.test/entity_files.json"


@pytest.fixture(autouse=True)
def block_network(monkeypatch):
    if os.getenv("LIVE") == "1":
        return

    real_connect = socket.socket.connect

    def guarded_connect(sock, address):
        host = address[0]
        if host not in ("127.0.0.1", "localhost"):
            raise RuntimeError("Network access blocked in tests")
        return real_connect(sock, address)

    monkeypatch.setattr(socket.socket, "connect", guarded_connect)
    monkeypatch.setattr(
        urllib.request,
        "urlopen",
        lambda *args, **kwargs: (_ for _ in ()).throw(
            RuntimeError("Network access blocked in tests")
        ),
    )


class FakeRecordStore:
    """In-process stand-in for the static record CDN.

    ``routes`` maps a URL path to ``(status, body)`` or to an exception to
    raise; unknown paths answer 404. Every request is recorded.
    """

    def __init__(self, routes=None, delay=0.0, delays=None):
        self.routes = dict(routes or {})
        self.delay = delay
        self.delays = dict(delays or {})
        self.requests = []

    async def handler(self, request):
        self.requests.append((request.method, request.url.path))
        delay = self.delays.get(request.url.path, self.delay)
        if delay:
            await asyncio.sleep(delay)
        entry = self.routes.get(request.url.path)
        if entry is None:
            return httpx.Response(404, text="Not Found")
        if isinstance(entry, Exception):
            raise entry
        status, body = entry
        if isinstance(body, (dict, list)):
            return httpx.Response(status, json=body)
        return httpx.Response(status, text=body)

    def client(self):
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def count(self, path, method="GET"):
        return sum(1 for m, p in self.requests if m == method and p == path)


@pytest.fixture
def record_store():
    return FakeRecordStore()


@pytest.fixture
def settings():
    return Settings(
        pin_api_url=PIN_BASE,
        entity_api_url=ENTITY_BASE,
        entity_mapping_url=MAPPING_URL,
        debounce_ms=20,
        highlight_limit=1000,
        http_timeout_s=5.0,
        cache_max_entries=None,
        user_agent="deed-explorer-tests",
        parcel_geojson=None,
    )


def square(x, y, size=0.001):
    return {
        "type": "Polygon",
        "coordinates": [
            [[x, y], [x + size, y], [x + size, y + size], [x, y + size], [x, y]]
        ],
    }


def parcel_feature(pin, x, y, size=0.001):
    return {"type": "Feature", "properties": {"name": pin}, "geometry": square(x, y, size)}
