"""Shared fixtures for angkor_offline tests."""

import httpx
import pytest

from angkor_offline.events import EventEmitter
from angkor_offline.storage import MemoryStore

ORIGIN = "http://app.test"


class FakeClock:
    """Manually advanced clock returning seconds since epoch."""

    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.now_ms = start_ms

    def __call__(self) -> float:
        return self.now_ms / 1000

    def advance_ms(self, ms: int) -> None:
        self.now_ms += ms


class RecordingHandler:
    """Collects every request and answers through a route table."""

    def __init__(self, routes=None, default_status: int = 200):
        self.routes = routes or {}
        self.default_status = default_status
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            route = self.routes.get(request.url.path)
        if callable(route):
            return route(request)
        if isinstance(route, httpx.Response):
            return route
        if isinstance(route, int):
            return httpx.Response(route, text=f"{request.url.path}")
        return httpx.Response(self.default_status, text=f"{request.url.path}")

    def calls(self, path: str, method: str = None) -> int:
        return sum(
            1 for r in self.requests
            if r.url.path == path and (method is None or r.method == method)
        )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def session_store():
    return MemoryStore()


@pytest.fixture
def emitter():
    return EventEmitter()


@pytest.fixture
def handler():
    return RecordingHandler()


@pytest.fixture
def client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=ORIGIN)


@pytest.fixture
def collected(emitter):
    """Every event emitted on the shared emitter, in order."""
    events = []
    emitter.on_any(events.append)
    return events
