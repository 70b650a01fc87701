"""
Pytest Configuration and Fixtures
"""

import asyncio
import json
import sys
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from camper_core.config import ClientConfig
from camper_core.events import EventSocket

BASE_URL = "http://forest.test"

_CLOSE = object()


# =============================================================================
# HTTP
# =============================================================================

class ForestRouter:
    """
    Route table for httpx.MockTransport.

    Maps request paths (without query) to JSON bodies, httpx.Response objects
    or callables taking the request. Records every request seen.
    """

    def __init__(self, routes: Optional[Dict[str, Any]] = None):
        self.routes: Dict[str, Any] = dict(routes or {})
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, text="not found")
        if callable(route):
            route = route(request)
        if isinstance(route, httpx.Response):
            return route
        return httpx.Response(200, json=route)

    def count(self, path: str) -> int:
        return sum(1 for request in self.requests if request.url.path == path)


@pytest.fixture
def router() -> ForestRouter:
    return ForestRouter()


@pytest.fixture
def transport(router: ForestRouter) -> httpx.MockTransport:
    return httpx.MockTransport(router)


@pytest.fixture
def client_config() -> ClientConfig:
    return ClientConfig(base_url=BASE_URL, api_prefix="/api/v1", timeout_ms=1000)


# =============================================================================
# Event stream
# =============================================================================

class FakeSocket(EventSocket):
    """In-memory EventSocket fed through push()/drop()/finish()."""

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._open = True
        self.closed_gracefully = False
        self.aborted = False

    @property
    def open(self) -> bool:
        return self._open

    def push(self, frame: Any):
        self._queue.put_nowait(frame)

    def push_json(self, payload: Dict[str, Any]):
        self.push(json.dumps(payload))

    def finish(self):
        """Clean close from the server side."""
        self._queue.put_nowait(_CLOSE)

    def drop(self, error: Optional[Exception] = None):
        """Abnormal close from the network side."""
        self._queue.put_nowait(error or ConnectionResetError("connection reset"))

    def __aiter__(self):
        return self._frames()

    async def _frames(self):
        while True:
            item = await self._queue.get()
            if item is _CLOSE:
                self._open = False
                return
            if isinstance(item, Exception):
                self._open = False
                raise item
            yield item

    async def close(self):
        self.closed_gracefully = True
        self.finish()

    def abort(self):
        self.aborted = True
        self.finish()


class FakeConnector:
    """
    Connector handing out FakeSockets. `failures` makes the first N attempts
    raise; `hold` keeps an attempt pending until released.
    """

    def __init__(self, failures: int = 0, hold: bool = False):
        self.failures = failures
        self.hold = hold
        self.attempts: List[str] = []
        self.attempt_times: List[float] = []
        self.protocols: List[Any] = []
        self.sockets: List[FakeSocket] = []
        self._released = asyncio.Event()

    def release(self):
        self._released.set()

    async def __call__(self, url: str, protocols=None) -> FakeSocket:
        self.attempts.append(url)
        self.attempt_times.append(time.monotonic())
        self.protocols.append(protocols)
        if self.hold:
            await self._released.wait()
        if len(self.attempts) <= self.failures:
            raise ConnectionRefusedError("connection refused")
        socket = FakeSocket()
        self.sockets.append(socket)
        return socket

    async def wait_for_socket(self, index: int = 0, timeout: float = 1.0) -> FakeSocket:
        async def _wait():
            while len(self.sockets) <= index:
                await asyncio.sleep(0.001)
            return self.sockets[index]
        return await asyncio.wait_for(_wait(), timeout)

    async def wait_for_attempts(self, count: int, timeout: float = 1.0):
        async def _wait():
            while len(self.attempts) < count:
                await asyncio.sleep(0.001)
        await asyncio.wait_for(_wait(), timeout)


@pytest.fixture
def connector() -> Callable[..., FakeConnector]:
    """Factory so tests can choose failures/hold."""
    return FakeConnector


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0):
    """Poll predicate on the event loop until true."""
    async def _wait():
        while not predicate():
            await asyncio.sleep(0.001)
    await asyncio.wait_for(_wait(), timeout)
