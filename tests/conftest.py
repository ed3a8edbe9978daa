"""
Shared fixtures: an in-memory websocket transport.
"""

import asyncio
import json
from typing import List, Optional
from unittest.mock import patch

import pytest
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK
from websockets.protocol import State


_CLOSED = object()

PONG_RESPONSE = {
    "success": True,
    "ret_msg": "pong",
    "conn_id": "test-conn",
    "request": {"op": "ping", "args": None}
}


class FakeWebSocket:
    """Websocket connection double fed by the test."""

    def __init__(self, url: str, auto_pong: bool = True):
        self.url = url
        self.auto_pong = auto_pong
        self.state = State.OPEN
        self.sent: List[str] = []
        self.close_calls = 0
        self.closed_at: Optional[float] = None
        self._incoming: asyncio.Queue = asyncio.Queue()

    @property
    def frames(self) -> List[dict]:
        return [json.loads(message) for message in self.sent]

    def ops(self, op: str) -> List[dict]:
        return [frame for frame in self.frames if frame.get("op") == op]

    async def send(self, message: str):
        if self.state is not State.OPEN:
            raise ConnectionClosedOK(None, None)
        self.sent.append(message)

        if self.auto_pong and json.loads(message) == {"op": "ping"}:
            self.feed(PONG_RESPONSE)

    def feed(self, frame):
        """Queue an inbound frame (dict frames are JSON encoded)."""
        self._incoming.put_nowait(frame if isinstance(frame, (str, bytes)) else json.dumps(frame))

    def drop(self, error: Optional[Exception] = None):
        """Simulate an abnormal transport failure."""
        self.state = State.CLOSED
        self._incoming.put_nowait(error or ConnectionClosedError(None, None))

    async def close(self):
        self.close_calls += 1
        if self.state is State.OPEN:
            self.state = State.CLOSED
            self.closed_at = asyncio.get_running_loop().time()
            self._incoming.put_nowait(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._incoming.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


class FakeTransport:
    """Replacement for websockets.connect recording every attempt."""

    def __init__(self):
        self.urls: List[str] = []
        self.kwargs: List[dict] = []
        self.connect_times: List[float] = []
        self.sockets: List[FakeWebSocket] = []
        self.failures: List[Exception] = []
        self.silent_sockets = 0           # first N sockets never answer pings
        self.gate: Optional[asyncio.Event] = None

    @property
    def attempts(self) -> int:
        return len(self.urls)

    async def connect(self, url, **kwargs):
        self.urls.append(url)
        self.kwargs.append(kwargs)
        self.connect_times.append(asyncio.get_running_loop().time())

        if self.gate is not None:
            await self.gate.wait()

        if self.failures:
            raise self.failures.pop(0)

        ws = FakeWebSocket(url, auto_pong=len(self.sockets) >= self.silent_sockets)
        self.sockets.append(ws)
        return ws


@pytest.fixture
def transport():
    """Patch websockets.connect with an in-memory transport."""
    fake = FakeTransport()
    with patch("bybit_stream.exchange.websocket_client.websockets.connect", new=fake.connect):
        yield fake


@pytest.fixture
def wait_until():
    """Poll a predicate until it holds or the timeout expires."""
    async def _wait_until(predicate, timeout: float = 2.0, interval: float = 0.005):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("Condition not met before timeout")
            await asyncio.sleep(interval)

    return _wait_until
