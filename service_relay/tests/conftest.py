"""
Shared fixtures for Relay Service tests.
"""

import asyncio
from typing import Dict, List, Optional

import pytest

from shared.errors import KeyNotFoundError


class FakeTransport:
    """In-memory transport recording everything a session sends."""

    def __init__(self):
        self.inbound: "asyncio.Queue" = asyncio.Queue()
        self.sent: List[tuple] = []
        self.closed_with: Optional[tuple] = None

    def feed(self, *frames):
        for frame in frames:
            self.inbound.put_nowait(frame)

    @property
    def texts(self) -> List[str]:
        return [item[1] for item in self.sent if item[0] == "text"]

    @property
    def kinds(self) -> List[str]:
        return [item[0] for item in self.sent]

    async def receive(self):
        return await self.inbound.get()

    async def send_text(self, data: str) -> None:
        self.sent.append(("text", data))

    async def send_binary(self, data: bytes) -> None:
        self.sent.append(("binary", data))

    async def ping(self, data: bytes = b"") -> None:
        self.sent.append(("ping", data))

    async def pong(self, data: bytes = b"") -> None:
        self.sent.append(("pong", data))

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.sent.append(("close", code, reason))
        if self.closed_with is None:
            self.closed_with = (code, reason)


class FakeStore:
    """Dict-backed stand-in for a store handle."""

    def __init__(self, scalars: Optional[Dict[str, str]] = None, lists: Optional[Dict[str, List[str]]] = None):
        self.scalars = scalars or {}
        self.lists = lists or {}
        self.calls: List[tuple] = []
        self.closed = False
        self.gate: Optional[asyncio.Event] = None

    async def get_scalar(self, key: str) -> str:
        self.calls.append(("get", key))
        if self.gate is not None:
            await self.gate.wait()
        if key not in self.scalars:
            raise KeyNotFoundError(key)
        return self.scalars[key]

    async def get_list_range(self, key: str, start: int = 0, end: int = -1) -> List[str]:
        self.calls.append(("lrange", key, start, end))
        if self.gate is not None:
            await self.gate.wait()
        return list(self.lists.get(key, []))

    async def close(self):
        self.closed = True


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


async def wait_until(predicate, timeout: float = 2.0):
    """Poll until ``predicate()`` is truthy."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def store():
    return FakeStore(
        scalars={"am:user:42": "Alice"},
        lists={
            "amq:playlist:7": ['{"name":"squat","repeat":3,"text":null}'],
        }
    )


@pytest.fixture
def clock():
    return FakeClock()
