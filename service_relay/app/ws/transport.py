"""
WebSocket transport boundary for relay sessions.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, Set, Union

from websockets.asyncio.server import ServerConnection
from websockets.exceptions import ConnectionClosed

from shared.logging import get_logger
from shared.errors import TransportClosedError

CLOSE_NORMAL = 1000
CLOSE_GOING_AWAY = 1001
CLOSE_NO_STATUS = 1005
CLOSE_INTERNAL_ERROR = 1011


class FrameType(str, Enum):
    """Inbound frame kinds."""
    TEXT = "text"
    BINARY = "binary"
    PING = "ping"
    PONG = "pong"
    CLOSE = "close"


@dataclass(frozen=True)
class Frame:
    """One inbound frame as seen by a session."""
    type: FrameType
    data: Union[str, bytes] = b""
    close_code: Optional[int] = None
    close_reason: str = ""

    @classmethod
    def text(cls, data: str) -> "Frame":
        return cls(FrameType.TEXT, data)

    @classmethod
    def binary(cls, data: bytes) -> "Frame":
        return cls(FrameType.BINARY, data)

    @classmethod
    def ping(cls, data: bytes = b"") -> "Frame":
        return cls(FrameType.PING, data)

    @classmethod
    def pong(cls, data: bytes = b"") -> "Frame":
        return cls(FrameType.PONG, data)

    @classmethod
    def close(cls, code: Optional[int] = None, reason: str = "") -> "Frame":
        return cls(FrameType.CLOSE, close_code=code, close_reason=reason)


class Transport(Protocol):
    """What a session needs from its connection."""

    async def receive(self) -> Frame: ...

    async def send_text(self, data: str) -> None: ...

    async def send_binary(self, data: bytes) -> None: ...

    async def ping(self, data: bytes = b"") -> None: ...

    async def pong(self, data: bytes = b"") -> None: ...

    async def close(self, code: int = CLOSE_NORMAL, reason: str = "") -> None: ...


class WebSocketTransport:
    """Adapts a ``websockets`` server connection to the session transport.

    Data frames are read by a background reader and queued together with
    pongs answering our probes, so the session sees one ordered stream.
    The connection ends with a single ``CLOSE`` frame. Inbound pings are
    answered by ``websockets`` itself and never reach the queue.
    """

    def __init__(self, connection: ServerConnection):
        self.connection = connection
        self.logger = get_logger("relay.ws.transport")
        self._inbox: "asyncio.Queue[Frame]" = asyncio.Queue()
        self._reader: Optional[asyncio.Task] = None
        self._pong_waiters: Set[asyncio.Task] = set()

    @property
    def peer(self) -> str:
        address = self.connection.remote_address
        if isinstance(address, tuple) and len(address) >= 2:
            return f"{address[0]}:{address[1]}"
        return str(address)

    async def receive(self) -> Frame:
        if self._reader is None:
            self._reader = asyncio.create_task(self._read())
        return await self._inbox.get()

    async def send_text(self, data: str) -> None:
        await self._send(data)

    async def send_binary(self, data: bytes) -> None:
        await self._send(data)

    async def ping(self, data: bytes = b"") -> None:
        # Empty probes get a random payload so overlapping pings stay distinct.
        try:
            waiter = await self.connection.ping(data or None)
        except ConnectionClosed as e:
            raise TransportClosedError(str(e))

        task = asyncio.create_task(self._await_pong(waiter, data))
        self._pong_waiters.add(task)
        task.add_done_callback(self._pong_waiters.discard)

    async def pong(self, data: bytes = b"") -> None:
        try:
            await self.connection.pong(data)
        except ConnectionClosed as e:
            raise TransportClosedError(str(e))

    async def close(self, code: int = CLOSE_NORMAL, reason: str = "") -> None:
        # No-op when the closing handshake already happened.
        await self.connection.close(code, reason)

    async def aclose(self):
        """Stop background tasks. Called once the session is over."""
        tasks = list(self._pong_waiters)
        if self._reader is not None:
            tasks.append(self._reader)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _send(self, message: Union[str, bytes]) -> None:
        try:
            await self.connection.send(message)
        except ConnectionClosed as e:
            raise TransportClosedError(str(e))

    async def _read(self):
        try:
            async for message in self.connection:
                if isinstance(message, str):
                    await self._inbox.put(Frame.text(message))
                else:
                    await self._inbox.put(Frame.binary(message))
        except ConnectionClosed as e:
            self.logger.info("connection closed abnormally", peer=self.peer, error=str(e))

        await self._inbox.put(Frame.close(self.connection.close_code, self.connection.close_reason or ""))

    async def _await_pong(self, waiter, data: bytes):
        try:
            await waiter
        except ConnectionClosed:
            return
        await self._inbox.put(Frame.pong(data))
