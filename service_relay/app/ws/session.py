"""
Per-connection relay session.

A session owns one connection from handshake to teardown: it acquires a
store handle, runs a heartbeat that probes the peer and drops it once it
goes quiet for longer than ``client_timeout``, and answers text commands
one at a time.
"""

import asyncio
import time
import uuid
from enum import Enum
from typing import Awaitable, Callable, Optional

from shared.logging import clear_context, get_logger, set_session_context
from shared.errors import StoreError, TransportClosedError
from shared.metrics import MetricsCollector
from ..protocol.commands import CommandDispatcher, parse_command
from ..store.client import StoreClient
from .transport import (
    CLOSE_GOING_AWAY,
    CLOSE_INTERNAL_ERROR,
    CLOSE_NO_STATUS,
    CLOSE_NORMAL,
    Frame,
    FrameType,
    Transport,
)

HEARTBEAT_INTERVAL = 5.0
CLIENT_TIMEOUT = 10.0

RESERVED_CLOSE_CODES = frozenset({1005, 1006, 1015})


class SessionState(str, Enum):
    """Session lifecycle states."""
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSING = "closing"
    TERMINATED = "terminated"


class RelaySession:
    """Session actor for one client connection."""

    def __init__(
        self,
        transport: Transport,
        store_factory: Callable[[], Awaitable[StoreClient]],
        dispatcher: Optional[CommandDispatcher] = None,
        heartbeat_interval: float = HEARTBEAT_INTERVAL,
        client_timeout: float = CLIENT_TIMEOUT,
        metrics: Optional[MetricsCollector] = None,
        session_id: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        if client_timeout <= heartbeat_interval:
            raise ValueError("client_timeout must exceed heartbeat_interval")

        self.transport = transport
        self.store_factory = store_factory
        self.dispatcher = dispatcher or CommandDispatcher(metrics)
        self.heartbeat_interval = heartbeat_interval
        self.client_timeout = client_timeout
        self.metrics = metrics
        self.session_id = session_id or str(uuid.uuid4())
        self.clock = clock
        self.logger = get_logger("relay.ws.session")

        self.state = SessionState.CONNECTING
        self.store: Optional[StoreClient] = None
        self.last_liveness = clock()
        self.close_reason: Optional[str] = None
        self.pings_sent = 0
        self.timed_out = False
        self.started_at: Optional[float] = None

    async def run(self):
        """Drive the session until it terminates."""
        set_session_context(self.session_id, getattr(self.transport, "peer", None))

        if not await self._open():
            return

        receive_task = asyncio.create_task(self._receive_loop())
        heartbeat_task = asyncio.create_task(self._heartbeat_loop())
        try:
            done, _ = await asyncio.wait(
                {receive_task, heartbeat_task},
                return_when=asyncio.FIRST_COMPLETED
            )
            for task in done:
                exc = task.exception()
                if exc is not None:
                    self.logger.error("Unexpected session error", error=str(exc), exc_info=exc)
                    await self._begin_close(CLOSE_INTERNAL_ERROR, "internal error")
        finally:
            for task in (receive_task, heartbeat_task):
                task.cancel()
            await asyncio.gather(receive_task, heartbeat_task, return_exceptions=True)
            await self._teardown()

    async def _open(self) -> bool:
        """CONNECTING -> ACTIVE. Returns False if the session failed closed."""
        try:
            self.store = await self.store_factory()
        except StoreError as e:
            self.logger.error("Store handle unavailable, refusing session", code=e.code, error=e.message)
            self.state = SessionState.TERMINATED
            self.close_reason = "store unavailable"
            await self._safe_close(CLOSE_INTERNAL_ERROR, "store unavailable")
            return False

        self.state = SessionState.ACTIVE
        self.started_at = self.clock()
        self.last_liveness = self.clock()
        self.logger.info("Session started")
        return True

    async def _receive_loop(self):
        while self.state is SessionState.ACTIVE:
            try:
                frame = await self.transport.receive()
            except TransportClosedError as e:
                self.logger.info("Transport closed while receiving", error=e.message)
                await self._begin_close(CLOSE_NO_STATUS, "transport closed")
                return

            await self.handle_frame(frame)

    async def handle_frame(self, frame: Frame):
        """Apply one inbound frame to the session."""
        if self.state is not SessionState.ACTIVE:
            return

        self.logger.debug("WS frame", type=frame.type.value)

        if frame.type is FrameType.PING:
            self.last_liveness = self.clock()
            await self._send(self.transport.pong(frame.data))

        elif frame.type is FrameType.PONG:
            self.last_liveness = self.clock()

        elif frame.type is FrameType.TEXT:
            await self._handle_text(frame.data)

        elif frame.type is FrameType.BINARY:
            await self._send(self.transport.send_binary(frame.data))

        elif frame.type is FrameType.CLOSE:
            self.logger.info("Close frame received", code=frame.close_code, reason=frame.close_reason)
            await self._begin_close(frame.close_code or CLOSE_NORMAL, frame.close_reason, echo=True)

    async def _handle_text(self, text: str):
        command = parse_command(text)
        if command is None:
            self.logger.info("received unknown text", text=text)
            return

        try:
            response = await self.dispatcher.dispatch(command, self.store)
        except StoreError as e:
            self.logger.error(
                "Command failed, closing session",
                key=command.key,
                code=e.code,
                error=e.message,
                details=e.details
            )
            if self.metrics:
                self.metrics.record_error(e.code)
            await self._begin_close(CLOSE_INTERNAL_ERROR, e.code)
            return

        if response is None:
            return

        message = response.render()
        size = len(message.encode("utf-8"))
        if not await self._send(self.transport.send_text(message)):
            return
        if self.metrics:
            self.metrics.increment_counter("bytes_sent_total", size)
        self.logger.info("sent message to client", size=size)

    async def _heartbeat_loop(self):
        while self.state is SessionState.ACTIVE:
            await asyncio.sleep(self.heartbeat_interval)

            if self.clock() - self.last_liveness > self.client_timeout:
                self.logger.info(
                    "Websocket client heartbeat failed, disconnecting",
                    idle_seconds=round(self.clock() - self.last_liveness, 3)
                )
                if self.metrics:
                    self.metrics.increment_counter("heartbeat_timeouts_total")
                self.state = SessionState.TERMINATED
                self.timed_out = True
                self.close_reason = "heartbeat timeout"
                # No probe once the timeout fired.
                return

            try:
                await self.transport.ping(b"")
            except TransportClosedError as e:
                self.logger.info("Transport closed while probing", error=e.message)
                await self._begin_close(CLOSE_NO_STATUS, "transport closed")
                return
            self.pings_sent += 1

    async def _send(self, operation: Awaitable[None]) -> bool:
        """Await a transport send. Returns False once the peer is gone."""
        try:
            await operation
        except TransportClosedError as e:
            self.logger.info("Transport closed while sending", error=e.message)
            await self._begin_close(CLOSE_NO_STATUS, "transport closed")
            return False
        return True

    async def _begin_close(self, code: int, reason: str, echo: bool = False):
        """ACTIVE -> CLOSING -> TERMINATED."""
        if self.state is not SessionState.ACTIVE:
            return

        self.state = SessionState.CLOSING
        self.close_reason = reason or ("close" if echo else None)
        await self._safe_close(code, reason)
        self.state = SessionState.TERMINATED

    async def _safe_close(self, code: int, reason: str):
        # 1005, 1006 and 1015 are reserved and never sent on the wire.
        if code < CLOSE_NORMAL or code in RESERVED_CLOSE_CODES:
            code = CLOSE_NORMAL
        try:
            await self.transport.close(code, reason)
        except (TransportClosedError, OSError) as e:
            self.logger.debug("Transport already closed", error=str(e))

    async def _teardown(self):
        """Release everything the session owns. Runs once per session."""
        self.state = SessionState.TERMINATED

        if self.store is not None:
            store, self.store = self.store, None
            await store.close()

        if self.timed_out:
            await self._safe_close(CLOSE_GOING_AWAY, "heartbeat timeout")

        if self.metrics and self.started_at is not None:
            self.metrics.observe_histogram("session_duration_seconds", self.clock() - self.started_at)

        self.logger.info("Session terminated", reason=self.close_reason)
        clear_context()
