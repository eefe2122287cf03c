"""
Text command parsing and dispatch for the Relay Service.

A command frame looks like ``<prefix>:<rest>``. The whole frame, prefix
included, is the store key, so responses can echo it back verbatim for
client-side correlation.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Protocol

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .encoder import OutgoingFrame, encode_records, encode_scalar
from .records import decode_entries

DELIMITER = ":"


class CommandPrefix(str, Enum):
    """Recognized command prefixes."""
    SCALAR = "am:"
    LIST = "amq:"
    UNRECOGNIZED = "unrecognized"

    @classmethod
    def from_token(cls, token: str) -> "CommandPrefix":
        for prefix in (cls.SCALAR, cls.LIST):
            if prefix.value == token:
                return prefix
        return cls.UNRECOGNIZED


@dataclass(frozen=True)
class Command:
    """Parsed view of one inbound text frame."""
    prefix: CommandPrefix
    token: str
    key: str


class CommandStore(Protocol):
    """Store operations a command can use."""

    async def get_scalar(self, key: str) -> str: ...

    async def get_list_range(self, key: str, start: int = 0, end: int = -1) -> List[str]: ...


def parse_command(text: str) -> Optional[Command]:
    """Split a frame at its first delimiter. Frames without one are not commands."""
    index = text.find(DELIMITER)
    if index == -1:
        return None

    token = text[:index + 1]
    return Command(prefix=CommandPrefix.from_token(token), token=token, key=text)


class CommandDispatcher:
    """Routes parsed commands to store reads and response encoders.

    Store and decode errors are not handled here; they propagate to the
    session, which owns the decision to close the connection.
    """

    def __init__(self, metrics: Optional[MetricsCollector] = None):
        self.metrics = metrics
        self.logger = get_logger("relay.protocol.dispatcher")
        self._handlers: Dict[CommandPrefix, Callable[[Command, CommandStore], Awaitable[OutgoingFrame]]] = {
            CommandPrefix.SCALAR: self._handle_scalar,
            CommandPrefix.LIST: self._handle_list,
        }

    async def dispatch(self, command: Command, store: CommandStore) -> Optional[OutgoingFrame]:
        """Run a command. Returns ``None`` for unrecognized prefixes."""
        handler = self._handlers.get(command.prefix)
        if handler is None:
            self.logger.info("received unknown text", text=command.key, prefix=command.token)
            self._count(command, "unrecognized")
            return None

        try:
            frame = await handler(command, store)
        except Exception:
            self._count(command, "error")
            raise

        self._count(command, "ok")
        return frame

    async def _handle_scalar(self, command: Command, store: CommandStore) -> OutgoingFrame:
        start_time = time.monotonic()
        try:
            value = await store.get_scalar(command.key)
        finally:
            self._observe_store("get", start_time)

        self.logger.info("fetched data from store", key=command.key, size=len(value.encode("utf-8")))
        return encode_scalar(command.key, value)

    async def _handle_list(self, command: Command, store: CommandStore) -> OutgoingFrame:
        start_time = time.monotonic()
        try:
            entries = await store.get_list_range(command.key, 0, -1)
        finally:
            self._observe_store("lrange", start_time)

        records = decode_entries(entries)
        self.logger.info("fetched list from store", key=command.key, list_size=len(records))
        return encode_records(command.key, records)

    def _count(self, command: Command, outcome: str):
        if self.metrics:
            self.metrics.increment_counter("commands_total", prefix=command.prefix.value, outcome=outcome)

    def _observe_store(self, operation: str, start_time: float):
        if self.metrics:
            self.metrics.observe_histogram(
                "store_request_duration_seconds",
                time.monotonic() - start_time,
                operation=operation
            )
