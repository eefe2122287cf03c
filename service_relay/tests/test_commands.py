"""
Unit tests for command parsing and dispatch.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from conftest import FakeStore
from service_relay.app.protocol.commands import (
    Command,
    CommandDispatcher,
    CommandPrefix,
    parse_command,
)
from service_relay.app.protocol.encoder import OutgoingFrame
from shared.errors import KeyNotFoundError, RecordDecodeError, StoreUnavailableError


class TestParseCommand:
    """Test cases for parse_command."""

    def test_scalar_prefix(self):
        command = parse_command("am:user:42")

        assert command == Command(prefix=CommandPrefix.SCALAR, token="am:", key="am:user:42")

    def test_list_prefix(self):
        command = parse_command("amq:playlist:7")

        assert command.prefix is CommandPrefix.LIST
        assert command.token == "amq:"

    def test_key_is_full_frame(self):
        """The key keeps its prefix and every later delimiter."""
        command = parse_command("am:a:b:c")

        assert command.key == "am:a:b:c"

    def test_no_delimiter_is_not_a_command(self):
        assert parse_command("hello") is None
        assert parse_command("") is None

    def test_unrecognized_prefix(self):
        command = parse_command("xyz:foo")

        assert command.prefix is CommandPrefix.UNRECOGNIZED
        assert command.token == "xyz:"
        assert command.key == "xyz:foo"

    def test_prefix_match_is_exact(self):
        assert parse_command("AM:user").prefix is CommandPrefix.UNRECOGNIZED
        assert parse_command(" am:user").prefix is CommandPrefix.UNRECOGNIZED
        assert parse_command("amqq:list").prefix is CommandPrefix.UNRECOGNIZED

    def test_leading_delimiter(self):
        command = parse_command(":foo")

        assert command.token == ":"
        assert command.prefix is CommandPrefix.UNRECOGNIZED


class TestCommandDispatcher:
    """Test cases for CommandDispatcher."""

    @pytest.fixture
    def dispatcher(self):
        return CommandDispatcher()

    @pytest.mark.asyncio
    async def test_dispatch_scalar(self, dispatcher, store):
        frame = await dispatcher.dispatch(parse_command("am:user:42"), store)

        assert frame == OutgoingFrame(key="am:user:42", payload="Alice")
        assert frame.render() == "am:user:42::Alice"

    @pytest.mark.asyncio
    async def test_dispatch_scalar_keeps_value_verbatim(self, dispatcher):
        store = FakeStore(scalars={"am:blob": '{"frames": [1, 2]} ::tail'})

        frame = await dispatcher.dispatch(parse_command("am:blob"), store)

        assert frame.render() == 'am:blob::{"frames": [1, 2]} ::tail'

    @pytest.mark.asyncio
    async def test_dispatch_list(self, dispatcher, store):
        frame = await dispatcher.dispatch(parse_command("amq:playlist:7"), store)

        assert frame.render() == 'amq:playlist:7::[{"name":"squat","repeat":3,"text":null}]'
        assert store.calls == [("lrange", "amq:playlist:7", 0, -1)]

    @pytest.mark.asyncio
    async def test_dispatch_unrecognized_returns_none(self, dispatcher, store):
        frame = await dispatcher.dispatch(parse_command("xyz:foo"), store)

        assert frame is None
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_missing_scalar_propagates(self, dispatcher, store):
        with pytest.raises(KeyNotFoundError) as exc_info:
            await dispatcher.dispatch(parse_command("am:missing"), store)

        assert exc_info.value.code == "KEY_NOT_FOUND"
        assert exc_info.value.key == "am:missing"

    @pytest.mark.asyncio
    async def test_store_unavailable_propagates(self, dispatcher):
        store = MagicMock()
        store.get_list_range = AsyncMock(side_effect=StoreUnavailableError("down"))

        with pytest.raises(StoreUnavailableError):
            await dispatcher.dispatch(parse_command("amq:list"), store)

    @pytest.mark.asyncio
    async def test_bad_entry_propagates(self, dispatcher):
        store = FakeStore(lists={"amq:bad": ["not json"]})

        with pytest.raises(RecordDecodeError):
            await dispatcher.dispatch(parse_command("amq:bad"), store)

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, store):
        metrics = MagicMock()
        dispatcher = CommandDispatcher(metrics)

        await dispatcher.dispatch(parse_command("am:user:42"), store)
        await dispatcher.dispatch(parse_command("xyz:foo"), store)
        with pytest.raises(KeyNotFoundError):
            await dispatcher.dispatch(parse_command("am:missing"), store)

        counted = [call.kwargs for call in metrics.increment_counter.call_args_list]
        assert counted == [
            {"prefix": "am:", "outcome": "ok"},
            {"prefix": "unrecognized", "outcome": "unrecognized"},
            {"prefix": "am:", "outcome": "error"},
        ]
        observed = [call.kwargs["operation"] for call in metrics.observe_histogram.call_args_list]
        assert observed == ["get", "get"]
