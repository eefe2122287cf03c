"""
Unit tests for the websockets transport adapter.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from websockets.exceptions import ConnectionClosedError

from service_relay.app.ws.transport import Frame, FrameType, WebSocketTransport
from shared.errors import TransportClosedError


class FakeConnection:
    """Stand-in for a websockets ServerConnection."""

    def __init__(self, messages=(), close_code=1000, close_reason="", error=None):
        self.messages = list(messages)
        self.close_code = close_code
        self.close_reason = close_reason
        self.error = error
        self.remote_address = ("127.0.0.1", 5555)
        self.send = AsyncMock()
        self.ping = AsyncMock()
        self.pong = AsyncMock()
        self.close = AsyncMock()

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self.messages:
            yield message
        if self.error is not None:
            raise self.error


class TestWebSocketTransport:
    """Test cases for WebSocketTransport."""

    @pytest.mark.asyncio
    async def test_receive_maps_data_frames_then_close(self):
        connection = FakeConnection(["am:user:42", b"\x01\x02"], close_code=1000, close_reason="bye")
        transport = WebSocketTransport(connection)

        frames = [await transport.receive() for _ in range(3)]

        assert frames == [
            Frame.text("am:user:42"),
            Frame.binary(b"\x01\x02"),
            Frame.close(1000, "bye"),
        ]
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_abnormal_close_still_yields_close_frame(self):
        connection = FakeConnection(["x"], close_code=1006, error=ConnectionClosedError(None, None))
        transport = WebSocketTransport(connection)

        await transport.receive()
        frame = await transport.receive()

        assert frame.type is FrameType.CLOSE
        assert frame.close_code == 1006
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_sends_text_and_binary(self):
        connection = FakeConnection()
        transport = WebSocketTransport(connection)

        await transport.send_text("am:k::v")
        await transport.send_binary(b"\x00")

        assert [call.args[0] for call in connection.send.await_args_list] == ["am:k::v", b"\x00"]

    @pytest.mark.asyncio
    async def test_send_on_closed_connection_raises(self):
        connection = FakeConnection()
        connection.send.side_effect = ConnectionClosedError(None, None)
        transport = WebSocketTransport(connection)

        with pytest.raises(TransportClosedError):
            await transport.send_text("am:k::v")

    @pytest.mark.asyncio
    async def test_pong_for_probe_is_surfaced(self):
        loop = asyncio.get_running_loop()
        waiter = loop.create_future()
        connection = FakeConnection()
        connection.ping.return_value = waiter
        transport = WebSocketTransport(connection)

        await transport.ping(b"")
        connection.ping.assert_awaited_once_with(None)

        waiter.set_result(0.002)
        frame = await asyncio.wait_for(transport._inbox.get(), timeout=1.0)

        assert frame.type is FrameType.PONG
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_unanswered_probe_adds_nothing(self):
        loop = asyncio.get_running_loop()
        waiter = loop.create_future()
        connection = FakeConnection()
        connection.ping.return_value = waiter
        transport = WebSocketTransport(connection)

        await transport.ping(b"")
        waiter.set_exception(ConnectionClosedError(None, None))
        await asyncio.sleep(0.01)

        assert transport._inbox.empty()
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_ping_on_closed_connection_raises(self):
        connection = FakeConnection()
        connection.ping.side_effect = ConnectionClosedError(None, None)
        transport = WebSocketTransport(connection)

        with pytest.raises(TransportClosedError):
            await transport.ping(b"")

    @pytest.mark.asyncio
    async def test_close_delegates(self):
        connection = FakeConnection()
        transport = WebSocketTransport(connection)

        await transport.close(1001, "heartbeat timeout")

        connection.close.assert_awaited_once_with(1001, "heartbeat timeout")

    def test_peer(self):
        transport = WebSocketTransport(FakeConnection())

        assert transport.peer == "127.0.0.1:5555"
