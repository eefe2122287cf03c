"""
WebSocket server for the Relay Service.
"""

import uuid
from http import HTTPStatus
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlsplit

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.http11 import Request, Response

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .session import RelaySession
from .transport import Transport, WebSocketTransport

CLOSE_TRY_AGAIN_LATER = 1013

SessionFactory = Callable[[Transport, str], RelaySession]


class RelayServer:
    """Accepts WebSocket connections and runs one session per connection."""

    def __init__(
        self,
        session_factory: SessionFactory,
        host: str = "127.0.0.1",
        port: int = 3334,
        path: str = "/ws",
        max_connections: int = 1000,
        metrics: Optional[MetricsCollector] = None
    ):
        self.session_factory = session_factory
        self.host = host
        self.port = port
        self.path = path
        self.max_connections = max_connections
        self.metrics = metrics
        self.logger = get_logger("relay.ws.server")

        self.sessions: Dict[str, RelaySession] = {}
        self._server: Optional[Server] = None
        self.running = False

    async def start(self):
        """Start listening for WebSocket handshakes."""
        self._server = await serve(
            self.handle_connection,
            self.host,
            self.port,
            process_request=self._process_request,
            # Sessions run their own heartbeat.
            ping_interval=None,
            ping_timeout=None
        )
        self.running = True
        self.logger.info("Relay WebSocket server started", host=self.host, port=self.port, path=self.path)

    async def stop(self):
        """Stop accepting connections and close open ones."""
        self.running = False
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

        self.logger.info("Relay WebSocket server stopped")

    @property
    def bound_port(self) -> Optional[int]:
        """Port actually listened on (useful with ``port=0``)."""
        if self._server is None:
            return None
        for sock in self._server.sockets:
            return sock.getsockname()[1]
        return None

    def _process_request(self, connection: ServerConnection, request: Request) -> Optional[Response]:
        """Reject handshakes for unknown paths or beyond the connection limit.

        The limit here only sees registered sessions; handle_connection
        enforces it again for handshakes that completed concurrently.
        """
        if urlsplit(request.path).path != self.path:
            return connection.respond(HTTPStatus.NOT_FOUND, "Not Found\n")

        if len(self.sessions) >= self.max_connections:
            self.logger.warning(
                "Connection limit reached, rejecting handshake",
                max_connections=self.max_connections
            )
            return connection.respond(HTTPStatus.SERVICE_UNAVAILABLE, "Connection limit exceeded\n")

        return None

    async def handle_connection(self, connection: ServerConnection):
        """Run a session for one accepted connection."""
        # Check and registration run without yielding.
        if len(self.sessions) >= self.max_connections:
            self.logger.warning(
                "Connection limit reached, closing accepted connection",
                max_connections=self.max_connections
            )
            await connection.close(CLOSE_TRY_AGAIN_LATER, "connection limit exceeded")
            return

        transport = WebSocketTransport(connection)
        session_id = str(uuid.uuid4())
        session = self.session_factory(transport, session_id)

        self.sessions[session_id] = session
        self._update_gauge()
        self.logger.info(
            "WebSocket connection added",
            session_id=session_id,
            peer=transport.peer,
            total_connections=len(self.sessions)
        )

        try:
            await session.run()
        except Exception as e:
            # Contain anything a session leaks; other sessions keep running.
            self.logger.error("Session crashed", session_id=session_id, error=str(e), exc_info=True)
        finally:
            await transport.aclose()
            self.sessions.pop(session_id, None)
            self._update_gauge()
            self.logger.info(
                "WebSocket connection removed",
                session_id=session_id,
                reason=session.close_reason,
                total_connections=len(self.sessions)
            )

    def _update_gauge(self):
        if self.metrics:
            self.metrics.set_gauge("active_sessions", len(self.sessions))

    def get_connection_stats(self) -> Dict[str, Any]:
        """Get connection statistics."""
        return {
            "running": self.running,
            "total_connections": len(self.sessions),
            "max_connections": self.max_connections,
            "path": self.path,
            "states": {
                session_id: session.state.value
                for session_id, session in self.sessions.items()
            }
        }
