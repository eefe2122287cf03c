"""
Relay service: HTTP catalog routes plus the WebSocket command relay.
"""

from typing import Any, Dict, List

from shared.base_service import BaseService
from shared.errors import StoreError
from .protocol.commands import CommandDispatcher
from .store.client import StoreClient, StoreProvider
from .ws.server import RelayServer
from .ws.session import RelaySession
from .ws.transport import Transport

MENU: List[Dict[str, Any]] = [
    {
        "name": "yoga",
        "children": [
            {"name": "stretch and relax", "id": "3245gdf"},
            {"name": "beginner", "id": "fadsfa"}
        ]
    },
    {
        "name": "HIIT",
        "children": [
            {"name": "stretch and relax", "id": "15hfg"},
            {"name": "beginner", "id": "q3t2fds"}
        ]
    }
]


class RelayService(BaseService):
    """Relay service implementation."""

    def __init__(self, **config_overrides: Any):
        super().__init__("relay", 3333, **config_overrides)

        self.store_provider = StoreProvider(
            self.config.redis_url,
            mode=self.config.store_mode,
            socket_timeout=self.config.store_socket_timeout
        )
        self.dispatcher = CommandDispatcher(self.metrics)
        self.ws_server = RelayServer(
            session_factory=self.create_session,
            host=self.config.ws_host,
            port=self.config.ws_port,
            path=self.config.ws_path,
            max_connections=self.config.max_ws_connections,
            metrics=self.metrics
        )

        self._setup_relay_routes()
        self.app.state.relay_service = self

    def create_session(self, transport: Transport, session_id: str) -> RelaySession:
        """Build the session actor for a freshly accepted connection."""
        return RelaySession(
            transport=transport,
            store_factory=self._acquire_store,
            dispatcher=self.dispatcher,
            heartbeat_interval=self.config.heartbeat_interval,
            client_timeout=self.config.client_timeout,
            metrics=self.metrics,
            session_id=session_id
        )

    async def _acquire_store(self) -> StoreClient:
        return await self.store_provider.acquire()

    def _setup_relay_routes(self):
        """Set up relay-specific routes."""

        @self.app.get("/")
        async def index():
            """Root endpoint."""
            return {
                "message": "Hello from the server!",
                "data": {
                    "key1": "value1",
                    "key2": 42
                }
            }

        @self.app.get("/menu")
        async def menu():
            """Workout catalog."""
            return MENU

        @self.app.get("/ws")
        async def websocket_info():
            """Informational endpoint for the WebSocket route.

            WebSocket traffic is not served on this HTTP port. Clients that
            used to connect to ws://<host>:3333/ws must connect to the
            returned url instead (``ws_port``, 3334 by default).
            """
            return {
                "message": "WebSocket endpoint available (WebSocket handshake required).",
                "url": f"ws://{self.config.ws_host}:{self.config.ws_port}{self.config.ws_path}",
                "commands": ["am:<key>", "amq:<key>"]
            }

        @self.app.get("/stats")
        async def get_stats():
            """Get relay statistics."""
            return {
                "websocket": self.ws_server.get_connection_stats(),
                "store_mode": self.store_provider.mode,
                "heartbeat_interval": self.config.heartbeat_interval,
                "client_timeout": self.config.client_timeout
            }

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check relay dependencies."""
        dependencies = {
            "websocket": "ok" if self.ws_server.running else "stopped"
        }

        store = StoreClient(self.config.redis_url, socket_timeout=self.config.store_socket_timeout)
        try:
            await store.connect()
            dependencies["redis"] = "ok"
        except StoreError:
            dependencies["redis"] = "error"
        finally:
            await store.close()

        return dependencies

    async def start(self):
        """Start relay components."""
        await self.ws_server.start()
        self.logger.info("Relay service components started")

    async def stop(self):
        """Stop relay components."""
        await self.ws_server.stop()
        await self.store_provider.close()
        self.logger.info("Relay service components stopped")


def create_app():
    """Create relay service application."""
    service = RelayService()
    return service.app


def main():
    service = RelayService()
    service.run()


if __name__ == "__main__":
    main()
