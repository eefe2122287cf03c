"""WebSocket sessions and server."""
