"""
Relay Service package.

Serves a WebSocket command relay backed by Redis, plus a few static HTTP
routes. Key modules include:

- app.main: FastAPI app, catalog routes and service lifecycle
- app.ws: WebSocket server, transport adapter and per-connection sessions
- app.protocol: Text command parsing, dispatch and response encoding
- app.store: Redis store handles
"""
