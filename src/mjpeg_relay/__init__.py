"""
MJPEG Relay
===========

In-memory relay for single-producer video sessions.

A producer uploads encoded frames over a WebSocket; any number of viewers
read them back as a multipart/x-mixed-replace stream or as single
snapshots. Only the latest frame of each session is kept.

Components:
    - relay: Session store, watcher/uploader registries, broadcast engine
    - auth: Access gate with open / signed-token / shared-digest policies
    - ingest: WebSocket ingestion endpoint
    - main: FastAPI application and HTTP endpoints
    - uploader: Python producer for replaying frames into a session

Example:
    uvicorn mjpeg_relay.main:app --port 4873
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
