"""
Relay Module
============

Frame store, connection registries and the broadcast engine.

Components:
    - Frame: Immutable latest-frame record
    - SessionStore: Latest frame per session
    - ConnectionRegistry: Session -> set of open connections
    - Watcher: Single-slot mailbox behind one multipart response
    - FrameRelay: Publish, fan-out, snapshot, status and admin disconnect

Example:
    from mjpeg_relay.relay import FrameRelay, multipart_stream
    
    relay = FrameRelay(boundary="mjpegrelay")
    relay.publish("42", jpeg_bytes)
    body = multipart_stream(relay, "42")
"""

from mjpeg_relay.relay.frame import Frame
from mjpeg_relay.relay.store import SessionStore
from mjpeg_relay.relay.registry import ConnectionRegistry
from mjpeg_relay.relay.watcher import Watcher
from mjpeg_relay.relay.multipart import (
    DEFAULT_BOUNDARY,
    DEFAULT_CONTENT_TYPE,
    encode_part,
    multipart_content_type,
    multipart_stream,
)
from mjpeg_relay.relay.broadcast import (
    ADMIN_DISCONNECT_CODE,
    ADMIN_DISCONNECT_REASON,
    FrameRelay,
    RelayMetrics,
    UploaderHandle,
)


__all__ = [
    "Frame",
    "SessionStore",
    "ConnectionRegistry",
    "Watcher",
    "DEFAULT_BOUNDARY",
    "DEFAULT_CONTENT_TYPE",
    "encode_part",
    "multipart_content_type",
    "multipart_stream",
    "ADMIN_DISCONNECT_CODE",
    "ADMIN_DISCONNECT_REASON",
    "FrameRelay",
    "RelayMetrics",
    "UploaderHandle",
]
