"""
Frame Ingestion
===============

WebSocket endpoint through which a producer uploads frames.

Protocol:
    <ingest_path>?session=<session>&token=<credential>
    (an `Authorization: Bearer` header works too)
    
    - Every binary message is one complete frame
    - Nothing is ever sent back to the producer
    - Session keys are 1-128 characters of [A-Za-z0-9_.:-], the same rule
      the admin endpoints apply
    - Rejected upgrades are closed before accept, so the client only sees
      a refused handshake and no explanation

Design Rules:
    - Empty, oversized and text messages are dropped, not fatal
    - The uploader registration is removed whenever the handler exits
    - Closing the channel leaves the last frame and all viewers in place
"""

import logging

from fastapi import WebSocket, status

from mjpeg_relay.auth import AccessGate, extract_credential, is_valid_session_key
from mjpeg_relay.config import Settings
from mjpeg_relay.exceptions import AccessDenied
from mjpeg_relay.models.capability import Capability
from mjpeg_relay.relay import FrameRelay


logger = logging.getLogger(__name__)


class UploaderConnection:
    """Open ingestion channel, tracked by the relay for admin disconnects."""
    
    def __init__(self, websocket: WebSocket, session: str) -> None:
        self.websocket = websocket
        self.session = session
        self.frames_received: int = 0
        self.closed: bool = False
    
    async def close(self, code: int, reason: str) -> None:
        self.closed = True
        await self.websocket.close(code=code, reason=reason)
    
    def __repr__(self) -> str:
        return f"UploaderConnection(session={self.session!r}, frames={self.frames_received})"


async def ingest_frames(websocket: WebSocket) -> None:
    """Authorize a producer, then publish each binary message it sends."""
    relay: FrameRelay = websocket.app.state.relay
    gate: AccessGate = websocket.app.state.gate
    config: Settings = websocket.app.state.settings
    
    session = websocket.query_params.get("session", "")
    credential = extract_credential(
        websocket.headers.get("authorization"),
        websocket.query_params.get("token"),
    )
    
    if not is_valid_session_key(session):
        logger.warning("Ingestion upgrade with missing or malformed session refused")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    
    try:
        gate.authorize(session, Capability.UPLOAD, credential)
    except AccessDenied:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    
    max_frame_bytes = config.stream.max_frame_bytes
    uploader = UploaderConnection(websocket, session)
    relay.add_uploader(uploader)
    
    try:
        await websocket.accept()
        
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            # Frames racing an admin disconnect must not refill the cleared session
            if uploader.closed:
                continue
            
            data = message.get("bytes")
            if data is None:
                relay.reject_frame(session, "text message")
                continue
            if not data:
                relay.reject_frame(session, "empty frame")
                continue
            if len(data) > max_frame_bytes:
                relay.reject_frame(
                    session,
                    f"frame of {len(data)} bytes exceeds {max_frame_bytes}",
                )
                continue
            
            relay.publish(session, data)
            uploader.frames_received += 1
    finally:
        relay.remove_uploader(uploader)
        logger.info(
            f"Ingestion closed for session={session} "
            f"(frames={uploader.frames_received})"
        )
