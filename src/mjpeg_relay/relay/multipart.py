"""
Multipart Framing
=================

Wire framing for multipart/x-mixed-replace streams.

Part layout:
    --<boundary>\r\n
    Content-Type: <type>\r\n
    Content-Length: <n>\r\n
    \r\n
    <n bytes>\r\n
"""

from typing import TYPE_CHECKING, AsyncIterator

if TYPE_CHECKING:
    from mjpeg_relay.relay.broadcast import FrameRelay


DEFAULT_BOUNDARY = "mjpegrelay"
DEFAULT_CONTENT_TYPE = "image/jpeg"


def multipart_content_type(boundary: str = DEFAULT_BOUNDARY) -> str:
    """Response Content-Type header for a multipart stream."""
    return f"multipart/x-mixed-replace; boundary={boundary}"


def encode_part(
    data: bytes,
    boundary: str = DEFAULT_BOUNDARY,
    content_type: str = DEFAULT_CONTENT_TYPE,
) -> bytes:
    """
    Frame one image as a self-describing multipart chunk.
    
    Args:
        data: Encoded image bytes
        boundary: Boundary token (without leading dashes)
        content_type: Image media type
        
    Returns:
        Boundary line, part headers, payload and trailing CRLF.
    """
    head = (
        f"--{boundary}\r\n"
        f"Content-Type: {content_type}\r\n"
        f"Content-Length: {len(data)}\r\n"
        f"\r\n"
    ).encode("ascii")
    return head + data + b"\r\n"


async def multipart_stream(relay: "FrameRelay", session: str) -> AsyncIterator[bytes]:
    """
    Body iterator of a multipart response.
    
    Registers a watcher on first iteration and unregisters it when the
    iterator finishes, is closed, or is cancelled by a client disconnect.
    Ends on its own when the relay closes the watcher (stall eviction or
    shutdown).
    """
    watcher = relay.watch(session)
    try:
        while True:
            chunk = await watcher.next_chunk()
            if chunk is None:
                break
            yield chunk
    finally:
        relay.unwatch(watcher)
