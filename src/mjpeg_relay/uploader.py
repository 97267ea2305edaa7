"""
Frame Uploader
==============

WebSocket producer that pushes frames into a relay session.

This module provides:
    - DirectoryFrameSource: Replays the JPEG files of a directory
    - FrameUploader: Sends one binary message per frame at a fixed rate,
      reconnecting with backoff when the channel drops
    - build_ingest_url: Ingestion URL with session and credential

Design Rules:
    - Does NOT decode or re-encode frames
    - Stops for good when an admin disconnects the session (close 4000)
    - Exposes metrics for soak testing
"""

import asyncio
import logging
from pathlib import Path
from typing import Iterable, Iterator, List, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit

import websockets
from websockets.exceptions import (
    ConnectionClosed,
    ConnectionClosedError,
    ConnectionClosedOK,
    InvalidHandshake,
    InvalidStatus,
)

from mjpeg_relay.relay.broadcast import ADMIN_DISCONNECT_CODE


logger = logging.getLogger(__name__)


FRAME_SUFFIXES = (".jpg", ".jpeg")


def build_ingest_url(
    base_url: str,
    session: str,
    token: Optional[str] = None,
    path: str = "/ws",
) -> str:
    """
    Build the ingestion URL for a session.
    
    http(s) base URLs are mapped to ws(s).
    
    Example:
        build_ingest_url("https://relay.example", "42", "abc")
        -> "wss://relay.example/ws?session=42&token=abc"
    """
    parts = urlsplit(base_url)
    scheme = {"http": "ws", "https": "wss"}.get(parts.scheme, parts.scheme)
    
    query = {"session": session}
    if token:
        query["token"] = token
    
    full_path = parts.path.rstrip("/") + path
    return urlunsplit((scheme, parts.netloc, full_path, urlencode(query), ""))


class DirectoryFrameSource:
    """
    Replays the JPEG files of a directory in name order.
    
    Attributes:
        path: Directory holding *.jpg / *.jpeg files
        loop: Start over after the last file
    """
    
    def __init__(self, path: str, loop: bool = True) -> None:
        self.path = Path(path)
        self.loop = loop
        
        if not self.path.is_dir():
            raise ValueError(f"Not a directory: {path}")
    
    def files(self) -> List[Path]:
        return sorted(
            p for p in self.path.iterdir()
            if p.is_file() and p.suffix.lower() in FRAME_SUFFIXES
        )
    
    def __iter__(self) -> Iterator[bytes]:
        files = self.files()
        if not files:
            raise ValueError(f"No JPEG files in {self.path}")
        
        while True:
            for file in files:
                yield file.read_bytes()
            if not self.loop:
                return


class FrameUploaderMetrics:
    """Metrics for FrameUploader observability."""
    
    __slots__ = (
        "frames_sent",
        "bytes_sent",
        "reconnect_count",
    )
    
    def __init__(self) -> None:
        self.frames_sent: int = 0
        self.bytes_sent: int = 0
        self.reconnect_count: int = 0
    
    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "frames_sent": self.frames_sent,
            "bytes_sent": self.bytes_sent,
            "reconnect_count": self.reconnect_count,
        }


class FrameUploader:
    """
    Pushes frames from a source into a relay session.
    
    Attributes:
        url: Full ingestion URL (see build_ingest_url)
        fps: Frames per second to send
        connected: Whether the channel is currently open
        metrics: Operational metrics
        
    Example:
        uploader = FrameUploader(
            url=build_ingest_url("http://localhost:4873", "42", token),
            source=DirectoryFrameSource("./frames"),
            fps=8,
        )
        task = asyncio.create_task(uploader.run())
        ...
        await uploader.stop()
        await task
    """
    
    def __init__(
        self,
        url: str,
        source: Iterable[bytes],
        fps: float = 8.0,
        reconnect_backoff_ms: int = 500,
        max_reconnect_attempts: int = 0,
    ) -> None:
        """
        Initialize frame uploader.
        
        Args:
            url: Ingestion URL including session and credential
            source: Iterable of encoded frames
            fps: Send rate, clamped to [1, 30]
            reconnect_backoff_ms: Backoff between reconnect attempts
            max_reconnect_attempts: Max attempts (0 = unlimited)
        """
        self.url = url
        self.fps = max(1.0, min(30.0, fps))
        self.reconnect_backoff_ms = reconnect_backoff_ms
        self.max_reconnect_attempts = max_reconnect_attempts
        
        self._frames = iter(source)
        self._websocket = None
        self._connected: bool = False
        self._running: bool = False
        self._stop_event: asyncio.Event = asyncio.Event()
        
        self.refused: bool = False
        self.metrics = FrameUploaderMetrics()
    
    @property
    def connected(self) -> bool:
        return self._connected
    
    async def run(self) -> None:
        """
        Upload until the source is exhausted, stop() is called, an admin
        disconnects the session, the relay refuses the handshake with a
        4xx status (sets `refused`), or reconnect attempts run out.
        """
        self._running = True
        self._stop_event.clear()
        
        logger.info(f"FrameUploader starting at {self.fps:.1f} fps")
        
        while self._running:
            try:
                finished = await self._connect_and_send()
                if finished:
                    break
            except ConnectionClosed as e:
                if e.rcvd is not None and e.rcvd.code == ADMIN_DISCONNECT_CODE:
                    logger.warning("Session disconnected by admin, not reconnecting")
                    break
                if not await self._backoff(e):
                    break
            except InvalidStatus as e:
                status_code = e.response.status_code
                if 400 <= status_code < 500:
                    logger.error(
                        f"Relay refused the upload (HTTP {status_code}), "
                        f"check the session and credential"
                    )
                    self.refused = True
                    break
                if not await self._backoff(e):
                    break
            except (InvalidHandshake, OSError) as e:
                if not await self._backoff(e):
                    break
        
        self._running = False
        logger.info(f"FrameUploader stopped: {self.metrics.to_dict()}")
    
    async def stop(self) -> None:
        """Stop uploading and close the channel."""
        logger.info("FrameUploader stopping...")
        self._running = False
        self._stop_event.set()
        
        if self._websocket is not None:
            await self._websocket.close()
        
        self._connected = False
    
    async def _backoff(self, error: Exception) -> bool:
        """Wait before reconnecting. Returns False when the loop should end."""
        self._connected = False
        if not self._running:
            return False
        
        logger.error(f"Connection error: {error}")
        
        if (
            self.max_reconnect_attempts > 0
            and self.metrics.reconnect_count >= self.max_reconnect_attempts
        ):
            logger.error(
                f"Max reconnect attempts ({self.max_reconnect_attempts}) exceeded"
            )
            return False
        
        self.metrics.reconnect_count += 1
        backoff_sec = self.reconnect_backoff_ms / 1000.0
        logger.info(
            f"Reconnecting in {backoff_sec:.1f}s "
            f"(attempt {self.metrics.reconnect_count})"
        )
        
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=backoff_sec)
            return False
        except asyncio.TimeoutError:
            return True
    
    async def _connect_and_send(self) -> bool:
        """
        Send frames over one connection.
        
        Returns:
            True when the source is exhausted or stop() was called.
        """
        interval = 1.0 / self.fps
        
        async with websockets.connect(
            self.url,
            ping_interval=20,
            ping_timeout=10,
            close_timeout=5,
            max_size=None,
        ) as ws:
            self._websocket = ws
            self._connected = True
            logger.info("Connected to relay ingestion endpoint")
            
            try:
                for frame in self._frames:
                    if not self._running:
                        return True
                    
                    await ws.send(frame)
                    self.metrics.frames_sent += 1
                    self.metrics.bytes_sent += len(frame)
                    
                    try:
                        await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                        return True
                    except asyncio.TimeoutError:
                        pass
                
                logger.info("Frame source exhausted")
                return True
            except ConnectionClosedOK:
                if not self._running:
                    return True
                raise
            except ConnectionClosedError as e:
                logger.warning(f"Connection closed with error: {e}")
                raise
            finally:
                self._connected = False
                self._websocket = None
