"""
Frame Relay
===========

Broadcast engine: owns the session store and the watcher / uploader
registries, and fans every published frame out to the watchers of its
session.

Design Rules:
    - All shared state lives on one FrameRelay instance, never in globals
    - One lock guards the maps; it is never held across an await or a
      fan-out delivery, so a slow viewer cannot delay the producer or other viewers
    - A failed delivery evicts that watcher only and is never raised to
      the producer
    - Operations on different sessions never interact
    - Watchers wake asyncio tasks, so publish/watch/unwatch are called from
      the event loop thread; the lock keeps the maps consistent for
      status and admin reads
"""

import logging
import threading
import time
from typing import Dict, Optional, Protocol, Tuple

from mjpeg_relay.exceptions import DeliveryError
from mjpeg_relay.models.api import FrameInfo, StatusResponse
from mjpeg_relay.relay.frame import Frame
from mjpeg_relay.relay.multipart import (
    DEFAULT_BOUNDARY,
    DEFAULT_CONTENT_TYPE,
    encode_part,
)
from mjpeg_relay.relay.registry import ConnectionRegistry
from mjpeg_relay.relay.store import SessionStore
from mjpeg_relay.relay.watcher import Watcher


logger = logging.getLogger(__name__)


# WebSocket close codes used for uploader channels
ADMIN_DISCONNECT_CODE = 4000
ADMIN_DISCONNECT_REASON = "Admin disconnect"
GOING_AWAY_CODE = 1001


class UploaderHandle(Protocol):
    """
    Protocol for an open ingestion channel.
    
    The relay only ever needs to close it; frames flow in through
    FrameRelay.publish.
    """
    
    session: str
    
    async def close(self, code: int, reason: str) -> None:
        ...


class RelayMetrics:
    """Counters for relay observability."""
    
    __slots__ = (
        "frames_published",
        "chunks_delivered",
        "watchers_evicted",
        "frames_rejected",
    )
    
    def __init__(self) -> None:
        self.frames_published: int = 0
        self.chunks_delivered: int = 0
        self.watchers_evicted: int = 0
        self.frames_rejected: int = 0
    
    def to_dict(self) -> Dict[str, int]:
        """Export metrics as dict."""
        return {
            "frames_published": self.frames_published,
            "chunks_delivered": self.chunks_delivered,
            "watchers_evicted": self.watchers_evicted,
            "frames_rejected": self.frames_rejected,
        }


class FrameRelay:
    """
    In-memory relay for single-producer video sessions.
    
    Attributes:
        boundary: Multipart boundary token
        content_type: Media type of stored frames
        max_stalled_frames: Consecutive untaken chunks before a watcher is evicted
        metrics: Operational counters
        
    Example:
        relay = FrameRelay()
        watcher = relay.watch("42")
        relay.publish("42", jpeg_bytes)
        chunk = await watcher.next_chunk()
    """
    
    def __init__(
        self,
        boundary: str = DEFAULT_BOUNDARY,
        content_type: str = DEFAULT_CONTENT_TYPE,
        max_stalled_frames: int = 150,
    ) -> None:
        self.boundary = boundary
        self.content_type = content_type
        self.max_stalled_frames = max_stalled_frames
        self.metrics = RelayMetrics()
        
        self._lock = threading.Lock()
        self._store = SessionStore()
        self._watchers: ConnectionRegistry[Watcher] = ConnectionRegistry()
        self._uploaders: ConnectionRegistry[UploaderHandle] = ConnectionRegistry()
    
    # -------------------------------------------------------------------------
    # Publish / fan-out
    # -------------------------------------------------------------------------
    
    def publish(self, session: str, data: bytes) -> int:
        """
        Store a frame and fan it out to the session's watchers.
        
        Args:
            session: Session key
            data: Encoded image bytes (one complete frame)
            
        Returns:
            Number of watchers the chunk was handed to.
        """
        with self._lock:
            frame = self._store.put(session, data)
            targets = self._watchers.members(session)
            self.metrics.frames_published += 1
        
        if not targets:
            return 0
        
        chunk = self._encode(frame)
        failed = []
        for watcher in targets:
            try:
                watcher.deliver(chunk)
            except DeliveryError as e:
                logger.debug(f"Delivery failed for session={session}: {e}")
                failed.append(watcher)
        
        if failed:
            self._evict(session, failed)
        
        delivered = len(targets) - len(failed)
        with self._lock:
            self.metrics.chunks_delivered += delivered
        return delivered
    
    def _encode(self, frame: Frame) -> bytes:
        return encode_part(frame.data, self.boundary, self.content_type)
    
    def _evict(self, session: str, watchers) -> None:
        with self._lock:
            for watcher in watchers:
                if self._watchers.unregister(session, watcher):
                    self.metrics.watchers_evicted += 1
        for watcher in watchers:
            watcher.close()
            logger.info(
                f"Evicted watcher {watcher.watcher_id} from session={session} "
                f"(delivered={watcher.delivered}, dropped={watcher.dropped})"
            )
    
    # -------------------------------------------------------------------------
    # Watchers
    # -------------------------------------------------------------------------
    
    def watch(self, session: str) -> Watcher:
        """
        Register a new watcher, primed with the stored frame if any.
        
        Returns:
            The registered Watcher. Pair with unwatch().
        """
        watcher = Watcher(session, max_stalled_frames=self.max_stalled_frames)
        with self._lock:
            self._watchers.register(session, watcher)
            frame = self._store.get(session)
            count = self._watchers.count(session)
            # Primed under the lock so a concurrent put cannot be overtaken by an older frame
            if frame is not None:
                watcher.deliver(self._encode(frame))
        
        logger.info(
            f"Watcher {watcher.watcher_id} joined session={session} "
            f"(watchers={count}, primed={frame is not None})"
        )
        return watcher
    
    def unwatch(self, watcher: Watcher) -> bool:
        """
        Unregister and close a watcher. Safe to call more than once.
        
        Returns:
            True if the watcher was still registered.
        """
        with self._lock:
            removed = self._watchers.unregister(watcher.session, watcher)
            count = self._watchers.count(watcher.session)
        watcher.close()
        if removed:
            logger.info(
                f"Watcher {watcher.watcher_id} left session={watcher.session} "
                f"(watchers={count})"
            )
        return removed
    
    def watcher_count(self, session: str) -> int:
        with self._lock:
            return self._watchers.count(session)
    
    # -------------------------------------------------------------------------
    # Uploaders
    # -------------------------------------------------------------------------
    
    def add_uploader(self, handle: UploaderHandle) -> None:
        """Track an open ingestion channel for administrative use."""
        with self._lock:
            self._uploaders.register(handle.session, handle)
            count = self._uploaders.count(handle.session)
        logger.info(f"Uploader joined session={handle.session} (uploaders={count})")
    
    def remove_uploader(self, handle: UploaderHandle) -> bool:
        """Stop tracking an ingestion channel. The stored frame is kept."""
        with self._lock:
            removed = self._uploaders.unregister(handle.session, handle)
        if removed:
            logger.info(f"Uploader left session={handle.session}")
        return removed
    
    def uploader_count(self, session: str) -> int:
        with self._lock:
            return self._uploaders.count(session)
    
    def reject_frame(self, session: str, reason: str) -> None:
        """Count a frame refused at ingestion."""
        with self._lock:
            self.metrics.frames_rejected += 1
        logger.debug(f"Rejected frame for session={session}: {reason}")
    
    # -------------------------------------------------------------------------
    # Read side
    # -------------------------------------------------------------------------
    
    def snapshot(self, session: str) -> Optional[Frame]:
        """Stored frame of a session, or None. No side effects."""
        with self._lock:
            return self._store.get(session)
    
    def status(self) -> StatusResponse:
        """Sessions with a stored frame plus watcher / uploader counts."""
        now = time.time()
        with self._lock:
            frames = {session: self._store.get(session) for session in self._store.sessions()}
            watchers = self._watchers.counts()
            uploaders = self._uploaders.counts()
        
        return StatusResponse(
            streams=sorted(frames),
            watchers=watchers,
            uploaders=uploaders,
            frames={
                session: FrameInfo(
                    bytes=frame.size,
                    sequence=frame.sequence,
                    age_ms=max(0, int((now - frame.received_at) * 1000)),
                )
                for session, frame in frames.items()
            },
            ts=int(now * 1000),
        )
    
    # -------------------------------------------------------------------------
    # Administration
    # -------------------------------------------------------------------------
    
    async def disconnect(
        self,
        session: str,
        code: int = ADMIN_DISCONNECT_CODE,
        reason: str = ADMIN_DISCONNECT_REASON,
    ) -> Tuple[int, bool]:
        """
        Force-close every uploader of a session and clear its stored frame.
        
        Watchers of the session stay registered and receive whatever is
        published next.
        
        Returns:
            (number of uploader channels closed, whether a frame was cleared)
        """
        with self._lock:
            handles = self._uploaders.pop_all(session)
            cleared = self._store.clear(session)
        
        closed = await self._close_uploaders(handles, code, reason)
        logger.warning(
            f"Admin disconnect session={session}: "
            f"closed_uploaders={closed}, frame_cleared={cleared}"
        )
        return closed, cleared
    
    async def shutdown(self) -> None:
        """Close every watcher and uploader (application shutdown)."""
        with self._lock:
            watchers = [
                watcher
                for session in self._watchers.sessions()
                for watcher in self._watchers.pop_all(session)
            ]
            handles = [
                handle
                for session in self._uploaders.sessions()
                for handle in self._uploaders.pop_all(session)
            ]
        
        for watcher in watchers:
            watcher.close()
        closed = await self._close_uploaders(handles, GOING_AWAY_CODE, "Server shutdown")
        logger.info(f"Relay shut down: watchers={len(watchers)}, uploaders={closed}")
    
    async def _close_uploaders(self, handles, code: int, reason: str) -> int:
        closed = 0
        for handle in handles:
            try:
                await handle.close(code, reason)
                closed += 1
            except Exception as e:
                logger.warning(f"Failed to close uploader for session={handle.session}: {e}")
        return closed
