"""
Watcher
=======

Read-side handle for one open multipart response.

A watcher owns a single-slot mailbox. Publishing never waits on the
viewer: a newer chunk replaces an untaken one ("most recent wins"), and
the HTTP response task drains the slot at whatever pace the peer's
socket allows.

Design Rules:
    - deliver() is synchronous and never blocks the publisher
    - A closed watcher rejects deliveries with WatcherClosedError
    - A watcher that leaves max_stalled_frames chunks in a row untaken is
      closed and rejects with WatcherStalledError
    - close() is idempotent and wakes the draining task
"""

import asyncio
import itertools
import time
from typing import Optional

from mjpeg_relay.exceptions import WatcherClosedError, WatcherStalledError


_watcher_ids = itertools.count(1)


class Watcher:
    """
    Single-slot mailbox bound to one session.
    
    Attributes:
        session: Session key this watcher is registered under
        watcher_id: Process-unique id used in logs
        delivered: Chunks taken by the response task
        dropped: Chunks replaced before they were taken
        
    Example:
        watcher = Watcher("42")
        watcher.deliver(chunk)           # publisher side
        chunk = await watcher.next_chunk()  # response side
    """
    
    def __init__(self, session: str, max_stalled_frames: int = 150) -> None:
        if max_stalled_frames < 1:
            raise ValueError("max_stalled_frames must be >= 1")
        
        self.session = session
        self.watcher_id = next(_watcher_ids)
        self.connected_at = time.time()
        self.max_stalled_frames = max_stalled_frames
        
        self.delivered: int = 0
        self.dropped: int = 0
        
        self._pending: Optional[bytes] = None
        self._ready = asyncio.Event()
        self._closed = False
        self._stalled = 0
    
    @property
    def closed(self) -> bool:
        return self._closed
    
    @property
    def has_pending(self) -> bool:
        return self._pending is not None
    
    def deliver(self, chunk: bytes) -> None:
        """
        Hand a chunk to the watcher without waiting.
        
        Raises:
            WatcherClosedError: The response is gone
            WatcherStalledError: The response stopped draining
        """
        if self._closed:
            raise WatcherClosedError(f"watcher {self.watcher_id} is closed")
        
        if self._pending is not None:
            self.dropped += 1
            self._stalled += 1
            if self._stalled >= self.max_stalled_frames:
                self.close()
                raise WatcherStalledError(
                    f"watcher {self.watcher_id} left {self._stalled} frames untaken"
                )
        
        self._pending = chunk
        self._ready.set()
    
    async def next_chunk(self) -> Optional[bytes]:
        """
        Wait for the next chunk.
        
        Returns:
            The pending chunk, or None once the watcher is closed.
        """
        while True:
            if self._closed:
                return None
            if self._pending is not None:
                chunk = self._pending
                self._pending = None
                self._stalled = 0
                self.delivered += 1
                return chunk
            self._ready.clear()
            await self._ready.wait()
    
    def close(self) -> None:
        """Mark the watcher closed and wake the draining task."""
        self._closed = True
        self._pending = None
        self._ready.set()
    
    def __repr__(self) -> str:
        return (
            f"Watcher(id={self.watcher_id}, session={self.session!r}, "
            f"delivered={self.delivered}, dropped={self.dropped}, "
            f"closed={self._closed})"
        )
