"""
Session Store
=============

Holds the most recent frame of every session. No history, no queue.

Design Rules:
    - put() replaces unconditionally ("most recent wins")
    - get() never blocks and never mutates
    - Absence is a normal state, not an error
    - Not thread-safe on its own; FrameRelay serializes access
"""

import time
from typing import Dict, List, Optional

from mjpeg_relay.relay.frame import Frame


class SessionStore:
    """
    Map of session key -> latest Frame.
    
    Example:
        store = SessionStore()
        store.put("42", b"\\xff\\xd8...")
        frame = store.get("42")
    """
    
    def __init__(self) -> None:
        self._frames: Dict[str, Frame] = {}
        self._sequences: Dict[str, int] = {}
    
    def put(self, session: str, data: bytes) -> Frame:
        """
        Replace the stored frame of a session.
        
        Args:
            session: Session key
            data: Encoded image bytes
            
        Returns:
            The Frame now stored for the session.
        """
        sequence = self._sequences.get(session, 0) + 1
        self._sequences[session] = sequence
        frame = Frame(
            session=session,
            data=bytes(data),
            sequence=sequence,
            received_at=time.time(),
        )
        self._frames[session] = frame
        return frame
    
    def get(self, session: str) -> Optional[Frame]:
        """Latest frame of a session, or None if nothing was published."""
        return self._frames.get(session)
    
    def clear(self, session: str) -> bool:
        """
        Drop the stored frame of a session.
        
        The sequence counter restarts as well, so a later publish is
        sequence 1 again.
        
        Returns:
            True if a frame was removed.
        """
        self._sequences.pop(session, None)
        return self._frames.pop(session, None) is not None
    
    def sessions(self) -> List[str]:
        """Session keys that currently hold a frame."""
        return list(self._frames)
    
    def __contains__(self, session: object) -> bool:
        return session in self._frames
    
    def __len__(self) -> int:
        return len(self._frames)
