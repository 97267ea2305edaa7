"""
Frame Data Model
================

Internal representation of one published frame.

Design Rules:
    - The payload is opaque: never decoded, resized or re-encoded
    - Immutable, so one instance can be handed to every watcher
    - A session holds at most one Frame (the latest)
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Frame:
    """
    Latest frame of a session.
    
    Attributes:
        session: Session key the frame was published to
        data: Encoded image bytes exactly as received
        sequence: Per-session publish counter (starts at 1)
        received_at: UNIX timestamp when the relay accepted the frame
    """
    
    session: str
    data: bytes
    sequence: int
    received_at: float
    
    @property
    def size(self) -> int:
        return len(self.data)
    
    def __repr__(self) -> str:
        """Compact repr that doesn't dump the image."""
        return (
            f"Frame(session={self.session!r}, "
            f"sequence={self.sequence}, "
            f"size={self.size})"
        )
