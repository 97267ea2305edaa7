"""
Connection Registry
===================

Tracks open connections (watchers or uploaders) per session key.

Design Rules:
    - Membership is a set per session
    - Empty sets are deleted so idle sessions cost nothing
    - members() returns a snapshot, so callers can iterate while others
      register or unregister
    - Not thread-safe on its own; FrameRelay serializes access
"""

from typing import Dict, Generic, Hashable, Set, Tuple, TypeVar


T = TypeVar("T", bound=Hashable)


class ConnectionRegistry(Generic[T]):
    """
    Session key -> set of connection handles.
    
    Used twice by the relay: once for multipart watchers and once for
    ingestion uploaders.
    """
    
    def __init__(self) -> None:
        self._members: Dict[str, Set[T]] = {}
    
    def register(self, session: str, handle: T) -> None:
        """Add a handle to the session's set, creating the set if absent."""
        self._members.setdefault(session, set()).add(handle)
    
    def unregister(self, session: str, handle: T) -> bool:
        """
        Remove a handle from the session's set.
        
        Returns:
            True if the handle was registered. Unregistering twice is harmless.
        """
        members = self._members.get(session)
        if members is None or handle not in members:
            return False
        members.discard(handle)
        if not members:
            del self._members[session]
        return True
    
    def members(self, session: str) -> Tuple[T, ...]:
        """Snapshot of the handles registered for a session."""
        return tuple(self._members.get(session, ()))
    
    def count(self, session: str) -> int:
        return len(self._members.get(session, ()))
    
    def counts(self) -> Dict[str, int]:
        """Number of registered handles per session (non-empty sessions only)."""
        return {session: len(members) for session, members in self._members.items()}
    
    def pop_all(self, session: str) -> Tuple[T, ...]:
        """Remove and return every handle of a session."""
        return tuple(self._members.pop(session, ()))
    
    def sessions(self) -> Tuple[str, ...]:
        return tuple(self._members)
    
    def __contains__(self, session: object) -> bool:
        return session in self._members
