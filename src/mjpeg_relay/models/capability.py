"""
Capabilities
============

Authorization scopes an endpoint can require.
"""

from enum import Enum


class Capability(str, Enum):
    """
    Authorization scope bound to a credential.
    
    Attributes:
        VIEW: Read the snapshot and multipart stream of a session
        UPLOAD: Publish frames into a session through the ingestion channel
        ADMIN: Status and forced disconnect (separate admin code, never minted)
    """
    
    VIEW = "view"
    UPLOAD = "upload"
    ADMIN = "admin"


# Capabilities the issuance endpoint is allowed to mint
MINTABLE_CAPABILITIES = frozenset({Capability.VIEW, Capability.UPLOAD})
