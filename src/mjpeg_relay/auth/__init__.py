"""
Auth Module
===========

Access gate and its pluggable credential policies.

Components:
    - AccessGate: Authorizes (session, capability) pairs and admin access
    - OpenPolicy / SignedTokenPolicy / SharedDigestPolicy: Policy variants
    - TokenIssuer: Optional token minting for operators
    - extract_credential, issue_token, session_digest: Credential helpers
"""

from mjpeg_relay.auth.credentials import (
    constant_time_equals,
    extract_credential,
    is_valid_session_key,
    issue_token,
    require_valid_session_key,
    session_digest,
)
from mjpeg_relay.auth.policies import (
    AccessPolicy,
    OpenPolicy,
    SharedDigestPolicy,
    SignedTokenPolicy,
)
from mjpeg_relay.auth.gate import AccessGate, TokenIssuer


__all__ = [
    "AccessGate",
    "TokenIssuer",
    "AccessPolicy",
    "OpenPolicy",
    "SignedTokenPolicy",
    "SharedDigestPolicy",
    "constant_time_equals",
    "extract_credential",
    "is_valid_session_key",
    "issue_token",
    "require_valid_session_key",
    "session_digest",
]
