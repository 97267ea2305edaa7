"""
Credentials
===========

Credential extraction, comparison and minting helpers.

Token format (HS256 JWT):
    {
        "sid": "76561198000000001",
        "cap": "view",
        "iat": 1770500938,
        "exp": 1770504538
    }

Digest format:
    hex(sha256("<secret>:<session>"))
    The same value the external issuer hands to uploaders.
"""

import hashlib
import hmac
import re
import time
from typing import Optional, Tuple

import jwt

from mjpeg_relay.exceptions import AccessDenied
from mjpeg_relay.models.capability import Capability
from mjpeg_relay.models.reasons import RejectionReason


TOKEN_ALGORITHM = "HS256"

SESSION_CLAIM = "sid"
CAPABILITY_CLAIM = "cap"

_SESSION_KEY_RE = re.compile(r"^[A-Za-z0-9_.:-]{1,128}$")


def extract_credential(
    authorization: Optional[str],
    query_value: Optional[str] = None,
) -> Optional[str]:
    """
    Pull a credential from a request.
    
    An `Authorization: Bearer <token>` header wins; otherwise the query
    parameter value is used (browsers cannot set headers on <img> tags
    or WebSocket upgrades).
    
    Returns:
        The credential, or None if neither source carries one.
    """
    if authorization:
        scheme, _, value = authorization.strip().partition(" ")
        if scheme.lower() == "bearer" and value.strip():
            return value.strip()
    
    if query_value and query_value.strip():
        return query_value.strip()
    
    return None


def constant_time_equals(expected: str, supplied: str) -> bool:
    """Compare two strings in time independent of where they first differ."""
    return hmac.compare_digest(expected.encode("utf-8"), supplied.encode("utf-8"))


def session_digest(secret: str, session: str) -> str:
    """Shared-secret digest that authorizes a session in digest mode."""
    return hashlib.sha256(f"{secret}:{session}".encode("utf-8")).hexdigest()


def is_valid_session_key(session: str) -> bool:
    return bool(_SESSION_KEY_RE.match(session or ""))


def require_valid_session_key(session: str) -> str:
    """
    Validate a session key on administrative and issuance paths.
    
    Raises:
        AccessDenied: BAD_REQUEST if the key is empty, too long or has
            characters outside [A-Za-z0-9_.:-]
    """
    if not is_valid_session_key(session):
        raise AccessDenied(RejectionReason.BAD_REQUEST, "malformed session identifier")
    return session


def issue_token(
    secret: str,
    session: str,
    capability: Capability,
    ttl_seconds: int,
    now: Optional[float] = None,
) -> Tuple[str, int]:
    """
    Mint a signed token bound to one session and one capability.
    
    Args:
        secret: Server secret shared with SignedTokenPolicy
        session: Session key the token is scoped to
        capability: Capability granted
        ttl_seconds: Lifetime; negative values yield an already-expired token
        now: Issue time override (epoch seconds)
        
    Returns:
        (encoded token, expiry as epoch seconds)
    """
    issued_at = int(now if now is not None else time.time())
    expires_at = issued_at + int(ttl_seconds)
    
    payload = {
        SESSION_CLAIM: session,
        CAPABILITY_CLAIM: Capability(capability).value,
        "iat": issued_at,
        "exp": expires_at,
    }
    token = jwt.encode(payload, secret, algorithm=TOKEN_ALGORITHM)
    return token, expires_at
