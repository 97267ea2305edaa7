"""
Access Policies
===============

Interchangeable credential verification strategies behind one contract:

    verify(session, capability, credential) -> granted Capability
    (raises AccessDenied otherwise)

Implementations:
    - OpenPolicy: no credential required (trusted / local deployments)
    - SignedTokenPolicy: HS256 token bound to session + capability + expiry
    - SharedDigestPolicy: sha256(secret:session) digest, no capability or
      expiry concept; one digest opens both viewing and uploading

A policy is selected once at startup (see AccessGate.from_config).
"""

import logging
from typing import Optional, Protocol

import jwt

from mjpeg_relay.auth.credentials import (
    CAPABILITY_CLAIM,
    SESSION_CLAIM,
    TOKEN_ALGORITHM,
    constant_time_equals,
    session_digest,
)
from mjpeg_relay.exceptions import AccessDenied
from mjpeg_relay.models.capability import Capability
from mjpeg_relay.models.reasons import RejectionReason


logger = logging.getLogger(__name__)


class AccessPolicy(Protocol):
    """
    Protocol for credential verification backends.
    
    Attributes:
        mode: Short mode name reported by /health ("open", "token", "digest")
    """
    
    mode: str
    
    def verify(
        self,
        session: str,
        capability: Capability,
        credential: Optional[str],
    ) -> Capability:
        """
        Check a credential against a (session, capability) pair.
        
        Returns:
            The capability granted.
            
        Raises:
            AccessDenied: missing_credential, invalid_credential or forbidden
        """
        ...


class OpenPolicy:
    """Grants everything. Only selected when no secret is configured."""
    
    mode = "open"
    
    def verify(
        self,
        session: str,
        capability: Capability,
        credential: Optional[str],
    ) -> Capability:
        return capability


class SignedTokenPolicy:
    """
    Verifies HS256 tokens minted by issue_token().
    
    Only HS256 is accepted, so "none" or asymmetric-algorithm tokens fail
    signature verification before any claim is read.
    
    Attributes:
        leeway_seconds: Clock skew tolerated on the expiry check
    """
    
    mode = "token"
    
    def __init__(self, secret: str, leeway_seconds: int = 0) -> None:
        if not secret:
            raise ValueError("SignedTokenPolicy requires a non-empty secret")
        self._secret = secret
        self.leeway_seconds = leeway_seconds
    
    def verify(
        self,
        session: str,
        capability: Capability,
        credential: Optional[str],
    ) -> Capability:
        if not credential:
            raise AccessDenied(RejectionReason.MISSING_CREDENTIAL)
        
        try:
            payload = jwt.decode(
                credential,
                self._secret,
                algorithms=[TOKEN_ALGORITHM],
                leeway=self.leeway_seconds,
                options={"require": ["exp", SESSION_CLAIM, CAPABILITY_CLAIM]},
            )
        except jwt.ExpiredSignatureError:
            raise AccessDenied(RejectionReason.INVALID_CREDENTIAL, "token expired")
        except jwt.InvalidTokenError as e:
            logger.debug(f"Token rejected: {e}")
            raise AccessDenied(RejectionReason.INVALID_CREDENTIAL, "invalid token")
        
        try:
            granted = Capability(payload[CAPABILITY_CLAIM])
        except ValueError:
            raise AccessDenied(RejectionReason.INVALID_CREDENTIAL, "unknown capability")
        
        if str(payload[SESSION_CLAIM]) != session:
            raise AccessDenied(RejectionReason.FORBIDDEN, "token is bound to another session")
        
        if granted != capability:
            raise AccessDenied(
                RejectionReason.FORBIDDEN,
                f"token grants '{granted.value}', endpoint requires '{capability.value}'",
            )
        
        return granted


class SharedDigestPolicy:
    """
    Verifies sha256(secret:session) digests in constant time.
    
    A digest computed for another session simply does not match, so
    cross-session use surfaces as invalid_credential in this mode.
    """
    
    mode = "digest"
    
    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("SharedDigestPolicy requires a non-empty secret")
        self._secret = secret
    
    def verify(
        self,
        session: str,
        capability: Capability,
        credential: Optional[str],
    ) -> Capability:
        if not credential:
            raise AccessDenied(RejectionReason.MISSING_CREDENTIAL)
        
        expected = session_digest(self._secret, session)
        if not constant_time_equals(expected, credential):
            raise AccessDenied(RejectionReason.INVALID_CREDENTIAL, "digest mismatch")
        
        return capability
