"""
Access Gate
===========

Front door for every request that touches relay state.

The gate wraps exactly one AccessPolicy, chosen at startup, plus the
independent admin code and the optional token issuer.

Rules:
    - Rejections are terminal for the request; there is no fallback to
      open behavior
    - Admin access never derives from viewer/uploader credentials
    - Credentials are never logged
"""

import logging
import secrets
from typing import TYPE_CHECKING, Optional

from mjpeg_relay.auth.credentials import (
    constant_time_equals,
    issue_token,
    require_valid_session_key,
)
from mjpeg_relay.auth.policies import (
    AccessPolicy,
    OpenPolicy,
    SharedDigestPolicy,
    SignedTokenPolicy,
)
from mjpeg_relay.exceptions import AccessDenied, ConfigurationError
from mjpeg_relay.models.api import IssueRequest, IssueResponse
from mjpeg_relay.models.capability import MINTABLE_CAPABILITIES, Capability
from mjpeg_relay.models.reasons import RejectionReason

if TYPE_CHECKING:
    from mjpeg_relay.config import AuthConfig


logger = logging.getLogger(__name__)


class TokenIssuer:
    """
    Mints viewer/uploader tokens for operators holding the issuer key.
    
    Attributes:
        max_ttl_seconds: Upper bound on requested lifetimes
    """
    
    def __init__(self, secret: str, issuer_key: str, max_ttl_seconds: int = 86400) -> None:
        self._secret = secret
        self._issuer_key = issuer_key
        self.max_ttl_seconds = max_ttl_seconds
    
    def issue(self, request: IssueRequest) -> IssueResponse:
        """
        Validate an issuance request and mint a token.
        
        Raises:
            AccessDenied: invalid_credential on a wrong key, bad_request on a
                malformed session, unmintable capability or out-of-range TTL
        """
        if not constant_time_equals(self._issuer_key, request.key):
            raise AccessDenied(RejectionReason.INVALID_CREDENTIAL, "invalid issuer key")
        
        require_valid_session_key(request.session)
        
        if request.capability not in MINTABLE_CAPABILITIES:
            raise AccessDenied(
                RejectionReason.BAD_REQUEST,
                f"capability '{request.capability.value}' cannot be issued",
            )
        
        if not 1 <= request.ttl_seconds <= self.max_ttl_seconds:
            raise AccessDenied(
                RejectionReason.BAD_REQUEST,
                f"ttl_seconds must be between 1 and {self.max_ttl_seconds}",
            )
        
        token, expires_at = issue_token(
            self._secret,
            request.session,
            request.capability,
            request.ttl_seconds,
        )
        logger.info(
            f"Issued {request.capability.value} token for session={request.session} "
            f"(ttl={request.ttl_seconds}s)"
        )
        return IssueResponse(
            token=token,
            session=request.session,
            capability=request.capability,
            expires_at=expires_at,
        )


class AccessGate:
    """
    Authorizes requests for a (session, capability) pair.
    
    Example:
        gate = AccessGate(SignedTokenPolicy(secret), admin_code="s3cret")
        gate.authorize("42", Capability.VIEW, token)
        gate.authorize_admin(code)
    """
    
    def __init__(
        self,
        policy: AccessPolicy,
        admin_code: str,
        issuer: Optional[TokenIssuer] = None,
    ) -> None:
        if not admin_code:
            raise ValueError("admin_code must be non-empty")
        self.policy = policy
        self.issuer = issuer
        self._admin_code = admin_code
    
    @property
    def mode(self) -> str:
        return self.policy.mode
    
    @property
    def enforcing(self) -> bool:
        return not isinstance(self.policy, OpenPolicy)
    
    def authorize(
        self,
        session: str,
        capability: Capability,
        credential: Optional[str],
    ) -> Capability:
        """
        Run the configured policy.
        
        Returns:
            The granted capability.
            
        Raises:
            AccessDenied: propagated from the policy, after logging
        """
        try:
            return self.policy.verify(session, capability, credential)
        except AccessDenied as e:
            logger.warning(
                f"Denied {capability.value} on session={session}: {e.reason.value} ({e.detail})"
            )
            raise
    
    def authorize_admin(self, code: Optional[str]) -> Capability:
        """
        Check the admin code. Independent of the viewer/uploader policy and
        enforced in every mode.
        """
        if not code:
            raise AccessDenied(RejectionReason.MISSING_CREDENTIAL, "admin code required")
        if not constant_time_equals(self._admin_code, code):
            logger.warning("Denied admin access: invalid admin code")
            raise AccessDenied(RejectionReason.INVALID_CREDENTIAL, "invalid admin code")
        return Capability.ADMIN
    
    def issue(self, request: IssueRequest) -> IssueResponse:
        """Mint a token, if this deployment issues tokens at all."""
        if self.issuer is None:
            raise AccessDenied(
                RejectionReason.NOT_FOUND,
                f"token issuance is not available in '{self.mode}' mode",
            )
        return self.issuer.issue(request)
    
    @classmethod
    def from_config(cls, config: "AuthConfig") -> "AccessGate":
        """
        Build the gate once at startup.
        
        Raises:
            ConfigurationError: contradictory or incomplete auth settings
        """
        mode = config.resolve_mode()
        
        if mode == "open":
            logger.warning("=" * 64)
            logger.warning("ACCESS GATE DISABLED: no auth secret configured (open mode).")
            logger.warning("Anyone can view and upload to any session.")
            logger.warning("=" * 64)
            policy: AccessPolicy = OpenPolicy()
        elif mode == "token":
            policy = SignedTokenPolicy(config.secret, leeway_seconds=config.leeway_seconds)
        elif mode == "digest":
            policy = SharedDigestPolicy(config.secret)
        else:
            raise ConfigurationError(f"Unknown auth mode: {mode}")
        
        issuer = None
        if mode == "token" and config.issuer_key:
            issuer = TokenIssuer(
                secret=config.secret,
                issuer_key=config.issuer_key,
                max_ttl_seconds=config.max_ttl_seconds,
            )
        
        admin_code = config.admin_code
        if not admin_code:
            admin_code = secrets.token_hex(16)
            logger.warning(f"No admin code configured, generated one for this run: {admin_code}")
        
        logger.info(
            f"Access gate ready: mode={mode}, issuance={'on' if issuer else 'off'}"
        )
        return cls(policy=policy, admin_code=admin_code, issuer=issuer)
