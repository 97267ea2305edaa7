"""
Rejection Reasons
=================

Fixed set of machine-readable reasons surfaced when a request is refused.

Rules:
    - One reason per rejection
    - No credential material in any payload
    - Each reason maps to exactly one HTTP status
"""

from enum import Enum


class RejectionReason(str, Enum):
    """
    Machine-readable rejection codes.
    
    Attributes:
        MISSING_CREDENTIAL: No credential was supplied
        INVALID_CREDENTIAL: Malformed, expired, badly signed or mismatched digest
        FORBIDDEN: Credential is valid but scoped to another session or capability
        BAD_REQUEST: Malformed session identifier, capability or TTL
        NOT_FOUND: Requested feature or resource does not exist
    """
    
    MISSING_CREDENTIAL = "missing_credential"
    INVALID_CREDENTIAL = "invalid_credential"
    FORBIDDEN = "forbidden"
    BAD_REQUEST = "bad_request"
    NOT_FOUND = "not_found"
    
    @property
    def status_code(self) -> int:
        """HTTP status used when this reason reaches a client."""
        return _STATUS_CODES[self]


_STATUS_CODES = {
    RejectionReason.MISSING_CREDENTIAL: 401,
    RejectionReason.INVALID_CREDENTIAL: 401,
    RejectionReason.FORBIDDEN: 403,
    RejectionReason.BAD_REQUEST: 400,
    RejectionReason.NOT_FOUND: 404,
}
