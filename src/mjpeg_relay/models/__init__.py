"""
Data Models
===========

Pydantic models and enums for the relay.

Models:
    - Capability: view / upload / admin scopes
    - RejectionReason: machine-readable refusal codes
    - StatusResponse, FrameInfo: administrative status payload
    - DisconnectResponse: admin disconnect acknowledgment
    - IssueRequest, IssueResponse: token issuance
    - ErrorResponse, HealthResponse
"""

from mjpeg_relay.models.capability import Capability, MINTABLE_CAPABILITIES
from mjpeg_relay.models.reasons import RejectionReason
from mjpeg_relay.models.api import (
    DisconnectResponse,
    ErrorResponse,
    FrameInfo,
    HealthResponse,
    IssueRequest,
    IssueResponse,
    StatusResponse,
)

__all__ = [
    "Capability",
    "MINTABLE_CAPABILITIES",
    "RejectionReason",
    "DisconnectResponse",
    "ErrorResponse",
    "FrameInfo",
    "HealthResponse",
    "IssueRequest",
    "IssueResponse",
    "StatusResponse",
]
