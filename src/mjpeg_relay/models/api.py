"""
API Models
==========

Request and response payloads for the relay's JSON endpoints.

Output Contract (GET /status):
    {
        "streams": ["76561198000000001"],
        "watchers": {"76561198000000001": 3},
        "uploaders": {"76561198000000001": 1},
        "frames": {
            "76561198000000001": {"bytes": 14211, "sequence": 912, "age_ms": 41}
        },
        "ts": 1770500938284
    }

Design Rules:
    - Frame bytes never appear in JSON payloads
    - Sessions with no watchers / uploaders are omitted from those maps
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from mjpeg_relay.models.capability import Capability


class ErrorResponse(BaseModel):
    """Structured failure payload returned with 4xx statuses."""
    
    error: str = Field(..., description="Rejection reason code")
    detail: Optional[str] = Field(default=None, description="Short explanation")


class FrameInfo(BaseModel):
    """Metadata about the frame currently stored for a session."""
    
    bytes: int = Field(..., ge=0, description="Size of the stored frame")
    sequence: int = Field(..., ge=1, description="Per-session publish counter")
    age_ms: int = Field(..., ge=0, description="Milliseconds since the frame arrived")


class StatusResponse(BaseModel):
    """Administrative view of the relay."""
    
    streams: List[str] = Field(
        default_factory=list,
        description="Session keys with a stored frame",
    )
    watchers: Dict[str, int] = Field(
        default_factory=dict,
        description="Registered multipart watchers per session",
    )
    uploaders: Dict[str, int] = Field(
        default_factory=dict,
        description="Open ingestion channels per session",
    )
    frames: Dict[str, FrameInfo] = Field(
        default_factory=dict,
        description="Stored frame metadata per session",
    )
    ts: int = Field(..., description="Server time in epoch milliseconds")


class DisconnectResponse(BaseModel):
    """Acknowledgment of an administrative disconnect."""
    
    ok: bool = True
    session: str
    closed_uploaders: int = Field(default=0, ge=0)
    frame_cleared: bool = False


class IssueRequest(BaseModel):
    """Request to mint a signed viewer/uploader token."""
    
    key: str = Field(..., description="Operator-level issuer key")
    session: str = Field(..., description="Session the token is bound to")
    capability: Capability = Field(..., description="Capability granted by the token")
    ttl_seconds: int = Field(default=3600, description="Token lifetime in seconds")


class IssueResponse(BaseModel):
    """Freshly minted token."""
    
    token: str
    session: str
    capability: Capability
    expires_at: int = Field(..., description="Expiry as epoch seconds")


class HealthResponse(BaseModel):
    """Liveness payload."""
    
    status: str = "healthy"
    auth_mode: str
    uptime_seconds: float
    metrics: Dict[str, int] = Field(default_factory=dict)
