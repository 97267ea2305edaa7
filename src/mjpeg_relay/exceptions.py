"""
Relay Exceptions
================

Exception hierarchy shared by the relay, the access gate and the
HTTP surface.

Rules:
    - Access failures are terminal for the request that raised them
    - Delivery failures never leave the relay (a dead viewer is evicted)
    - Configuration failures abort startup
"""

from typing import Optional

from mjpeg_relay.models.reasons import RejectionReason


class RelayError(Exception):
    """Base class for all relay errors."""


class ConfigurationError(RelayError):
    """Raised at startup when the configuration is contradictory or incomplete."""


class AccessDenied(RelayError):
    """
    Credential rejected by the access gate.
    
    Attributes:
        reason: Machine-readable rejection reason
        detail: Short human-readable explanation (never echoes the credential)
    """
    
    def __init__(self, reason: RejectionReason, detail: Optional[str] = None) -> None:
        self.reason = reason
        self.detail = detail or reason.value.replace("_", " ")
        super().__init__(f"{reason.value}: {self.detail}")
    
    @property
    def status_code(self) -> int:
        return self.reason.status_code


class DeliveryError(RelayError):
    """A frame could not be handed to a watcher."""


class WatcherClosedError(DeliveryError):
    """The watcher's channel is already closed."""


class WatcherStalledError(DeliveryError):
    """The watcher stopped draining frames for too many publishes in a row."""
