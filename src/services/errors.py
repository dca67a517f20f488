"""Shared service-layer error types.

Provides error dataclasses used across service modules (tracking client,
sync service, reconciler). Centralised here to avoid circular imports
between service modules.
"""

from dataclasses import dataclass


@dataclass
class TrackingServiceError(Exception):
    """Error from the tracking provider layer.

    Attributes:
        code: LogiSync error code (E-XXXX format)
        message: Human-readable error message
        retryable: Whether the failure is transient
        details: Raw error details
    """

    code: str
    message: str
    retryable: bool = False
    details: dict | None = None

    def __str__(self) -> str:
        """Return formatted error message."""
        return f"[{self.code}] {self.message}"
