"""Custom exceptions for outbound integrations."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Classification of outbound failures."""

    NETWORK = "network"  # No response received
    HTTP = "http"  # Non-2xx response
    CONFIG = "config"  # Malformed declaration or call arguments
    VALIDATION = "validation"  # Schema violation
    AUTH_INVALIDATION = "auth-invalidation"  # 401, eligible for one retry


class OutboundError(Exception):
    """Base exception for outbound integration errors.

    Attributes:
        kind: Error classification.
        status: HTTP status code, when a response was received.
        message: Human-readable message.
        details: Vendor-supplied error payload, if any.
    """

    kind: ErrorKind = ErrorKind.CONFIG

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.details = details

    def __str__(self) -> str:
        status = f" {self.status}" if self.status else ""
        return f"[{self.kind.value}{status}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Return the error as a plain dictionary."""
        return {
            "kind": self.kind.value,
            "status": self.status,
            "message": self.message,
            "details": self.details,
        }


class NetworkError(OutboundError):
    """Raised when no response was received from the vendor."""

    kind = ErrorKind.NETWORK


class VendorHTTPError(OutboundError):
    """Raised when the vendor responds with a non-2xx status."""

    kind = ErrorKind.HTTP


class AuthInvalidationError(VendorHTTPError):
    """Raised when the vendor rejects the cached credential (HTTP 401)."""

    kind = ErrorKind.AUTH_INVALIDATION


class AuthenticationError(OutboundError):
    """Raised when a token exchange with the vendor fails."""

    kind = ErrorKind.HTTP

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        details: Any = None,
        network: bool = False,
    ) -> None:
        super().__init__(message, status=status, details=details)
        if network:
            self.kind = ErrorKind.NETWORK


class ConfigError(OutboundError):
    """Raised for malformed integration declarations or call arguments."""

    kind = ErrorKind.CONFIG


class ValidationError(OutboundError):
    """Raised when an integration config violates the schema."""

    kind = ErrorKind.VALIDATION
