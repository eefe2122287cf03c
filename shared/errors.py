"""
Shared error handling for the relay service.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class RelayException(Exception):
    """Base exception for relay services."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class StoreError(RelayException):
    """Backing store errors."""

    def __init__(
        self,
        message: str = "Store error",
        details: Optional[Dict[str, Any]] = None,
        code: str = "STORE_ERROR"
    ):
        super().__init__(code, message, details)


class StoreConnectionError(StoreError):
    """Store handle could not be established."""

    def __init__(self, message: str = "Failed to connect to store", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="STORE_CONNECTION_FAILED")


class StoreUnavailableError(StoreError):
    """Store round-trip failed."""

    def __init__(self, message: str = "Store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="STORE_UNAVAILABLE")


class KeyNotFoundError(StoreError):
    """Scalar key is absent from the store."""

    def __init__(self, key: str, details: Optional[Dict[str, Any]] = None):
        self.key = key
        super().__init__(f"Key not found: {key}", details, code="KEY_NOT_FOUND")


class RecordDecodeError(StoreError):
    """A stored value is not valid UTF-8 or a stored list entry is not a valid record."""

    def __init__(self, message: str = "Failed to decode record", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="RECORD_DECODE_FAILED")


class TransportClosedError(RelayException):
    """Peer connection is gone."""

    def __init__(self, message: str = "Transport closed", details: Optional[Dict[str, Any]] = None):
        super().__init__("TRANSPORT_CLOSED", message, details)
