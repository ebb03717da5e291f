"""
Shared error handling for the Logistics Tracking service.
"""

from typing import Dict, Any, Optional

from opentelemetry import trace
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class TrackingServiceException(Exception):
    """Base exception for tracking service errors."""

    status_code: int = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        # Get trace ID from current span
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class InvalidTrackingNumberError(TrackingServiceException):
    """Tracking number missing or blank."""

    status_code = 400

    def __init__(self, message: str = "Tracking number is required", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_TRACKING_NUMBER", message, details)


class TrackingNotFoundError(TrackingServiceException):
    """No resolvable package record for a tracking number."""

    status_code = 404

    def __init__(self, tracking_number: str, reason: str = "package", details: Optional[Dict[str, Any]] = None):
        self.tracking_number = tracking_number
        self.reason = reason
        super().__init__(
            "TRACKING_NOT_FOUND",
            "Tracking number not found",
            {"tracking_number": tracking_number, "missing": reason, **(details or {})}
        )


class TrackingTransientError(TrackingServiceException):
    """Relational store or cache could not be reached."""

    status_code = 503

    def __init__(self, backend: str, message: str = "Backend unavailable", details: Optional[Dict[str, Any]] = None):
        self.backend = backend
        super().__init__("TRACKING_UNAVAILABLE", f"{backend}: {message}", details)


class TrackingSerializationError(TrackingServiceException):
    """Cached payload could not be decoded."""

    status_code = 502

    def __init__(self, message: str = "Cached tracking record is corrupt", details: Optional[Dict[str, Any]] = None):
        super().__init__("TRACKING_CORRUPT_CACHE", message, details)
