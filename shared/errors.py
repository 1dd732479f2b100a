"""
Shared error handling for the Render Cache Proxy.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from opentelemetry import trace


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


def current_trace_id() -> Optional[str]:
    """Return the hex trace id of the recording span, if any."""
    current_span = trace.get_current_span()
    if current_span and current_span.is_recording():
        span_context = current_span.get_span_context()
        if span_context.trace_id != 0:
            return f"{span_context.trace_id:032x}"
    return None


class RenderProxyException(Exception):
    """Base exception for render proxy services."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class InvalidRequestError(RenderProxyException):
    """The request carries no usable URL."""

    def __init__(self, message: str = "Invalid request", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_REQUEST", message, details)


class RenderFailure(RenderProxyException):
    """Browser launch, navigation or serialization failed."""

    def __init__(self, message: str = "Render failed", details: Optional[Dict[str, Any]] = None,
                 code: str = "RENDER_FAILURE"):
        super().__init__(code, message, details)


class RenderTimeoutError(RenderFailure):
    """The renderer did not finish within its timeout."""

    def __init__(self, message: str = "Render timed out", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="RENDER_TIMEOUT")


class StoreFailure(RenderProxyException):
    """Cache store round-trip failed."""

    def __init__(self, operation: str, message: str = "Store error", details: Optional[Dict[str, Any]] = None):
        self.operation = operation
        super().__init__("STORE_FAILURE", f"{operation}: {message}", details)


class DeadlineExceededError(RenderProxyException):
    """The request ran past the outer deadline."""

    def __init__(self, message: str = "Request deadline exceeded", details: Optional[Dict[str, Any]] = None):
        super().__init__("DEADLINE_EXCEEDED", message, details)


class NotificationFailure(RenderProxyException):
    """Best-effort failure notification could not be delivered."""

    def __init__(self, message: str = "Notification failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOTIFICATION_FAILURE", message, details)


def generic_failure() -> ErrorResponse:
    """The single failure body callers see, whatever went wrong."""
    return ErrorResponse(
        trace_id=current_trace_id(),
        code="INTERNAL_ERROR",
        message="Internal server error",
    )
