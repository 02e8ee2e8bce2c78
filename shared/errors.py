"""
Shared error handling for the Storefront backend.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field

from opentelemetry import trace


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class StorefrontException(Exception):
    """Base exception for Storefront services."""

    status_code: int = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
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


class AuthenticationError(StorefrontException):
    """Authentication-related errors."""

    status_code = 401

    def __init__(self, message: str = "Not authorized", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)


class AuthorizationError(StorefrontException):
    """Authorization-related errors."""

    status_code = 403

    def __init__(self, message: str = "Forbidden", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHORIZATION_ERROR", message, details)


class ValidationError(StorefrontException):
    """Validation-related errors."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class ConflictError(StorefrontException):
    """Request conflicts with the current state of a document."""

    status_code = 400

    def __init__(self, message: str = "Conflict", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFLICT_ERROR", message, details)


class NotFoundError(StorefrontException):
    """Requested document does not exist."""

    status_code = 404

    def __init__(self, resource: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", f"{resource} not found", details)


class PersistenceError(StorefrontException):
    """Document store read or write failed."""

    status_code = 503

    def __init__(self, message: str = "Document store error", details: Optional[Dict[str, Any]] = None):
        super().__init__("PERSISTENCE_ERROR", message, details)


class CacheUnavailableError(StorefrontException):
    """Cache store could not be reached. Never surfaced to HTTP callers."""

    status_code = 503

    def __init__(self, operation: str, message: str = "Cache store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_UNAVAILABLE", f"{operation}: {message}", details)
        self.operation = operation
