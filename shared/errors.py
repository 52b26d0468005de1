"""
Shared error handling for the Query Cache service.
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


class QueryCacheException(Exception):
    """Base exception for the Query Cache service."""

    status_code = 400

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


class InvalidDescriptor(QueryCacheException):
    """Malformed persisted-query metadata on a request."""

    def __init__(self, message: str = "Invalid persisted query descriptor", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_DESCRIPTOR", message, details)


class StoreUnavailable(QueryCacheException):
    """Key/value store backend could not be reached."""

    status_code = 503

    def __init__(self, backend: str, message: str = "Store unavailable", details: Optional[Dict[str, Any]] = None):
        self.backend = backend
        super().__init__("STORE_UNAVAILABLE", f"{backend}: {message}", details)


class PersistedQueryNotFound(QueryCacheException):
    """A persisted query reference was not found and no query text was sent."""

    status_code = 200

    def __init__(self, fingerprint: Optional[str] = None):
        details = {"fingerprint": fingerprint} if fingerprint else {}
        super().__init__("PERSISTED_QUERY_NOT_FOUND", "PersistedQueryNotFound", details)

    def to_graphql(self) -> Dict[str, Any]:
        """Body the client receives: a GraphQL error list."""
        return {"errors": [{"message": self.message}]}


class InvalidQueryRequest(QueryCacheException):
    """Inbound query request could not be interpreted."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class ExternalServiceError(QueryCacheException):
    """External service errors."""

    status_code = 502

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details)


class ExecutionEngineError(ExternalServiceError):
    """The upstream query engine could not produce a response."""

    def __init__(self, message: str = "Query engine unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("query_engine", message, details)
