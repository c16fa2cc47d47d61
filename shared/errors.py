"""
Shared error handling for the Access Layer authorization service.
"""

from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field

from opentelemetry import trace


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class AccessLayerException(Exception):
    """Base exception for Access Layer services."""

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


class AuthorizationError(AccessLayerException):
    """Access denied by policy."""

    status_code = 403

    def __init__(
        self,
        message: str = "Access denied by policy",
        denied_by: Optional[List[str]] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        details = dict(details or {})
        details["denied_by"] = list(denied_by or [])
        super().__init__("AUTHORIZATION_ERROR", message, details)
        self.denied_by = details["denied_by"]


class ValidationError(AccessLayerException):
    """Validation-related errors."""

    status_code = 422

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class PolicyLoadError(AccessLayerException):
    """The policy store could not be read."""

    status_code = 500

    def __init__(self, message: str = "Failed to load policies", details: Optional[Dict[str, Any]] = None):
        super().__init__("POLICY_LOAD_ERROR", message, details)


class ConditionEvaluationError(AccessLayerException):
    """A custom condition expression failed to parse, run, or finish in time."""

    def __init__(self, expression: str, message: str, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        details["expression"] = expression
        super().__init__("CONDITION_EVALUATION_ERROR", message, details)
        self.expression = expression
