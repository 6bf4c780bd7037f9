"""Structured error response schemas."""
from datetime import datetime
from typing import Any
from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Detailed error information."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    field: str | None = Field(default=None, description="Field that caused the error (for validation errors)")
    value: Any | None = Field(default=None, description="Invalid value (for validation errors)")


class ErrorResponse(BaseModel):
    """Standard error response structure.

    This provides consistent error responses across the API with:
    - Machine-readable error codes
    - Human-readable messages
    - Remediation hints
    - Request tracing information
    """

    error: str = Field(..., description="Error type (e.g., 'ValidationError', 'NotFound', 'PreconditionFailed')")
    message: str = Field(..., description="Primary error message")
    details: list[ErrorDetail] | None = Field(
        default=None, description="Detailed error information (for validation errors)"
    )
    remediation: str | None = Field(default=None, description="Suggestion for fixing the error")
    request_id: str | None = Field(default=None, description="Request ID for tracing")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Error timestamp")


# Error codes enum for consistency
class ErrorCode:
    """Standard error codes used across the API."""

    # Validation errors (400/422)
    INVALID_ENUM_VALUE = "invalid_enum_value"
    MISSING_REQUIRED_FIELD = "missing_required_field"
    VALUE_TOO_SMALL = "value_too_small"
    INVALID_UUID = "invalid_uuid"

    # Billing rule errors (409)
    PRECONDITION_FAILED = "precondition_failed"
    NO_SEATS_REMAINING = "no_seats_remaining"
    MEMBER_NOT_ACTIVE = "member_not_active"
    CONCURRENT_UPDATE = "concurrent_update"
    LEDGER_IMMUTABLE = "ledger_immutable"

    # Not found errors (404)
    NOT_FOUND = "not_found"

    # Authorization errors (401/403)
    INSUFFICIENT_PERMISSIONS = "insufficient_permissions"

    # External service errors (503)
    DATABASE_ERROR = "database_error"

    # Internal errors (500)
    INTERNAL_ERROR = "internal_error"


# Remediation hints for common errors
REMEDIATION_HINTS = {
    ErrorCode.NOT_FOUND: "Verify the organization, member, invoice or payment ID is correct",
    ErrorCode.NO_SEATS_REMAINING: "Buy more seats or unassign a seat from another member first",
    ErrorCode.MEMBER_NOT_ACTIVE: "Activate the member before assigning a premium seat",
    ErrorCode.CONCURRENT_UPDATE: "Another billing change landed at the same time. Retry the request.",
    ErrorCode.PRECONDITION_FAILED: "Refresh the billing state and check the request against it",
    ErrorCode.DATABASE_ERROR: "Database temporarily unavailable. Please try again in a few moments.",
}
