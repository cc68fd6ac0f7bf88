"""
Standard Error Codes

Consistent error codes across all API endpoints with HTTP status mapping.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """API error codes."""

    # Client errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    BAD_REQUEST = "BAD_REQUEST"

    # Outbox errors
    RENDER_ERROR = "RENDER_ERROR"
    OUTBOX_RECORD_NOT_FOUND = "OUTBOX_RECORD_NOT_FOUND"
    INVALID_OUTBOX_STATE = "INVALID_OUTBOX_STATE"
    OUTBOX_ALREADY_SENT = "OUTBOX_ALREADY_SENT"
    DISPATCH_CONFLICT = "DISPATCH_CONFLICT"

    # Server errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"


# HTTP status code mapping
ERROR_STATUS_CODES = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.BAD_REQUEST: 400,
    ErrorCode.RENDER_ERROR: 400,
    ErrorCode.INVALID_OUTBOX_STATE: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.OUTBOX_RECORD_NOT_FOUND: 404,
    ErrorCode.CONFLICT: 409,
    ErrorCode.OUTBOX_ALREADY_SENT: 409,
    ErrorCode.DISPATCH_CONFLICT: 409,
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.STORE_UNAVAILABLE: 503,
}


def get_status_code(error_code: ErrorCode) -> int:
    """
    Get HTTP status code for an error code.

    Args:
        error_code: The error code

    Returns:
        HTTP status code (defaults to 500 if not mapped)
    """
    return ERROR_STATUS_CODES.get(error_code, 500)


def is_client_error(error_code: ErrorCode) -> bool:
    """Check if the error code represents a client error (4xx)."""
    status = get_status_code(error_code)
    return 400 <= status < 500


def is_server_error(error_code: ErrorCode) -> bool:
    """Check if the error code represents a server error (5xx)."""
    status = get_status_code(error_code)
    return status >= 500
