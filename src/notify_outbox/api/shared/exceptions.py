"""
API Exception Classes

Custom exceptions that map to standard error responses, plus the mapping
from outbox domain errors onto them.
"""

from typing import List, Optional

from ...core.outbox.errors import (
    AlreadySent,
    DispatchConflict,
    InvalidState,
    OutboxError,
    RecordNotFound,
    RenderError,
    StoreUnavailable,
)
from .error_codes import ErrorCode, get_status_code
from .responses import ErrorDetail


class APIException(Exception):
    """
    Base exception for API errors.

    The error handler middleware catches these and returns standardized
    error responses.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[List[ErrorDetail]] = None,
        trace_id: Optional[str] = None
    ):
        self.code = code
        self.message = message
        self.details = details
        self.trace_id = trace_id
        self.status_code = get_status_code(code)
        super().__init__(message)


class ValidationError(APIException):
    """
    Validation error for invalid request data.

    HTTP Status: 400
    """

    def __init__(
        self,
        message: str,
        details: Optional[List[ErrorDetail]] = None,
        trace_id: Optional[str] = None
    ):
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message=message,
            details=details,
            trace_id=trace_id
        )


class NotFoundError(APIException):
    """
    Resource not found error.

    HTTP Status: 404
    """

    def __init__(
        self,
        resource: str,
        resource_id: Optional[str] = None,
        trace_id: Optional[str] = None
    ):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' not found"

        code_map = {
            "Outbox record": ErrorCode.OUTBOX_RECORD_NOT_FOUND,
        }
        code = code_map.get(resource, ErrorCode.NOT_FOUND)

        super().__init__(code=code, message=message, trace_id=trace_id)
        self.resource = resource
        self.resource_id = resource_id


class ConflictError(APIException):
    """
    Conflict error (already sent, dispatch in flight).

    HTTP Status: 409
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.CONFLICT,
        details: Optional[List[ErrorDetail]] = None,
        trace_id: Optional[str] = None
    ):
        super().__init__(code=code, message=message, details=details, trace_id=trace_id)


class StoreUnavailableError(APIException):
    """
    Backing store or lease backend unreachable. Retryable.

    HTTP Status: 503
    """

    def __init__(
        self,
        message: str = "The outbox store is unavailable",
        trace_id: Optional[str] = None
    ):
        super().__init__(
            code=ErrorCode.STORE_UNAVAILABLE,
            message=message,
            trace_id=trace_id
        )


def from_outbox_error(exc: OutboxError, trace_id: Optional[str] = None) -> APIException:
    """Translate an outbox domain error into its API exception."""
    if isinstance(exc, RecordNotFound):
        return NotFoundError("Outbox record", exc.record_id, trace_id=trace_id)
    if isinstance(exc, RenderError):
        return APIException(
            ErrorCode.RENDER_ERROR,
            str(exc),
            details=[ErrorDetail(field=exc.detail or None, message=str(exc), code=exc.reason.value)],
            trace_id=trace_id,
        )
    if isinstance(exc, InvalidState):
        return APIException(ErrorCode.INVALID_OUTBOX_STATE, str(exc), trace_id=trace_id)
    if isinstance(exc, AlreadySent):
        return ConflictError(str(exc), code=ErrorCode.OUTBOX_ALREADY_SENT, trace_id=trace_id)
    if isinstance(exc, DispatchConflict):
        details = None
        if exc.held_by:
            details = [ErrorDetail(field="lease", message=f"held by {exc.held_by}", code="LEASE_HELD")]
        return ConflictError(str(exc), code=ErrorCode.DISPATCH_CONFLICT, details=details, trace_id=trace_id)
    if isinstance(exc, StoreUnavailable):
        # Driver messages can carry connection strings.
        return StoreUnavailableError(trace_id=trace_id)
    return APIException(ErrorCode.INTERNAL_ERROR, "An internal error occurred", trace_id=trace_id)
