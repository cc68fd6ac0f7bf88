"""
Shared API Utilities

Error codes, the error envelope, outbox error mapping and middleware used
by the operator API.
"""

from .error_codes import ErrorCode, get_status_code
from .exceptions import APIException, from_outbox_error
from .middleware import TraceMiddleware, TracingMiddleware, get_operator_id, register_error_handlers
from .responses import ErrorBody, ErrorDetail, ErrorResponse

__all__ = [
    "ErrorCode",
    "get_status_code",
    "APIException",
    "from_outbox_error",
    "ErrorDetail",
    "ErrorBody",
    "ErrorResponse",
    "register_error_handlers",
    "TraceMiddleware",
    "TracingMiddleware",
    "get_operator_id",
]
