"""
Global Error Handler Middleware

Catches exceptions and returns standardized error responses.
"""

import logging
import traceback
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ....core.outbox.errors import OutboxError, StoreUnavailable
from ..error_codes import ErrorCode
from ..exceptions import APIException, ValidationError, from_outbox_error
from ..responses import ErrorBody, ErrorDetail

logger = logging.getLogger(__name__)


def _request_trace_id(request: Request) -> str:
    return getattr(request.state, "trace_id", None) or str(uuid4())


def _error_response(exc: APIException, trace_id: str) -> JSONResponse:
    error_body = ErrorBody(
        code=exc.code.value if isinstance(exc.code, ErrorCode) else str(exc.code),
        message=exc.message,
        details=exc.details,
        trace_id=trace_id
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": error_body.model_dump(mode="json")}
    )


def register_error_handlers(app: FastAPI):
    """
    Register all error handlers on the FastAPI app.

    This function sets up exception handlers for:
    - APIException (custom API errors)
    - OutboxError (domain errors from the outbox core)
    - RequestValidationError (FastAPI validation)
    - Generic Exception (catch-all for unexpected errors)
    """

    @app.exception_handler(APIException)
    async def api_exception_handler(request: Request, exc: APIException):
        """Handle custom API exceptions."""
        trace_id = exc.trace_id or _request_trace_id(request)

        logger.warning(
            f"API Error: {exc.code} - {exc.message}",
            extra={
                "trace_id": trace_id,
                "error_code": str(exc.code),
                "path": request.url.path
            }
        )
        return _error_response(exc, trace_id)

    @app.exception_handler(OutboxError)
    async def outbox_exception_handler(request: Request, exc: OutboxError):
        """Handle outbox domain errors."""
        trace_id = _request_trace_id(request)
        api_exc = from_outbox_error(exc, trace_id=trace_id)

        log = logger.error if isinstance(exc, StoreUnavailable) else logger.info
        log(
            f"Outbox Error: {type(exc).__name__}: {exc}",
            extra={
                "trace_id": trace_id,
                "error_code": api_exc.code.value,
                "path": request.url.path
            }
        )
        return _error_response(api_exc, trace_id)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle FastAPI validation errors."""
        trace_id = _request_trace_id(request)

        details = []
        for error in exc.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            details.append(ErrorDetail(
                field=field,
                message=error["msg"],
                code=error["type"]
            ))

        logger.warning(
            f"Validation Error: {len(details)} field(s)",
            extra={
                "trace_id": trace_id,
                "path": request.url.path,
                "errors": [d.model_dump() for d in details]
            }
        )

        return _error_response(ValidationError("Request validation failed", details=details), trace_id)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        trace_id = _request_trace_id(request)

        logger.error(
            f"Unhandled Exception: {type(exc).__name__}: {exc}",
            extra={
                "trace_id": trace_id,
                "path": request.url.path,
                "traceback": traceback.format_exc()
            }
        )

        # Don't expose internal details
        return _error_response(APIException(ErrorCode.INTERNAL_ERROR, "An internal error occurred"), trace_id)
