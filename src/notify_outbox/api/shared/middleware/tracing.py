"""
OpenTelemetry Tracing Middleware

FastAPI middleware for automatic request tracing with OpenTelemetry.
"""

import logging
import time
from typing import Callable

from fastapi import Request, Response
from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware

from ....core.observability.metrics import record_counter, record_histogram
from ....core.observability.tracing import extract_trace_context, get_trace_id, get_tracer
from .trace import operator_id_var

logger = logging.getLogger(__name__)

_UNTRACED_PATHS = frozenset({"/health", "/health/live", "/health/ready"})


class TracingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that creates OpenTelemetry spans for HTTP requests.

    Features:
    - Extracts trace context from incoming headers
    - Creates request span with standard HTTP attributes
    - Records request metrics
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in _UNTRACED_PATHS:
            return await call_next(request)

        context = extract_trace_context(dict(request.headers))
        operator_id = operator_id_var.get()

        tracer = get_tracer()
        start_time = time.time()

        with tracer.start_as_current_span(
            f"{request.method} {request.url.path}",
            context=context,
            kind=trace.SpanKind.SERVER,
            attributes={
                "http.method": request.method,
                "http.url": str(request.url),
                "http.route": request.url.path,
                "http.scheme": request.url.scheme,
                "http.user_agent": request.headers.get("user-agent", ""),
            }
        ) as span:
            if operator_id:
                span.set_attribute("outbox.operator", operator_id)

            try:
                response = await call_next(request)
            except Exception as e:
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                span.record_exception(e)
                record_counter("http_requests_total", 1, {
                    "method": request.method,
                    "path": request.url.path,
                    "status": "500"
                })
                raise

            span.set_attribute("http.status_code", response.status_code)

            duration = time.time() - start_time
            record_counter("http_requests_total", 1, {
                "method": request.method,
                "path": request.url.path,
                "status": str(response.status_code)
            })
            record_histogram("http_request_duration_seconds", duration, {
                "method": request.method,
                "path": request.url.path
            })

            otel_trace_id = get_trace_id()
            if otel_trace_id:
                response.headers["X-OTel-Trace-ID"] = otel_trace_id

            return response
