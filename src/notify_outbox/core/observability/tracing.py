"""
OpenTelemetry Tracing

Spans around dispatches, channel calls and retries. Outbox spans carry the
record id as ``outbox.id`` so one notification can be followed from the
operator request down to each adapter call.

Expected domain outcomes (a lost dispatch race, a retry on a sent record)
are passed as ``expected`` and recorded as span events; only unexpected
exceptions mark the span as an error.
"""

import asyncio
import inspect
import logging
from typing import Optional, Dict, Any, Callable, Tuple, Type
from contextlib import contextmanager
from functools import wraps

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.trace import Status, StatusCode, Span
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator
from opentelemetry.propagate import set_global_textmap, extract

logger = logging.getLogger(__name__)

TRACER_NAME = "notify-outbox"
RECORD_ID_ATTRIBUTE = "outbox.id"

ExpectedErrors = Tuple[Type[BaseException], ...]

_tracer: Optional[trace.Tracer] = None
_propagator = TraceContextTextMapPropagator()


def init_tracing(
    service_name: str = TRACER_NAME,
    service_version: str = "1.0.0",
    otlp_endpoint: Optional[str] = None,
    console_export: bool = False
) -> trace.Tracer:
    """
    Initialize OpenTelemetry tracing.

    Without an OTLP endpoint spans are still created (trace ids show up in
    logs and error envelopes) but nothing is exported.
    """
    global _tracer

    resource = Resource.create({
        SERVICE_NAME: service_name,
        SERVICE_VERSION: service_version,
    })
    provider = TracerProvider(resource=resource)

    if otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True)))
        logger.info(f"OTel tracing: OTLP exporter configured -> {otlp_endpoint}")

    if console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        logger.info("OTel tracing: Console exporter enabled")

    trace.set_tracer_provider(provider)
    set_global_textmap(_propagator)

    _tracer = trace.get_tracer(service_name, service_version)
    logger.info(f"OTel tracing initialized: {service_name} v{service_version}")
    return _tracer


def get_tracer() -> trace.Tracer:
    global _tracer
    if _tracer is None:
        _tracer = trace.get_tracer(TRACER_NAME)
    return _tracer


def get_current_span() -> Optional[Span]:
    return trace.get_current_span()


def get_trace_id() -> Optional[str]:
    """Current trace ID as 32 hex chars, or None outside a valid span."""
    span = get_current_span()
    if span and span.get_span_context().is_valid:
        return format(span.get_span_context().trace_id, '032x')
    return None


@contextmanager
def create_span(
    name: str,
    attributes: Dict[str, Any] = None,
    kind: trace.SpanKind = trace.SpanKind.INTERNAL,
    expected: ExpectedErrors = (),
):
    """
    Create a new span as context manager.

    Usage:
        with create_span("outbox.dispatch", {"outbox.id": record_id}, expected=(DispatchConflict,)) as span:
            ...
            span.set_attribute("outbox.status", "sent")
    """
    tracer = get_tracer()

    with tracer.start_as_current_span(
        name,
        kind=kind,
        attributes=attributes or {},
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        try:
            yield span
        except expected as e:
            span.add_event("outbox.outcome", {"outcome": type(e).__name__, "message": str(e)})
            raise
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
            raise


def traced(
    name: Optional[str] = None,
    id_arg: Optional[str] = "record_id",
    expected: ExpectedErrors = (),
) -> Callable:
    """
    Decorator to trace a coroutine function.

    When the function takes an argument named ``id_arg`` its value is set
    as ``outbox.id`` on the span.

    Usage:
        @traced("outbox.retry", expected=(AlreadySent, DispatchConflict))
        async def retry(self, record_id):
            ...
    """
    def decorator(func: Callable) -> Callable:
        if not asyncio.iscoroutinefunction(func):
            raise TypeError(f"@traced needs a coroutine function, got {func.__qualname__}")

        span_name = name or func.__qualname__
        signature = inspect.signature(func)
        takes_id = id_arg is not None and id_arg in signature.parameters

        @wraps(func)
        async def wrapper(*args, **kwargs):
            attributes: Dict[str, Any] = {"function.name": func.__qualname__}
            if takes_id:
                bound = signature.bind_partial(*args, **kwargs)
                record_id = bound.arguments.get(id_arg)
                if record_id is not None:
                    attributes[RECORD_ID_ATTRIBUTE] = str(record_id)
            with create_span(span_name, attributes, expected=expected):
                return await func(*args, **kwargs)

        return wrapper

    return decorator


def extract_trace_context(carrier: Dict[str, str]):
    """Extract W3C trace context from incoming HTTP headers."""
    return extract(carrier)


def add_event_to_span(
    name: str,
    attributes: Dict[str, Any] = None,
    span: Optional[Span] = None
):
    """Add an event to the current span."""
    span = span or get_current_span()
    if span:
        span.add_event(name, attributes or {})
