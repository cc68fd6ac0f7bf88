"""
Observability

JSON logs with phone redaction, OpenTelemetry spans around dispatch and
retry, and outbox counters/histograms. ``outbox_lifespan`` initializes all
three from ``OutboxSettings``.
"""

from .logging import PhoneRedactionFilter, StructuredFormatter, configure_logging
from .metrics import init_metrics, record_counter, record_histogram
from .tracing import create_span, get_trace_id, init_tracing, traced

__all__ = [
    "configure_logging",
    "PhoneRedactionFilter",
    "StructuredFormatter",
    "init_metrics",
    "record_counter",
    "record_histogram",
    "init_tracing",
    "create_span",
    "get_trace_id",
    "traced",
]
