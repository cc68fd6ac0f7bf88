"""
OpenTelemetry Metrics

Counters and histograms for enqueue, dispatch, channel attempts and
retries, plus HTTP request metrics.
"""

import logging
from typing import Optional, Dict, Any

from opentelemetry import metrics
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import (
    ConsoleMetricExporter,
    PeriodicExportingMetricReader,
)
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.sdk.resources import Resource, SERVICE_NAME

logger = logging.getLogger(__name__)

METER_NAME = "notify-outbox"

# Global meter
_meter: Optional[metrics.Meter] = None

# Metric instruments
_counters: Dict[str, metrics.Counter] = {}
_histograms: Dict[str, metrics.Histogram] = {}

_COUNTERS = {
    "http_requests_total": "Total HTTP requests",
    "outbox_enqueued_total": "Outbox records created or reused",
    "outbox_dispatch_total": "Outbox dispatch attempts by final status",
    "outbox_channel_attempts_total": "Channel adapter calls by channel and outcome",
    "outbox_retries_total": "Operator retries accepted",
    "outbox_dispatch_conflicts_total": "Dispatch claims lost to a concurrent dispatcher",
}

_HISTOGRAMS = {
    "http_request_duration_seconds": "HTTP request duration",
    "outbox_dispatch_duration_seconds": "Duration of a full dispatch fan-out",
    "outbox_channel_duration_seconds": "Duration of a single channel adapter call",
}


def init_metrics(
    service_name: str = METER_NAME,
    otlp_endpoint: Optional[str] = None,
    console_export: bool = False,
    export_interval_ms: int = 60000
) -> metrics.Meter:
    """
    Initialize OpenTelemetry metrics.

    Args:
        service_name: Name of the service
        otlp_endpoint: OTLP exporter endpoint
        console_export: Enable console export for debugging
        export_interval_ms: Export interval in milliseconds

    Returns:
        Configured meter
    """
    global _meter

    readers = []

    if otlp_endpoint:
        otlp_exporter = OTLPMetricExporter(endpoint=otlp_endpoint, insecure=True)
        readers.append(PeriodicExportingMetricReader(
            otlp_exporter,
            export_interval_millis=export_interval_ms
        ))
        logger.info(f"OTel metrics: OTLP exporter configured -> {otlp_endpoint}")

    if console_export:
        readers.append(PeriodicExportingMetricReader(
            ConsoleMetricExporter(),
            export_interval_millis=export_interval_ms
        ))
        logger.info("OTel metrics: Console exporter enabled")

    resource = Resource.create({SERVICE_NAME: service_name})
    provider = MeterProvider(resource=resource, metric_readers=readers)
    metrics.set_meter_provider(provider)

    _meter = metrics.get_meter(service_name)
    _counters.clear()
    _histograms.clear()
    _init_standard_metrics()

    logger.info(f"OTel metrics initialized: {service_name}")

    return _meter


def _init_standard_metrics():
    """Create the instruments listed in _COUNTERS and _HISTOGRAMS."""
    meter = get_meter()

    for name, description in _COUNTERS.items():
        _counters[name] = meter.create_counter(name, description=description, unit="1")

    for name, description in _HISTOGRAMS.items():
        _histograms[name] = meter.create_histogram(name, description=description, unit="s")


def get_meter() -> metrics.Meter:
    """Get the global meter."""
    global _meter
    if _meter is None:
        _meter = metrics.get_meter(METER_NAME)
    return _meter


def record_counter(
    name: str,
    value: int = 1,
    attributes: Dict[str, Any] = None
):
    """Record a counter metric."""
    if not _counters:
        _init_standard_metrics()
    if name in _counters:
        _counters[name].add(value, attributes or {})


def record_histogram(
    name: str,
    value: float,
    attributes: Dict[str, Any] = None
):
    """Record a histogram metric."""
    if not _histograms:
        _init_standard_metrics()
    if name in _histograms:
        _histograms[name].record(value, attributes or {})
