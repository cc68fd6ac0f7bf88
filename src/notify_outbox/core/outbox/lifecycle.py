"""
Outbox Lifecycle Management

Integrates the outbox service with the FastAPI application lifecycle.
"""

import logging
import os
from contextlib import asynccontextmanager

from ..config import get_settings
from ..database.adapter import close_database
from ..observability.logging import configure_logging
from ..observability.metrics import init_metrics
from ..observability.tracing import init_tracing
from .service import get_outbox_service, reset_outbox_service

logger = logging.getLogger(__name__)


def drain_timeout() -> float:
    """Seconds to wait for in-flight dispatches on shutdown."""
    settings = get_settings()
    return float(os.getenv("OUTBOX_DRAIN_TIMEOUT_SECONDS", str(settings.dispatch_lease_seconds)))


@asynccontextmanager
async def outbox_lifespan(service_name: str = "notify-outbox"):
    """
    Lifespan context manager for the outbox service.

    Usage in FastAPI:
        from notify_outbox.core.outbox.lifecycle import outbox_lifespan

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            async with outbox_lifespan():
                yield

        app = FastAPI(lifespan=lifespan)
    """
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_structured, service_name)
    init_tracing(service_name, otlp_endpoint=settings.otlp_endpoint)
    init_metrics(service_name, otlp_endpoint=settings.otlp_endpoint)

    logger.info(f"Starting outbox service with {settings}")
    service = await get_outbox_service()
    try:
        yield service
    finally:
        pending = await service.drain(drain_timeout())
        if pending:
            logger.info(f"Drained {pending} in-flight dispatch(es)")
        reset_outbox_service()
        await close_database()
        logger.info("Outbox service stopped")
