"""
Health Check Endpoints

Provides health, readiness, and liveness endpoints for container orchestration.
"""

import os
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Response

from ....core.channels.registry import describe
from ....core.outbox.errors import OutboxError
from ....core.outbox.service import get_outbox_service

router = APIRouter(tags=["health"])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/health")
async def health_check() -> Dict[str, Any]:
    """
    Basic health check.

    Returns 200 if the service is running.
    """
    return {
        "status": "healthy",
        "timestamp": _now(),
        "version": os.getenv("APP_VERSION", "1.0.0")
    }


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    """Liveness probe. Returns 200 if the process is alive."""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(response: Response) -> Dict[str, Any]:
    """
    Readiness probe.

    Returns 200 when the outbox store answers, 503 otherwise. Also reports
    which adapter serves each channel and how many dispatches are in flight.
    """
    checks: Dict[str, Any] = {}
    all_healthy = True

    try:
        service = await get_outbox_service()
        await service.ping()
        checks["store"] = "healthy"
        checks["dispatches_in_flight"] = service.dispatcher.inflight
        if service.channels is not None:
            checks["channels"] = describe(service.channels)
    except OutboxError as e:
        checks["store"] = f"unhealthy: {type(e).__name__}"
        all_healthy = False

    if not all_healthy:
        response.status_code = 503

    return {
        "status": "ready" if all_healthy else "not_ready",
        "checks": checks,
        "timestamp": _now()
    }
