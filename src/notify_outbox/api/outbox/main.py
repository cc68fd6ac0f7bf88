#!/usr/bin/env python3
"""
Notification Outbox API
=======================

Operator REST API over the notification outbox.

Usage:
    python -m notify_outbox.api.outbox.main
    API_PORT=9301 python -m notify_outbox.api.outbox.main

Endpoints:
    GET  /outbox                 - List records (status, q, page, limit)
    GET  /outbox/{id}            - Record detail with rendered content
    POST /outbox/{id}/retry      - Re-arm and dispatch
    POST /outbox/{id}/dispatch   - Dispatch a queued record
    GET  /health, /health/live, /health/ready
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ... import __version__
from ...core.outbox.lifecycle import outbox_lifespan
from ..shared.middleware import TraceMiddleware, TracingMiddleware, register_error_handlers
from ..shared.openapi import setup_openapi
from ..shared.routers.health import router as health_router
from .routers.outbox import router as outbox_router

API_HOST = os.environ.get("API_HOST", "0.0.0.0")
API_PORT = int(os.environ.get("API_PORT", "9300"))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan - startup and shutdown."""
    async with outbox_lifespan():
        yield


def create_app() -> FastAPI:
    app = FastAPI(
        title="Notification Outbox API",
        description="Operator API for the transactional notification outbox",
        version=__version__,
        lifespan=lifespan,
    )

    register_error_handlers(app)
    app.add_middleware(TracingMiddleware)
    app.add_middleware(TraceMiddleware)

    app.include_router(health_router)
    app.include_router(outbox_router)

    setup_openapi(app)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "notify_outbox.api.outbox.main:app",
        host=API_HOST,
        port=API_PORT,
        log_level="info",
    )
