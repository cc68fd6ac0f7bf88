"""Outbox API routers."""

from .outbox import router as outbox_router

__all__ = ["outbox_router"]
