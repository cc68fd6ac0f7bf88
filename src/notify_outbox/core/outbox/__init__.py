"""
Notification outbox.

Records the intent to notify before delivering it, dispatches each record
to its channels under a lease, and lets operators retry failures.

Usage:
    from notify_outbox.core.outbox.service import get_outbox_service

    outbox = await get_outbox_service()
    record_id, reused = await outbox.enqueue_or_reuse(
        "order.paid", {"order_id": "X"}, ["email"], dedupe_key="order.paid:X"
    )
    result = await outbox.dispatch(record_id)

The service, producer triggers and lifespan live in their own modules
(``service``, ``producers``, ``lifecycle``) because they depend on the
rendering package, which itself imports the outbox models.
"""

from .dispatcher import Dispatcher, dispatch_lease_key
from .errors import (
    AlreadySent,
    DispatchConflict,
    InvalidState,
    OutboxError,
    RecordNotFound,
    RenderError,
    RenderErrorReason,
    StoreUnavailable,
)
from .models import (
    Channel,
    ChannelOutcome,
    DispatchResult,
    EventType,
    OutboxRecord,
    OutboxStatus,
)
from .retry import RetryController
from .sql_store import SqlOutboxStore
from .store import InMemoryOutboxStore, OutboxStore

__all__ = [
    "Dispatcher",
    "dispatch_lease_key",
    "RetryController",
    "OutboxStore",
    "InMemoryOutboxStore",
    "SqlOutboxStore",
    "OutboxRecord",
    "OutboxStatus",
    "Channel",
    "EventType",
    "ChannelOutcome",
    "DispatchResult",
    "OutboxError",
    "RenderError",
    "RenderErrorReason",
    "RecordNotFound",
    "InvalidState",
    "AlreadySent",
    "DispatchConflict",
    "StoreUnavailable",
]
