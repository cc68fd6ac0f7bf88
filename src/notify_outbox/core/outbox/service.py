"""
Notification Outbox Service

Facade that wires the store, lease lock, renderer, channel registry,
dispatcher and retry controller together. Producers and the HTTP layer talk
to this object only.

Usage:
    from notify_outbox.core.outbox.service import get_outbox_service

    outbox = await get_outbox_service()
    outcome = await outbox.notify(
        "order.paid", payload, ["email", "chat"], dedupe_key=f"order.paid:{order_id}"
    )
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence
from uuid import uuid4

from ..channels.registry import ChannelRegistry, build_channels
from ..clock import Clock, now_utc
from ..config import OutboxSettings, get_settings
from ..database.adapter import DatabaseError, get_database
from ..locks.lease import (
    InMemoryLeaseLock,
    LeaseBackendError,
    LeaseHeld,
    LeaseLock,
    SqlLeaseLock,
    single_flight,
)
from ..rendering.context import RenderSettings
from ..rendering.renderer import Renderer
from .dispatcher import Dispatcher
from .errors import DispatchConflict, StoreUnavailable
from .models import DispatchResult, OutboxRecord, OutboxStatus
from .retry import RetryController
from .sql_store import SqlOutboxStore
from .store import InMemoryOutboxStore, OutboxStore

logger = logging.getLogger(__name__)


def admin_lease_key(record_id: str) -> str:
    return f"admin:outbox:{record_id}"


@dataclass
class NotifyOutcome:
    """What ``notify`` did."""
    id: str
    reused: bool
    status: OutboxStatus
    result: Optional[DispatchResult] = None


@dataclass
class OutboxPage:
    items: List[OutboxRecord]
    total: int
    counts: Dict[str, int]
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return max(1, -(-self.total // self.limit)) if self.limit else 1


@dataclass
class NotificationOutbox:
    store: OutboxStore
    lease_lock: LeaseLock
    dispatcher: Dispatcher
    retry_controller: RetryController
    admin_lock_seconds: float = 30.0
    channels: Optional[ChannelRegistry] = field(default=None)

    async def enqueue_or_reuse(
        self,
        event_type: str,
        payload: Dict[str, Any],
        channels: Sequence[Any],
        dedupe_key: Optional[str] = None,
    ):
        return await self.store.enqueue_or_reuse(event_type, payload, channels, dedupe_key)

    async def notify(
        self,
        event_type: str,
        payload: Dict[str, Any],
        channels: Sequence[Any],
        dedupe_key: Optional[str] = None,
    ) -> NotifyOutcome:
        """
        Enqueue and dispatch right away, unless the dedupe key was already live.

        A reused record is left alone: it is either in flight, already
        queued by the earlier call, or failed and waiting for an operator.
        """
        record_id, reused = await self.store.enqueue_or_reuse(event_type, payload, channels, dedupe_key)
        if reused:
            record = await self.store.get(record_id)
            return NotifyOutcome(id=record_id, reused=True, status=record.status)

        try:
            result = await self.dispatcher.dispatch(record_id)
        except DispatchConflict:
            # Someone else (force dispatch) got there first.
            record = await self.store.get(record_id)
            return NotifyOutcome(id=record_id, reused=False, status=record.status)
        return NotifyOutcome(id=record_id, reused=False, status=result.status, result=result)

    async def get(self, record_id: str) -> OutboxRecord:
        return await self.store.get(record_id)

    async def dispatch(self, record_id: str) -> DispatchResult:
        return await self.dispatcher.dispatch(record_id)

    async def retry(self, record_id: str) -> DispatchResult:
        return await self.retry_controller.retry(record_id)

    async def retry_once(self, record_id: str, operator_id: Optional[str] = None) -> DispatchResult:
        """Operator retry, single-flight per record."""
        async with self._admin_guard(record_id, operator_id):
            return await self.retry_controller.retry(record_id)

    async def dispatch_once(self, record_id: str, operator_id: Optional[str] = None) -> DispatchResult:
        """Operator force-dispatch of a queued record, single-flight per record."""
        async with self._admin_guard(record_id, operator_id):
            return await self.dispatcher.dispatch(record_id)

    @asynccontextmanager
    async def _admin_guard(self, record_id: str, operator_id: Optional[str]) -> AsyncIterator[None]:
        # Each click gets its own owner so a double click by one operator still conflicts.
        owner_id = f"operator:{operator_id}:{uuid4().hex[:8]}" if operator_id else None
        try:
            async with single_flight(
                self.lease_lock, admin_lease_key(record_id), self.admin_lock_seconds, owner_id=owner_id
            ):
                yield
        except LeaseHeld as e:
            held_by = e.holder.owner_id if e.holder else None
            raise DispatchConflict(
                record_id,
                f"Another operator action is running on '{record_id}'",
                held_by=held_by,
            ) from e
        except LeaseBackendError as e:
            raise StoreUnavailable(str(e)) from e

    async def list(
        self,
        status: Optional[OutboxStatus] = None,
        query: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> OutboxPage:
        page = max(1, page)
        limit = max(1, limit)
        items, total = await self.store.list_records(
            status=status, query=query, limit=limit, offset=(page - 1) * limit
        )
        counts = await self.store.counts(query)
        return OutboxPage(items=items, total=total, counts=counts, page=page, limit=limit)

    async def ping(self) -> None:
        await self.store.ping()

    async def drain(self, timeout: Optional[float] = None) -> int:
        return await self.dispatcher.drain(timeout)


def build_outbox(
    store: OutboxStore,
    lease_lock: LeaseLock,
    channels: ChannelRegistry,
    settings: Optional[OutboxSettings] = None,
    clock: Clock = now_utc,
) -> NotificationOutbox:
    """Assemble the facade from already-built parts."""
    settings = settings or get_settings()
    dispatcher = Dispatcher(
        store,
        lease_lock,
        channels,
        channel_timeout=settings.channel_timeout_seconds,
        lease_grace=settings.lease_grace_seconds,
        clock=clock,
    )
    return NotificationOutbox(
        store=store,
        lease_lock=lease_lock,
        dispatcher=dispatcher,
        retry_controller=RetryController(store, dispatcher, clock=clock),
        admin_lock_seconds=settings.admin_lock_seconds,
        channels=channels,
    )


# Global instance management
_service: Optional[NotificationOutbox] = None


async def get_outbox_service() -> NotificationOutbox:
    """Get the process-wide outbox service, building it on first use."""
    global _service
    if _service is None:
        settings = get_settings()
        renderer = Renderer(RenderSettings.from_settings(settings))

        if settings.store_backend == "memory":
            store: OutboxStore = InMemoryOutboxStore(renderer)
            lease_lock: LeaseLock = InMemoryLeaseLock()
        else:
            try:
                db = await get_database()
                sql_store = SqlOutboxStore(db, renderer)
                sql_lock = SqlLeaseLock(db)
                await sql_store.ensure_schema()
                await sql_lock.ensure_schema()
            except (DatabaseError, LeaseBackendError) as e:
                raise StoreUnavailable(str(e)) from e
            store, lease_lock = sql_store, sql_lock

        _service = build_outbox(store, lease_lock, build_channels(settings), settings)
        logger.info(f"Outbox service ready: store={type(store).__name__}, lease={type(lease_lock).__name__}")
    return _service


def set_outbox_service(service: Optional[NotificationOutbox]) -> None:
    """Install a prebuilt service (tests, embedding apps)."""
    global _service
    _service = service


def reset_outbox_service() -> None:
    """Drop the service (useful for testing)."""
    global _service
    _service = None
