"""
Outbox Dispatcher

Delivers one record to all of its channels:

1. Load; a sent record is a no-op.
2. Refuse records whose rendered content does not cover every channel.
3. Take the record's dispatch lease, then CAS queued -> dispatching.
   Losing either is a DispatchConflict and no adapter is called.
4. Call every channel adapter concurrently, each under its own timeout.
5. CAS dispatching -> sent (all ok) or dispatching -> failed with
   ``"<channel>: <reason>; ..."``.
6. Release the lease.

Steps 4-6 run in a task shielded from the caller, so an aborted HTTP
request does not abandon a record in ``dispatching``.
"""

import asyncio
import logging
import time
from typing import Optional, Set
from uuid import uuid4

from ..channels.registry import ChannelRegistry
from ..clock import Clock, now_utc
from ..locks.lease import LeaseBackendError, LeaseLock, default_owner_id
from ..observability.metrics import record_counter, record_histogram
from ..observability.tracing import create_span
from ..phone import redact_phones
from .errors import DispatchConflict, InvalidState, RecordNotFound, StoreUnavailable
from .models import (
    Channel,
    ChannelOutcome,
    DispatchResult,
    OutboxRecord,
    OutboxStatus,
    aggregate_error,
)
from .store import OutboxStore

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 2000

# Outcomes of a dispatch call that are not service errors.
EXPECTED_ERRORS = (RecordNotFound, InvalidState, DispatchConflict)


def dispatch_lease_key(record_id: str) -> str:
    return f"outbox:dispatch:{record_id}"


def _log_delivery_failure(task: "asyncio.Task[DispatchResult]") -> None:
    """Retrieve a delivery task's exception; its caller may have been cancelled."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning(f"Outbox delivery ended with {type(exc).__name__}: {exc}")


class Dispatcher:
    """
    Orchestrates channel adapter calls for one outbox record at a time.

    Usage:
        dispatcher = Dispatcher(store, lease_lock, channels, channel_timeout=5.0)
        result = await dispatcher.dispatch(record_id)
        result.status  # OutboxStatus.SENT / OutboxStatus.FAILED
    """

    def __init__(
        self,
        store: OutboxStore,
        lease_lock: LeaseLock,
        channels: ChannelRegistry,
        channel_timeout: float = 5.0,
        lease_grace: float = 10.0,
        clock: Clock = now_utc,
    ):
        self.store = store
        self.lease_lock = lease_lock
        self.channels = channels
        self.channel_timeout = channel_timeout
        self.lease_seconds = channel_timeout + lease_grace
        self._clock = clock
        self._owner_prefix = default_owner_id()
        self._inflight: Set[asyncio.Task] = set()

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    async def is_dispatching(self, record_id: str) -> bool:
        """True while some dispatcher holds the record's lease."""
        try:
            return await self.lease_lock.is_held(dispatch_lease_key(record_id))
        except LeaseBackendError as e:
            raise StoreUnavailable(str(e)) from e

    async def dispatch(self, record_id: str) -> DispatchResult:
        """
        Dispatch a queued record.

        Raises:
            RecordNotFound: unknown id
            InvalidState: rendered content missing for a channel
            DispatchConflict: record not queued, or claimed concurrently
            StoreUnavailable: store or lease backend failure

        Channel failures never raise; they end up in the result and in the
        record's ``error``.
        """
        with create_span("outbox.dispatch", {"outbox.id": record_id}, expected=EXPECTED_ERRORS) as span:
            record = await self.store.get(record_id)

            if record.status == OutboxStatus.SENT:
                logger.debug(f"Outbox {record_id} already sent, dispatch is a no-op")
                return DispatchResult(record_id=record_id, status=OutboxStatus.SENT, noop=True)

            missing = record.missing_renders()
            if missing:
                raise InvalidState(
                    record_id,
                    f"no rendered payload for: {', '.join(c.value for c in missing)}",
                )

            if record.status != OutboxStatus.QUEUED:
                self._conflict(record_id)
                raise DispatchConflict(record_id, f"Outbox record '{record_id}' is {record.status.value}")

            owner_id = f"{self._owner_prefix}:{uuid4().hex[:8]}"
            lease_key = dispatch_lease_key(record_id)
            await self._claim(record, lease_key, owner_id)

            task = asyncio.create_task(self._deliver(record, lease_key, owner_id))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            task.add_done_callback(_log_delivery_failure)

            result = await asyncio.shield(task)
            span.set_attribute("outbox.status", result.status.value)
            return result

    async def _claim(self, record: OutboxRecord, lease_key: str, owner_id: str) -> None:
        try:
            acquired = await self.lease_lock.acquire(lease_key, owner_id, self.lease_seconds)
        except LeaseBackendError as e:
            raise StoreUnavailable(str(e)) from e
        if not acquired:
            self._conflict(record.id)
            raise DispatchConflict(record.id)

        try:
            claimed = await self.store.cas_status(
                record.id,
                OutboxStatus.QUEUED,
                OutboxStatus.DISPATCHING,
                last_tried_at=self._clock(),
            )
        except BaseException:
            await self._release(lease_key, owner_id)
            raise

        if not claimed:
            await self._release(lease_key, owner_id)
            self._conflict(record.id)
            raise DispatchConflict(record.id)

        logger.info(
            f"Outbox {record.id} claimed for dispatch ({record.event_type})",
            extra={"outbox_id": record.id, "owner_id": owner_id},
        )

    async def _deliver(self, record: OutboxRecord, lease_key: str, owner_id: str) -> DispatchResult:
        started = time.monotonic()
        try:
            outcomes = list(await asyncio.gather(
                *(self._send_one(record, channel) for channel in record.channels)
            ))
            error = aggregate_error(outcomes)
            now = self._clock()

            if error is None:
                final = OutboxStatus.SENT
                stored = await self.store.cas_status(
                    record.id, OutboxStatus.DISPATCHING, OutboxStatus.SENT,
                    sent_at=now, error=None,
                )
            else:
                final = OutboxStatus.FAILED
                stored = await self.store.cas_status(
                    record.id, OutboxStatus.DISPATCHING, OutboxStatus.FAILED,
                    error=error[:MAX_ERROR_LENGTH], last_tried_at=now,
                )

            if not stored:
                # Lease expired mid-flight and a retry re-armed the record.
                self._conflict(record.id)
                raise DispatchConflict(record.id, f"Outbox record '{record.id}' changed while dispatching")

            duration = time.monotonic() - started
            record_counter("outbox_dispatch_total", 1, {"status": final.value, "event_type": record.event_type})
            record_histogram("outbox_dispatch_duration_seconds", duration, {"event_type": record.event_type})

            if final == OutboxStatus.SENT:
                logger.info(f"Outbox {record.id} sent in {duration:.3f}s", extra={"outbox_id": record.id})
            else:
                logger.warning(f"Outbox {record.id} failed: {error}", extra={"outbox_id": record.id})

            return DispatchResult(record_id=record.id, status=final, outcomes=outcomes)
        finally:
            await self._release(lease_key, owner_id)

    async def _send_one(self, record: OutboxRecord, channel: Channel) -> ChannelOutcome:
        content = record.rendered[channel.value]
        started = time.monotonic()

        with create_span("outbox.channel", {"outbox.id": record.id, "outbox.channel": channel.value}) as span:
            try:
                result = await asyncio.wait_for(
                    self.channels.send(channel, content),
                    timeout=self.channel_timeout,
                )
            except asyncio.TimeoutError:
                outcome = ChannelOutcome(channel, ok=False, error=f"timeout after {self.channel_timeout:g}s")
            except Exception as e:
                logger.warning(
                    f"Channel {channel.value} raised for outbox {record.id}: {type(e).__name__}: {e}",
                    extra={"outbox_id": record.id},
                )
                outcome = ChannelOutcome(channel, ok=False, error=redact_phones(f"{type(e).__name__}: {e}")[:300])
            else:
                outcome = ChannelOutcome(
                    channel,
                    ok=result.ok,
                    error=None if result.ok else redact_phones(result.error or "failed"),
                    message_id=result.message_id,
                    skipped=result.skipped,
                )
            outcome.duration_seconds = time.monotonic() - started
            span.set_attribute("outbox.channel.ok", outcome.ok)

        record_counter("outbox_channel_attempts_total", 1, {"channel": channel.value, "ok": str(outcome.ok).lower()})
        record_histogram("outbox_channel_duration_seconds", outcome.duration_seconds, {"channel": channel.value})
        return outcome

    async def _release(self, lease_key: str, owner_id: str) -> None:
        try:
            await self.lease_lock.release(lease_key, owner_id)
        except LeaseBackendError as e:
            # The lease still expires on its own after lease_seconds.
            logger.warning(f"Could not release lease {lease_key}: {e}")

    def _conflict(self, record_id: str) -> None:
        record_counter("outbox_dispatch_conflicts_total", 1)
        logger.info(f"Outbox {record_id} dispatch conflict", extra={"outbox_id": record_id})

    async def drain(self, timeout: Optional[float] = None) -> int:
        """Wait for in-flight deliveries (graceful shutdown). Returns how many were pending."""
        pending = list(self._inflight)
        if pending:
            logger.info(f"Draining {len(pending)} in-flight dispatch(es)")
            await asyncio.wait(pending, timeout=timeout)
        return len(pending)
