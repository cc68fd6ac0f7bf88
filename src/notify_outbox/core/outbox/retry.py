"""
Retry Controller

Operator-facing entry point: re-arms a record and runs the dispatcher on it
again. Retries resend every channel of the record, including the ones that
succeeded on the previous attempt.
"""

import logging

from ..clock import Clock, now_utc
from ..observability.metrics import record_counter
from ..observability.tracing import add_event_to_span, traced
from .dispatcher import EXPECTED_ERRORS, Dispatcher
from .errors import AlreadySent, DispatchConflict, InvalidState
from .models import DispatchResult, OutboxStatus
from .store import OutboxStore

logger = logging.getLogger(__name__)


class RetryController:
    def __init__(self, store: OutboxStore, dispatcher: Dispatcher, clock: Clock = now_utc):
        self.store = store
        self.dispatcher = dispatcher
        self._clock = clock

    @traced("outbox.retry", expected=EXPECTED_ERRORS + (AlreadySent,))
    async def retry(self, record_id: str) -> DispatchResult:
        """
        Re-arm a record and dispatch it.

        Raises:
            RecordNotFound: unknown id
            InvalidState: record has no rendered content (nothing is mutated)
            AlreadySent: record is terminal (nothing is mutated)
            DispatchConflict: a dispatch is in flight, or another retry won
            StoreUnavailable: backend failure
        """
        record = await self.store.get(record_id)

        if not record.rendered or record.missing_renders():
            raise InvalidState(record_id, "no rendered payload")

        if record.status == OutboxStatus.SENT:
            raise AlreadySent(record_id)

        if record.status == OutboxStatus.DISPATCHING:
            if await self.dispatcher.is_dispatching(record_id):
                raise DispatchConflict(record_id)
            logger.warning(
                f"Outbox {record_id} stuck in dispatching with no lease, reclaiming",
                extra={"outbox_id": record_id},
            )

        rearmed = await self.store.cas_status(
            record_id,
            record.status,
            OutboxStatus.QUEUED,
            retries=record.retries + 1,
            error=None,
            sent_at=None,
            last_tried_at=self._clock(),
        )
        if not rearmed:
            raise DispatchConflict(record_id, f"Outbox record '{record_id}' changed during retry")

        record_counter("outbox_retries_total", 1, {"event_type": record.event_type})
        add_event_to_span(
            "outbox.rearmed",
            {"outbox.retries": record.retries + 1, "outbox.previous_status": record.status.value},
        )
        logger.info(
            f"Outbox {record_id} re-armed (retries={record.retries + 1}, was {record.status.value})",
            extra={"outbox_id": record_id},
        )
        return await self.dispatcher.dispatch(record_id)
