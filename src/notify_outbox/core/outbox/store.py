"""
Outbox Store

Durable record repository: create (with dedupe), fetch, and conditional
status update (CAS). ``enqueue_or_reuse`` is implemented once here on top
of the backend primitives ``find_live`` and ``insert``.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..clock import Clock, now_utc
from ..observability.metrics import record_counter
from .errors import InvalidState, RecordNotFound, StoreUnavailable
from .models import (
    MUTABLE_FIELDS,
    Channel,
    OutboxRecord,
    OutboxStatus,
    is_valid_transition,
)

logger = logging.getLogger(__name__)

# Bounded retries when a dedupe race resolves to a record that was sent
# in between the failed insert and the re-read.
_ENQUEUE_ATTEMPTS = 3


class DedupeKeyTaken(Exception):
    """Insert lost the race on the live-dedupe-key unique index."""


def check_cas_fields(fields: Mapping[str, Any]) -> None:
    unknown = set(fields) - MUTABLE_FIELDS
    if unknown:
        raise ValueError(f"cas_status cannot update fields: {sorted(unknown)}")


# Dotted paths an operator search (``q``) looks at. Rendered content and
# payload are frozen at enqueue, so the joined text is computed once.
SEARCH_FIELDS = (
    "id",
    "event_type",
    "dedupe_key",
    "rendered.email.to",
    "rendered.email.subject",
    "rendered.sms.to",
    "rendered.sms.text",
    "rendered.chat.text",
    "payload.user.email",
    "payload.user.name",
    "payload.customer.email",
    "payload.customer.name",
    "payload.application.application_id",
    "payload.application.order_id",
    "payload.order_id",
    "payload.rental_id",
)

# Joins field values so a needle without control characters stays inside one field.
_SEARCH_SEPARATOR = "\x1f"


def _lookup(record: OutboxRecord, path: str) -> Any:
    head, _, rest = path.partition(".")
    value: Any = getattr(record, head)
    for part in rest.split(".") if rest else ():
        if not isinstance(value, Mapping):
            return None
        value = value.get(part)
    return value


def search_text(record: OutboxRecord) -> str:
    """Lower-cased values of ``SEARCH_FIELDS``, joined."""
    values = []
    for path in SEARCH_FIELDS:
        value = _lookup(record, path)
        if value is None or value == "":
            continue
        values.append(str(getattr(value, "value", value)).lower())
    return _SEARCH_SEPARATOR.join(values)


def matches_query(record: OutboxRecord, query: str) -> bool:
    """Case-insensitive substring search over ``SEARCH_FIELDS``."""
    return query.lower() in search_text(record)


class OutboxStore(ABC):
    """Abstract outbox repository."""

    def __init__(self, renderer, clock: Clock = now_utc):
        self.renderer = renderer
        self._clock = clock

    async def enqueue_or_reuse(
        self,
        event_type: str,
        payload: Dict[str, Any],
        channels: Sequence[Any],
        dedupe_key: Optional[str] = None,
    ) -> Tuple[str, bool]:
        """
        Create a queued record, or return the live record for ``dedupe_key``.

        Returns:
            (record_id, reused)

        Raises:
            RenderError: payload cannot be rendered for the channels
            StoreUnavailable: backend failure
        """
        # An empty key means no dedupe, on every backend.
        dedupe_key = dedupe_key or None
        for _ in range(_ENQUEUE_ATTEMPTS):
            if dedupe_key:
                live = await self.find_live(dedupe_key)
                if live is not None:
                    logger.info(
                        f"Outbox reuse: {live.id} for dedupe_key={dedupe_key}",
                        extra={"outbox_id": live.id, "event_type": event_type},
                    )
                    record_counter("outbox_enqueued_total", 1, {"event_type": event_type, "reused": "true"})
                    return live.id, True

            rendered = self.renderer.render(event_type, payload, channels)
            record = OutboxRecord(
                event_type=str(getattr(event_type, "value", event_type)),
                channels=[Channel(ch) for ch in rendered],
                payload=dict(payload),
                rendered=rendered,
                dedupe_key=dedupe_key,
                created_at=self._clock(),
            )
            try:
                await self.insert(record)
            except DedupeKeyTaken:
                logger.debug(f"Dedupe race on {dedupe_key}; re-reading live record")
                continue

            logger.info(
                f"Outbox enqueued: {record.id} ({record.event_type}) "
                f"channels={[c.value for c in record.channels]}",
                extra={"outbox_id": record.id, "event_type": record.event_type},
            )
            record_counter("outbox_enqueued_total", 1, {"event_type": record.event_type, "reused": "false"})
            return record.id, False

        raise StoreUnavailable(f"Could not settle dedupe_key={dedupe_key} after {_ENQUEUE_ATTEMPTS} attempts")

    @abstractmethod
    async def get(self, record_id: str) -> OutboxRecord:
        """Fetch a record. Raises RecordNotFound."""

    @abstractmethod
    async def cas_status(
        self,
        record_id: str,
        expected: OutboxStatus,
        new: OutboxStatus,
        **fields: Any,
    ) -> bool:
        """
        Atomically set status to ``new`` (plus ``fields``) iff it is ``expected``.

        Returns False when the record is missing or its status differs.
        """

    @abstractmethod
    async def find_live(self, dedupe_key: str) -> Optional[OutboxRecord]:
        """The queued/dispatching/failed record holding ``dedupe_key``."""

    @abstractmethod
    async def insert(self, record: OutboxRecord) -> None:
        """Persist a new record. Raises DedupeKeyTaken on a live-key clash."""

    @abstractmethod
    async def list_records(
        self,
        status: Optional[OutboxStatus] = None,
        query: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[OutboxRecord], int]:
        """Newest-first page of records plus the total matching count."""

    @abstractmethod
    async def counts(self, query: Optional[str] = None) -> Dict[str, int]:
        """Number of records per status."""

    async def ping(self) -> None:
        """Raise StoreUnavailable if the backend is unreachable."""

    def _check_transition(self, record_id: str, expected: OutboxStatus, new: OutboxStatus) -> None:
        if not is_valid_transition(expected, new):
            raise InvalidState(record_id, f"Illegal transition {expected.value} -> {new.value}")


class InMemoryOutboxStore(OutboxStore):
    """Process-local store guarded by an asyncio lock."""

    def __init__(self, renderer, clock: Clock = now_utc):
        super().__init__(renderer, clock)
        self._records: Dict[str, OutboxRecord] = {}
        self._lock = asyncio.Lock()

    async def get(self, record_id: str) -> OutboxRecord:
        async with self._lock:
            record = self._records.get(record_id)
            if record is None:
                raise RecordNotFound(record_id)
            return record.model_copy(deep=True)

    async def cas_status(
        self,
        record_id: str,
        expected: OutboxStatus,
        new: OutboxStatus,
        **fields: Any,
    ) -> bool:
        expected, new = OutboxStatus(expected), OutboxStatus(new)
        self._check_transition(record_id, expected, new)
        check_cas_fields(fields)
        async with self._lock:
            record = self._records.get(record_id)
            if record is None or record.status != expected:
                return False
            record.status = new
            for key, value in fields.items():
                setattr(record, key, value)
            return True

    async def find_live(self, dedupe_key: str) -> Optional[OutboxRecord]:
        async with self._lock:
            for record in self._records.values():
                if record.dedupe_key == dedupe_key and record.is_live:
                    return record.model_copy(deep=True)
            return None

    async def insert(self, record: OutboxRecord) -> None:
        async with self._lock:
            if record.dedupe_key:
                for existing in self._records.values():
                    if existing.dedupe_key == record.dedupe_key and existing.is_live:
                        raise DedupeKeyTaken(record.dedupe_key)
            self._records[record.id] = record.model_copy(deep=True)

    async def list_records(
        self,
        status: Optional[OutboxStatus] = None,
        query: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[OutboxRecord], int]:
        async with self._lock:
            rows = [
                r for r in self._records.values()
                if (status is None or r.status == status) and (not query or matches_query(r, query))
            ]
        rows.sort(key=lambda r: (r.created_at, r.id), reverse=True)
        page = [r.model_copy(deep=True) for r in rows[offset:offset + limit]]
        return page, len(rows)

    async def counts(self, query: Optional[str] = None) -> Dict[str, int]:
        result = {s.value: 0 for s in OutboxStatus}
        async with self._lock:
            for record in self._records.values():
                if not query or matches_query(record, query):
                    result[record.status.value] += 1
        return result

