"""
SQL Outbox Store

Stores records in ``notifications_outbox`` through the DatabaseAdapter, so
the same code runs on SQLite and PostgreSQL. JSON columns are stored as
text; timestamps as fixed-width ISO-8601 UTC strings.

The dedupe guard is the partial unique index ``ux_outbox_dedupe_live``:
one row per dedupe_key among records that are not yet sent. Operator search
matches the ``search_text`` column, written once at insert.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from ..clock import Clock, now_utc, parse_iso, to_iso
from ..database.adapter import DatabaseAdapter, DatabaseError, UniqueViolation, affected_rows
from .errors import RecordNotFound, StoreUnavailable
from .models import Channel, OutboxRecord, OutboxStatus
from .store import DedupeKeyTaken, OutboxStore, check_cas_fields, search_text

logger = logging.getLogger(__name__)

OUTBOX_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS notifications_outbox (
  id TEXT PRIMARY KEY,
  event_type TEXT NOT NULL,
  channels TEXT NOT NULL,
  payload TEXT NOT NULL,
  rendered TEXT NOT NULL,
  status TEXT NOT NULL,
  retries INTEGER NOT NULL DEFAULT 0,
  dedupe_key TEXT,
  error TEXT,
  created_at TEXT NOT NULL,
  last_tried_at TEXT,
  sent_at TEXT,
  updated_at TEXT NOT NULL,
  search_text TEXT NOT NULL DEFAULT ''
);

CREATE UNIQUE INDEX IF NOT EXISTS ux_outbox_dedupe_live
  ON notifications_outbox (dedupe_key)
  WHERE dedupe_key IS NOT NULL AND status <> 'sent';

CREATE INDEX IF NOT EXISTS idx_outbox_status_created
  ON notifications_outbox (status, created_at);
"""

_COLUMNS = (
    "id, event_type, channels, payload, rendered, status, retries, dedupe_key, "
    "error, created_at, last_tried_at, sent_at"
)

_TIMESTAMP_FIELDS = frozenset({"last_tried_at", "sent_at"})


def json_dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True, default=str)


def json_loads(value: Optional[str], default: Any) -> Any:
    if not value:
        return default
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        logger.warning(f"Unparseable JSON column value: {value[:80]!r}")
        return default


def escape_like(value: str) -> str:
    """Make ``%``, ``_`` and ``\\`` literal in a LIKE pattern (ESCAPE '\\')."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _row_to_record(row: Dict[str, Any]) -> OutboxRecord:
    return OutboxRecord(
        id=row["id"],
        event_type=row["event_type"],
        channels=[Channel(c) for c in json_loads(row["channels"], [])],
        payload=json_loads(row["payload"], {}),
        rendered=json_loads(row["rendered"], {}),
        status=OutboxStatus(row["status"]),
        retries=int(row["retries"] or 0),
        dedupe_key=row["dedupe_key"],
        error=row["error"],
        created_at=parse_iso(row["created_at"]),
        last_tried_at=parse_iso(row["last_tried_at"]),
        sent_at=parse_iso(row["sent_at"]),
    )


class SqlOutboxStore(OutboxStore):
    """
    Outbox store backed by SQLite or PostgreSQL.

    Usage:
        db = await get_database()
        store = SqlOutboxStore(db, renderer)
        await store.ensure_schema()
        record_id, reused = await store.enqueue_or_reuse("order.paid", payload, ["email"])
    """

    def __init__(self, db: DatabaseAdapter, renderer, clock: Clock = now_utc):
        super().__init__(renderer, clock)
        self.db = db

    async def ensure_schema(self) -> None:
        try:
            await self.db.execute_script(OUTBOX_SCHEMA_SQL)
        except DatabaseError as e:
            raise StoreUnavailable(f"Schema setup failed: {e}") from e

    async def ping(self) -> None:
        try:
            await self.db.fetchval("SELECT 1")
        except DatabaseError as e:
            raise StoreUnavailable(str(e)) from e

    async def get(self, record_id: str) -> OutboxRecord:
        try:
            row = await self.db.fetchrow(
                f"SELECT {_COLUMNS} FROM notifications_outbox WHERE id = $1",
                record_id,
            )
        except DatabaseError as e:
            raise StoreUnavailable(str(e)) from e
        if not row:
            raise RecordNotFound(record_id)
        return _row_to_record(row)

    async def find_live(self, dedupe_key: str) -> Optional[OutboxRecord]:
        try:
            row = await self.db.fetchrow(
                f"""
                SELECT {_COLUMNS} FROM notifications_outbox
                WHERE dedupe_key = $1 AND status <> 'sent'
                ORDER BY created_at DESC
                LIMIT 1
                """,
                dedupe_key,
            )
        except DatabaseError as e:
            raise StoreUnavailable(str(e)) from e
        return _row_to_record(row) if row else None

    async def insert(self, record: OutboxRecord) -> None:
        created = to_iso(record.created_at)
        try:
            await self.db.execute(
                """
                INSERT INTO notifications_outbox
                  (id, event_type, channels, payload, rendered, status, retries,
                   dedupe_key, error, created_at, last_tried_at, sent_at, updated_at, search_text)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14)
                """,
                record.id,
                record.event_type,
                json_dumps([c.value for c in record.channels]),
                json_dumps(record.payload),
                json_dumps(record.rendered),
                record.status.value,
                record.retries,
                record.dedupe_key,
                record.error,
                created,
                to_iso(record.last_tried_at),
                to_iso(record.sent_at),
                created,
                search_text(record),
            )
        except UniqueViolation as e:
            if record.dedupe_key:
                raise DedupeKeyTaken(record.dedupe_key) from e
            raise StoreUnavailable(f"Duplicate outbox id {record.id}") from e
        except DatabaseError as e:
            raise StoreUnavailable(str(e)) from e

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

        assignments = ["status = $1", "updated_at = $2"]
        params: List[Any] = [new.value, to_iso(self._clock())]
        for name in sorted(fields):
            value = fields[name]
            if name in _TIMESTAMP_FIELDS:
                value = to_iso(value)
            params.append(value)
            assignments.append(f"{name} = ${len(params)}")

        params.extend([record_id, expected.value])
        query = (
            f"UPDATE notifications_outbox SET {', '.join(assignments)} "
            f"WHERE id = ${len(params) - 1} AND status = ${len(params)}"
        )
        try:
            status = await self.db.execute(query, *params)
        except DatabaseError as e:
            raise StoreUnavailable(str(e)) from e
        return affected_rows(status) == 1

    def _where(self, status: Optional[OutboxStatus], query: Optional[str]) -> Tuple[str, List[Any]]:
        clauses: List[str] = []
        params: List[Any] = []
        if status is not None:
            params.append(OutboxStatus(status).value)
            clauses.append(f"status = ${len(params)}")
        if query:
            params.append(f"%{escape_like(query.lower())}%")
            clauses.append(f"search_text LIKE ${len(params)} ESCAPE '\\'")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    async def list_records(
        self,
        status: Optional[OutboxStatus] = None,
        query: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[OutboxRecord], int]:
        where, params = self._where(status, query)
        try:
            total = await self.db.fetchval(
                f"SELECT COUNT(*) AS n FROM notifications_outbox {where}", *params
            )
            page_params = params + [int(limit), int(offset)]
            rows = await self.db.fetch(
                f"""
                SELECT {_COLUMNS} FROM notifications_outbox {where}
                ORDER BY created_at DESC, id DESC
                LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}
                """,
                *page_params,
            )
        except DatabaseError as e:
            raise StoreUnavailable(str(e)) from e
        return [_row_to_record(r) for r in rows], int(total or 0)

    async def counts(self, query: Optional[str] = None) -> Dict[str, int]:
        where, params = self._where(None, query)
        try:
            rows = await self.db.fetch(
                f"SELECT status, COUNT(*) AS n FROM notifications_outbox {where} GROUP BY status",
                *params,
            )
        except DatabaseError as e:
            raise StoreUnavailable(str(e)) from e
        result = {s.value: 0 for s in OutboxStatus}
        for row in rows:
            result[row["status"]] = int(row["n"])
        return result
