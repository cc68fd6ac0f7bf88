"""
Lease Lock

TTL-based mutual exclusion keyed by an arbitrary string. Used for the
per-record dispatch lease (``outbox:dispatch:<id>``) and for single-flight
operator actions (``admin:outbox:<id>``).

A lease is held by ``owner_id`` until ``expires_at``. An expired lease can
be taken over by anyone, so a crashed holder never blocks forever.
"""

from __future__ import annotations

import asyncio
import logging
import os
import socket
import uuid
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator, Dict, Optional

from pydantic import BaseModel

from ..clock import Clock, now_utc, parse_iso, to_iso
from ..database.adapter import DatabaseAdapter, DatabaseError, UniqueViolation, affected_rows

logger = logging.getLogger(__name__)


def default_owner_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


class LeaseError(Exception):
    """Base class for lease failures."""


class LeaseHeld(LeaseError):
    """The lease is currently held by another owner."""

    def __init__(self, key: str, holder: Optional["Lease"] = None):
        self.key = key
        self.holder = holder
        msg = f"Lease '{key}' is held"
        if holder:
            msg += f" by {holder.owner_id} until {to_iso(holder.expires_at)}"
        super().__init__(msg)


class LeaseBackendError(LeaseError):
    """The lease backend could not be reached."""


class Lease(BaseModel):
    key: str
    owner_id: str
    acquired_at: datetime
    expires_at: datetime

    model_config = {"extra": "forbid"}

    def is_active(self, now: datetime) -> bool:
        return self.expires_at > now


class LeaseLock(ABC):
    """Abstract lease lock. Implementations must make acquire atomic."""

    def __init__(self, clock: Clock = now_utc):
        self._clock = clock

    @abstractmethod
    async def acquire(self, key: str, owner_id: str, ttl_seconds: float) -> bool:
        """Take the lease if it is free, expired, or already ours."""

    @abstractmethod
    async def renew(self, key: str, owner_id: str, ttl_seconds: float) -> bool:
        """Extend a lease we still own."""

    @abstractmethod
    async def release(self, key: str, owner_id: str) -> None:
        """Give the lease up early. No-op if we are not the owner."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Lease]:
        """Current lease row for ``key`` (possibly expired)."""

    async def is_held(self, key: str) -> bool:
        lease = await self.get(key)
        return lease is not None and lease.is_active(self._clock())

    def _expiry(self, now: datetime, ttl_seconds: float) -> datetime:
        return now + timedelta(seconds=max(0.001, float(ttl_seconds)))


class InMemoryLeaseLock(LeaseLock):
    """Process-local lease lock."""

    def __init__(self, clock: Clock = now_utc):
        super().__init__(clock)
        self._leases: Dict[str, Lease] = {}
        self._lock = asyncio.Lock()

    async def acquire(self, key: str, owner_id: str, ttl_seconds: float) -> bool:
        async with self._lock:
            now = self._clock()
            current = self._leases.get(key)
            if current and current.is_active(now) and current.owner_id != owner_id:
                return False
            self._leases[key] = Lease(
                key=key,
                owner_id=owner_id,
                acquired_at=now,
                expires_at=self._expiry(now, ttl_seconds),
            )
            return True

    async def renew(self, key: str, owner_id: str, ttl_seconds: float) -> bool:
        async with self._lock:
            now = self._clock()
            current = self._leases.get(key)
            if current is None or current.owner_id != owner_id:
                return False
            current.expires_at = self._expiry(now, ttl_seconds)
            return True

    async def release(self, key: str, owner_id: str) -> None:
        async with self._lock:
            current = self._leases.get(key)
            if current and current.owner_id == owner_id:
                del self._leases[key]

    async def get(self, key: str) -> Optional[Lease]:
        async with self._lock:
            current = self._leases.get(key)
            return current.model_copy() if current else None


LEASE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS lease_locks (
  lock_key TEXT PRIMARY KEY,
  owner_id TEXT NOT NULL,
  acquired_at TEXT NOT NULL,
  expires_at TEXT NOT NULL
);
"""


class SqlLeaseLock(LeaseLock):
    """
    Lease lock stored in the ``lease_locks`` table.

    Acquire inserts a row; if the key exists the row is taken over only
    when it has expired or is already ours.
    """

    def __init__(self, db: DatabaseAdapter, clock: Clock = now_utc):
        super().__init__(clock)
        self.db = db

    async def ensure_schema(self) -> None:
        try:
            await self.db.execute_script(LEASE_SCHEMA_SQL)
        except DatabaseError as e:
            raise LeaseBackendError(str(e)) from e

    async def acquire(self, key: str, owner_id: str, ttl_seconds: float) -> bool:
        now = self._clock()
        now_iso = to_iso(now)
        exp_iso = to_iso(self._expiry(now, ttl_seconds))

        try:
            try:
                await self.db.execute(
                    """
                    INSERT INTO lease_locks (lock_key, owner_id, acquired_at, expires_at)
                    VALUES ($1, $2, $3, $4)
                    """,
                    key, owner_id, now_iso, exp_iso,
                )
                return True
            except UniqueViolation:
                # Take over only if expired or already owned by us
                status = await self.db.execute(
                    """
                    UPDATE lease_locks
                    SET owner_id = $1, acquired_at = $2, expires_at = $3
                    WHERE lock_key = $4 AND (expires_at <= $5 OR owner_id = $6)
                    """,
                    owner_id, now_iso, exp_iso, key, now_iso, owner_id,
                )
                return affected_rows(status) == 1
        except UniqueViolation:
            return False
        except DatabaseError as e:
            raise LeaseBackendError(str(e)) from e

    async def renew(self, key: str, owner_id: str, ttl_seconds: float) -> bool:
        exp_iso = to_iso(self._expiry(self._clock(), ttl_seconds))
        try:
            status = await self.db.execute(
                "UPDATE lease_locks SET expires_at = $1 WHERE lock_key = $2 AND owner_id = $3",
                exp_iso, key, owner_id,
            )
        except DatabaseError as e:
            raise LeaseBackendError(str(e)) from e
        return affected_rows(status) == 1

    async def release(self, key: str, owner_id: str) -> None:
        try:
            await self.db.execute(
                "UPDATE lease_locks SET expires_at = $1 WHERE lock_key = $2 AND owner_id = $3",
                to_iso(self._clock()), key, owner_id,
            )
        except DatabaseError as e:
            raise LeaseBackendError(str(e)) from e

    async def get(self, key: str) -> Optional[Lease]:
        try:
            row = await self.db.fetchrow(
                "SELECT lock_key, owner_id, acquired_at, expires_at FROM lease_locks WHERE lock_key = $1",
                key,
            )
        except DatabaseError as e:
            raise LeaseBackendError(str(e)) from e
        if not row:
            return None
        return Lease(
            key=row["lock_key"],
            owner_id=row["owner_id"],
            acquired_at=parse_iso(row["acquired_at"]),
            expires_at=parse_iso(row["expires_at"]),
        )


@asynccontextmanager
async def single_flight(
    lock: LeaseLock,
    key: str,
    ttl_seconds: float,
    owner_id: Optional[str] = None,
) -> AsyncIterator[str]:
    """
    Run a block while holding ``key``; raise LeaseHeld if someone else has it.

    Usage:
        async with single_flight(lock, f"admin:outbox:{record_id}", 30):
            await controller.retry(record_id)
    """
    owner_id = owner_id or default_owner_id()
    if not await lock.acquire(key, owner_id, ttl_seconds):
        raise LeaseHeld(key, await lock.get(key))
    logger.debug(f"Lease acquired: {key} by {owner_id}")
    try:
        yield owner_id
    finally:
        await lock.release(key, owner_id)
        logger.debug(f"Lease released: {key} by {owner_id}")
