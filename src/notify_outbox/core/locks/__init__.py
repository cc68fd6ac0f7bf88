"""TTL lease locks."""

from .lease import (
    InMemoryLeaseLock,
    Lease,
    LeaseBackendError,
    LeaseError,
    LeaseHeld,
    LeaseLock,
    SqlLeaseLock,
    default_owner_id,
    single_flight,
)

__all__ = [
    "InMemoryLeaseLock",
    "Lease",
    "LeaseBackendError",
    "LeaseError",
    "LeaseHeld",
    "LeaseLock",
    "SqlLeaseLock",
    "default_owner_id",
    "single_flight",
]
