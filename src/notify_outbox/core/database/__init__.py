"""
Database access layer.

Usage:
    from notify_outbox.core.database import get_database

    db = await get_database()
    row = await db.fetchrow("SELECT 1")
"""

from .adapter import (
    DatabaseAdapter,
    DatabaseBackend,
    DatabaseConfig,
    DatabaseError,
    UniqueViolation,
    affected_rows,
    close_database,
    get_database,
)

__all__ = [
    "DatabaseAdapter",
    "DatabaseBackend",
    "DatabaseConfig",
    "DatabaseError",
    "UniqueViolation",
    "affected_rows",
    "close_database",
    "get_database",
]
