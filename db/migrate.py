#!/usr/bin/env python3
"""
Database Migration Runner

Applies db/migrations/*.sql to PostgreSQL. SQLite deployments don't need
it: the outbox store and lease lock create their tables on start.

Usage:
    python -m db.migrate                    # Run all pending migrations
    python -m db.migrate --status           # Versions plus outbox counts by status
    python -m db.migrate --rollback         # Show what rolling back would run
    python -m db.migrate --rollback --yes   # Roll back the last migration

Environment:
    DATABASE_URL - PostgreSQL connection string (same variable the service reads)
"""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import List, Optional, Set, Tuple

import asyncpg

from notify_outbox.core.database.adapter import DatabaseConfig

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

Migration = Tuple[str, Path]


def database_url() -> str:
    return DatabaseConfig(backend="postgresql").postgres_url


def _display_url(url: str) -> str:
    return url.split("@")[1] if "@" in url else url


def migration_files(directory: Path = MIGRATIONS_DIR) -> List[Migration]:
    """(version, path) for every forward migration, in version order."""
    return [
        (f.stem.split("_")[0], f)
        for f in sorted(directory.glob("*.sql"))
        if not f.stem.endswith("_rollback")
    ]


def rollback_file(version: str, directory: Path = MIGRATIONS_DIR) -> Optional[Path]:
    matches = sorted(directory.glob(f"{version}_*_rollback.sql"))
    return matches[0] if matches else None


def pending_migrations(applied: Set[str], directory: Path = MIGRATIONS_DIR) -> List[Migration]:
    return [(v, f) for v, f in migration_files(directory) if v not in applied]


async def get_applied_migrations(conn: asyncpg.Connection) -> Set[str]:
    try:
        rows = await conn.fetch("SELECT version FROM schema_migrations")
    except asyncpg.UndefinedTableError:
        return set()
    return {row["version"] for row in rows}


async def run_sql_file(conn: asyncpg.Connection, label: str, path: Path) -> None:
    # Migration files carry their own BEGIN/COMMIT and schema_migrations bookkeeping.
    print(f"  Running {label} ({path.name})...")
    try:
        await conn.execute(path.read_text(encoding="utf-8"))
    except asyncpg.PostgresError as e:
        print(f"  {label} failed: {e}")
        raise
    print(f"  {label} complete")


async def run_all_migrations(url: str) -> None:
    print("Notification Outbox Migration Runner")
    print(f"Database: {_display_url(url)}")
    print(f"Migrations: {MIGRATIONS_DIR}\n")

    conn = await asyncpg.connect(url)
    try:
        pending = pending_migrations(await get_applied_migrations(conn))
        if not pending:
            print("No pending migrations. Database is up to date.")
            return

        print(f"{len(pending)} pending migration(s):")
        for version, path in pending:
            print(f"  - {version}: {path.stem}")
        print()

        for version, path in pending:
            await run_sql_file(conn, f"migration {version}", path)

        print("\nAll migrations complete.")
    finally:
        await conn.close()


async def show_status(url: str) -> None:
    print(f"Database: {_display_url(url)}\n")

    conn = await asyncpg.connect(url)
    try:
        applied = await get_applied_migrations(conn)
        for version, path in migration_files():
            print(f"  {version}: {path.stem} [{'applied' if version in applied else 'pending'}]")

        if "001" in applied:
            rows = await conn.fetch(
                "SELECT status, COUNT(*) AS n FROM notifications_outbox GROUP BY status ORDER BY status"
            )
            leases = await conn.fetchval("SELECT COUNT(*) FROM lease_locks")
            print("\nOutbox records:")
            for row in rows:
                print(f"  {row['status']}: {row['n']}")
            print(f"Lease rows: {leases}")
    finally:
        await conn.close()


async def run_rollback(url: str, confirmed: bool) -> None:
    """Roll back the most recent applied migration (dry run unless confirmed)."""
    conn = await asyncpg.connect(url)
    try:
        applied = await get_applied_migrations(conn)
        if not applied:
            print("No migrations to roll back.")
            return

        last_version = sorted(applied)[-1]
        path = rollback_file(last_version)
        if path is None:
            print(f"No rollback file found for migration {last_version}")
            return

        if not confirmed:
            print(f"Last applied migration: {last_version}")
            print(f"Would run: {path}")
            print("WARNING: this drops every outbox record. Re-run with --yes to apply.")
            return

        await run_sql_file(conn, f"rollback {last_version}", path)
    finally:
        await conn.close()


async def main() -> None:
    parser = argparse.ArgumentParser(description="Notification Outbox Migration Runner")
    parser.add_argument("--status", action="store_true", help="Show migration status")
    parser.add_argument("--rollback", action="store_true", help="Roll back the last migration")
    parser.add_argument("--yes", action="store_true", help="Actually run the rollback")
    args = parser.parse_args()

    url = database_url()
    if args.status:
        await show_status(url)
    elif args.rollback:
        await run_rollback(url, confirmed=args.yes)
    else:
        await run_all_migrations(url)


if __name__ == "__main__":
    asyncio.run(main())
