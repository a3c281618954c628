"""
Schema migrations for the state store.

Forward-only SQL files named ``NNN_description.sql`` live in migrations/
next to this module. Pending files are applied in version order at startup,
each in its own transaction; a failing file is rolled back and stops the run.
"""

import logging
import re
from pathlib import Path
from typing import Iterable, List, Set, Tuple

import asyncpg

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

MIGRATION_PATTERN = re.compile(r"^(\d{3})_.+\.sql$")

Migration = Tuple[str, str, Path]


async def ensure_migration_table(conn: asyncpg.Connection) -> None:
    """Create the schema_migrations bookkeeping table on first run."""
    await conn.execute("""
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version VARCHAR(16) PRIMARY KEY,
            filename VARCHAR(255) NOT NULL,
            applied_at TIMESTAMP NOT NULL DEFAULT NOW()
        )
        """)


def discover_migrations() -> List[Migration]:
    """
    Find migration files, ordered by version.

    Returns:
        List of (version, filename, path) tuples.

    Raises:
        FileNotFoundError: If the migrations directory is missing.
        ValueError: If two files share a version number.
    """
    if not MIGRATIONS_DIR.is_dir():
        raise FileNotFoundError(f"Migrations directory not found: {MIGRATIONS_DIR}")

    found = {}
    for entry in sorted(MIGRATIONS_DIR.iterdir()):
        match = MIGRATION_PATTERN.match(entry.name)
        if not match or not entry.is_file():
            continue
        version = match.group(1)
        if version in found:
            raise ValueError(
                f"Duplicate migration version {version}: "
                f"{found[version][1]} and {entry.name}"
            )
        found[version] = (version, entry.name, entry)

    return [found[v] for v in sorted(found)]


def pending_migrations(
    migrations: Iterable[Migration], applied: Set[str]
) -> List[Migration]:
    """Filter out versions already recorded as applied."""
    return [m for m in migrations if m[0] not in applied]


async def get_applied_versions(conn: asyncpg.Connection) -> Set[str]:
    rows = await conn.fetch("SELECT version FROM schema_migrations")
    return {row["version"] for row in rows}


async def apply_migration(pool: asyncpg.Pool, migration: Migration) -> None:
    """Run one migration file and record it, atomically."""
    version, filename, path = migration
    sql = path.read_text(encoding="utf-8")

    async with pool.acquire() as conn:
        async with conn.transaction():
            await conn.execute(sql)
            await conn.execute(
                "INSERT INTO schema_migrations (version, filename) VALUES ($1, $2)",
                version,
                filename,
            )

    logger.info(f"Applied migration {filename}")


async def run_migrations(pool: asyncpg.Pool) -> int:
    """
    Bring the state store schema up to date.

    Args:
        pool: A connected asyncpg pool.

    Returns:
        Number of migrations applied.
    """
    async with pool.acquire() as conn:
        await ensure_migration_table(conn)
        applied = await get_applied_versions(conn)

    pending = pending_migrations(discover_migrations(), applied)
    if not pending:
        logger.info("State store schema is up to date")
        return 0

    logger.info(f"Applying {len(pending)} pending migration(s)")
    for migration in pending:
        await apply_migration(pool, migration)

    return len(pending)
