"""
Database Manager - PostgreSQL state store.

Stores the persisted state of every managed vendor object and the
reconciliation history.
"""

import asyncpg
import json
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from migrate import run_migrations

logger = logging.getLogger(__name__)


class Operation(Enum):
    """Reconciliation operations recorded in history."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"
    IMPORT = "import"


class DatabaseManager:
    """Manages PostgreSQL database operations for the controller."""

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        min_pool_size: int = 2,
        max_pool_size: int = 10,
    ):
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.pool: Optional[asyncpg.Pool] = None

    @classmethod
    def from_config(cls, config) -> "DatabaseManager":
        """Build a manager from a DatabaseConfig."""
        return cls(
            host=config.host,
            port=config.port,
            database=config.database,
            user=config.user,
            password=config.password,
            min_pool_size=config.min_pool_size,
            max_pool_size=config.max_pool_size,
        )

    async def connect(self):
        """Establish connection pool to PostgreSQL."""
        self.pool = await asyncpg.create_pool(
            host=self.host,
            port=self.port,
            database=self.database,
            user=self.user,
            password=self.password,
            min_size=self.min_pool_size,
            max_size=self.max_pool_size,
            command_timeout=60,
        )
        logger.info(
            f"Connected to PostgreSQL (pool: {self.min_pool_size}-{self.max_pool_size})"
        )

    async def close(self):
        """Close the connection pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("Closed PostgreSQL connection")

    def _ensure_connected(self) -> None:
        """Ensure the database connection pool is established."""
        if self.pool is None:
            raise RuntimeError(
                "Database not connected. Call connect() before performing operations."
            )

    async def initialize_schema(self) -> None:
        """Apply database migrations to bring schema up to date."""
        self._ensure_connected()
        await run_migrations(self.pool)
        logger.info("Database schema initialized")

    # ==================== Managed Object Methods ====================

    async def get_state(self, kind: str, name: str) -> Optional[Dict[str, Any]]:
        """
        Get the persisted state of a managed object.

        Args:
            kind: Resource kind (e.g. 'replicated_cluster')
            name: Declared resource name

        Returns:
            The state dictionary, or None if the object is not tracked
        """
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT state FROM managed_objects WHERE kind = $1 AND name = $2",
                kind,
                name,
            )
            if not row:
                return None
            return _load_json(row["state"])

    async def save_state(
        self, kind: str, name: str, object_id: str, state: Dict[str, Any]
    ) -> None:
        """Insert or replace the persisted state of a managed object."""
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO managed_objects (kind, name, object_id, state)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (kind, name) DO UPDATE
                SET object_id = EXCLUDED.object_id,
                    state = EXCLUDED.state,
                    updated_at = NOW(),
                    last_reconcile_time = NOW()
                """,
                kind,
                name,
                object_id,
                json.dumps(state),
            )
        logger.debug(f"Saved state for {kind}/{name} ({object_id})")

    async def remove_state(self, kind: str, name: str) -> bool:
        """
        Drop a managed object from the store.

        Returns:
            True if a row was removed, False if the object was not tracked
        """
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            result = await conn.fetchval(
                """
                DELETE FROM managed_objects
                WHERE kind = $1 AND name = $2
                RETURNING id
                """,
                kind,
                name,
            )
        if result:
            logger.info(f"Removed {kind}/{name} from state")
            return True
        return False

    async def list_states(self, kind: Optional[str] = None) -> List[Dict[str, Any]]:
        """List managed objects, optionally filtered by kind."""
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            query = "SELECT kind, name, object_id, state FROM managed_objects"
            params = []

            if kind:
                query += " WHERE kind = $1"
                params.append(kind)

            query += " ORDER BY kind, name"

            rows = await conn.fetch(query, *params)
            return [self._parse_object_row(row) for row in rows]

    # ==================== History Methods ====================

    async def record_reconciliation(
        self,
        kind: str,
        name: str,
        operation: Operation,
        success: bool,
        message: Optional[str] = None,
        object_id: Optional[str] = None,
        duration_seconds: Optional[float] = None,
    ):
        """Record a reconciliation attempt in history."""
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO reconciliation_history (
                    kind, name, operation, success, message,
                    object_id, duration_seconds
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                """,
                kind,
                name,
                operation.value,
                success,
                message,
                object_id,
                duration_seconds,
            )

    def _parse_object_row(self, row: asyncpg.Record) -> Dict[str, Any]:
        """Parse a managed_objects row, decoding the JSONB state."""
        result = dict(row)
        result["state"] = _load_json(result.get("state"))
        return result


def _load_json(value: Any) -> Dict[str, Any]:
    # asyncpg hands JSONB back as text unless a codec is registered
    if not value:
        return {}
    if isinstance(value, str):
        return json.loads(value)
    return dict(value)
