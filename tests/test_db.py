"""Unit tests for db.py - State store."""

import json

import pytest
from unittest.mock import AsyncMock, patch

from config import DatabaseConfig
from db import DatabaseManager, Operation


@pytest.fixture
def db(mock_pool):
    manager = DatabaseManager(
        host="localhost",
        port=5432,
        database="testdb",
        user="testuser",
        password="testpass",
    )
    manager.pool = mock_pool
    return manager


class TestOperation:
    """Tests for Operation enum."""

    def test_values(self):
        assert [o.value for o in Operation] == [
            "create",
            "read",
            "update",
            "replace",
            "delete",
            "import",
        ]


class TestDatabaseManager:
    """Tests for DatabaseManager construction."""

    def test_init_default_pool_sizes(self):
        manager = DatabaseManager(
            host="localhost", port=5432, database="d", user="u", password="p"
        )
        assert manager.min_pool_size == 2
        assert manager.max_pool_size == 10
        assert manager.pool is None

    def test_from_config(self):
        manager = DatabaseManager.from_config(
            DatabaseConfig(host="db", password="p", min_pool_size=1, max_pool_size=4)
        )
        assert manager.host == "db"
        assert manager.min_pool_size == 1
        assert manager.max_pool_size == 4

    def test_ensure_connected_raises_when_not_connected(self):
        manager = DatabaseManager(
            host="localhost", port=5432, database="d", user="u", password="p"
        )
        with pytest.raises(RuntimeError) as exc_info:
            manager._ensure_connected()
        assert "Database not connected" in str(exc_info.value)


@pytest.mark.asyncio
class TestConnection:
    """Tests for connect, close and schema initialization."""

    async def test_connect_creates_pool(self):
        manager = DatabaseManager(
            host="h", port=1, database="d", user="u", password="p"
        )
        with patch("db.asyncpg.create_pool", new=AsyncMock(return_value="pool")) as cp:
            await manager.connect()

        assert manager.pool == "pool"
        assert cp.call_args[1]["min_size"] == 2
        assert cp.call_args[1]["max_size"] == 10

    async def test_close(self, db, mock_pool):
        await db.close()
        mock_pool.close.assert_awaited_once()
        assert db.pool is None

    async def test_initialize_schema_runs_migrations(self, db, mock_pool):
        with patch("db.run_migrations", new=AsyncMock(return_value=1)) as run:
            await db.initialize_schema()
        run.assert_awaited_once_with(mock_pool)


@pytest.mark.asyncio
class TestManagedObjects:
    """Tests for managed object state methods."""

    async def test_get_state(self, db, mock_connection):
        mock_connection.fetchrow = AsyncMock(
            return_value={"state": json.dumps({"id": "c-1", "distribution": "kind"})}
        )

        state = await db.get_state("replicated_cluster", "ci")

        assert state == {"id": "c-1", "distribution": "kind"}
        args = mock_connection.fetchrow.call_args[0]
        assert args[1:] == ("replicated_cluster", "ci")

    async def test_get_state_missing(self, db, mock_connection):
        mock_connection.fetchrow = AsyncMock(return_value=None)

        assert await db.get_state("replicated_cluster", "ci") is None

    async def test_save_state_upserts(self, db, mock_connection):
        await db.save_state("replicated_cluster", "ci", "c-1", {"id": "c-1"})

        sql, *params = mock_connection.execute.call_args[0]
        assert "ON CONFLICT (kind, name) DO UPDATE" in sql
        assert params == ["replicated_cluster", "ci", "c-1", '{"id": "c-1"}']

    async def test_remove_state(self, db, mock_connection):
        mock_connection.fetchval = AsyncMock(return_value=7)
        assert await db.remove_state("replicated_cluster", "ci") is True

        mock_connection.fetchval = AsyncMock(return_value=None)
        assert await db.remove_state("replicated_cluster", "ci") is False

    async def test_list_states_filtered(self, db, mock_connection):
        mock_connection.fetch = AsyncMock(
            return_value=[
                {
                    "kind": "replicated_customer",
                    "name": "acme",
                    "object_id": "app/a/customer/c",
                    "state": '{"id": "app/a/customer/c"}',
                }
            ]
        )

        rows = await db.list_states(kind="replicated_customer")

        assert rows[0]["state"] == {"id": "app/a/customer/c"}
        sql, *params = mock_connection.fetch.call_args[0]
        assert "WHERE kind = $1" in sql
        assert params == ["replicated_customer"]

    async def test_list_states_all(self, db, mock_connection):
        mock_connection.fetch = AsyncMock(return_value=[])

        assert await db.list_states() == []
        sql, *params = mock_connection.fetch.call_args[0]
        assert "WHERE" not in sql
        assert params == []


@pytest.mark.asyncio
class TestHistory:
    """Tests for reconciliation history."""

    async def test_record_reconciliation(self, db, mock_connection):
        await db.record_reconciliation(
            kind="replicated_cluster",
            name="ci",
            operation=Operation.REPLACE,
            success=True,
            message="created",
            object_id="c-2",
            duration_seconds=1.5,
        )

        sql, *params = mock_connection.execute.call_args[0]
        assert "INSERT INTO reconciliation_history" in sql
        assert params == ["replicated_cluster", "ci", "replace", True, "created", "c-2", 1.5]
