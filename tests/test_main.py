"""Unit tests for main.py - Application wiring."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from config import Config
from controller import ReconcileOutcome
from db import Operation
from main import Application
from plugins.registry import reset_registry


@pytest.fixture
def app_config():
    cfg = Config.default()
    cfg.vendor_api.api_token = "tok"
    cfg.controller.oneshot = True
    return cfg


@pytest.fixture(autouse=True)
def fresh_registry():
    reset_registry()
    yield
    reset_registry()


@pytest.fixture
def mock_db_cls():
    with patch("main.DatabaseManager") as cls:
        db = MagicMock()
        db.connect = AsyncMock()
        db.initialize_schema = AsyncMock()
        db.close = AsyncMock()
        cls.from_config.return_value = db
        yield cls


@pytest.mark.asyncio
class TestApplication:
    """Tests for Application."""

    async def test_initialize_wires_components(self, app_config, mock_db_cls):
        with patch("main.get_config", return_value=app_config):
            app = Application()
            await app.initialize()

        db = mock_db_cls.from_config.return_value
        db.connect.assert_awaited_once()
        db.initialize_schema.assert_awaited_once()
        assert app.client.base_url == "https://api.replicated.com/vendor/v3"
        assert sorted(app.controller.registry.list_kinds()) == [
            "replicated_cluster",
            "replicated_customer",
        ]
        reconciler = app.controller.registry.get_reconciler("replicated_cluster")
        assert reconciler.client is app.client

    async def test_oneshot_exit_code(self, app_config, mock_db_cls):
        with patch("main.get_config", return_value=app_config):
            app = Application()
            await app.initialize()

        failed = ReconcileOutcome("replicated_cluster", "ci", Operation.CREATE, False)
        app.controller.run_once = AsyncMock(return_value=[failed])
        assert await app.start() == 1

        app.controller.run_once = AsyncMock(return_value=[])
        assert await app.start() == 0

    async def test_stop_closes_database(self, app_config, mock_db_cls):
        with patch("main.get_config", return_value=app_config):
            app = Application()
            await app.initialize()
        db = app.db

        await app.stop()

        db.close.assert_awaited_once()
        assert app.db is None
