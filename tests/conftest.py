"""Pytest configuration and fixtures."""

import pytest
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

from models import Cluster, Customer
from plugins.reconcilers.base import ReconcilerContext


@pytest.fixture
def mock_connection():
    """Create a mock asyncpg connection."""
    conn = AsyncMock()
    mock_transaction = AsyncMock()
    mock_transaction.__aenter__ = AsyncMock(return_value=mock_transaction)
    mock_transaction.__aexit__ = AsyncMock(return_value=False)
    conn.transaction = MagicMock(return_value=mock_transaction)
    return conn


@pytest.fixture
def mock_pool(mock_connection):
    """Create a mock asyncpg pool whose acquire() yields mock_connection."""
    pool = AsyncMock()

    @asynccontextmanager
    async def mock_acquire():
        yield mock_connection

    pool.acquire = mock_acquire
    return pool


@pytest.fixture
def mock_client():
    """Create a mock vendor API client."""
    return AsyncMock()


@pytest.fixture
def reconciler_context(mock_client):
    """Reconciler context wrapping the mock client."""
    return ReconcilerContext(client=mock_client)


@pytest.fixture
def make_cluster():
    """Factory for remote cluster records."""

    def _make(status="queued", **overrides):
        data = {
            "id": "c-123",
            "name": "quirky-curie",
            "kubernetes_distribution": "kind",
            "kubernetes_version": "1.29.0",
            "instance_type": "r1.small",
            "node_count": 1,
            "disk_gib": 50,
            "ttl": "1h",
            "status": status,
        }
        data.update(overrides)
        return Cluster.model_validate(data)

    return _make


@pytest.fixture
def sample_customer_payload():
    """Customer record as returned by the vendor API."""
    return {
        "id": "cust-1",
        "name": "Acme",
        "email": "ops@acme.example",
        "type": "trial",
        "expiresAt": "2030-01-02T03:04:05Z",
        "channels": [{"id": "chan-1", "appId": "app-1", "name": "Stable"}],
        "entitlements": [{"name": "testEntitlement", "value": "test_value"}],
        "airgap": True,
        "isInstallerSupportEnabled": True,
        "isHelmVmDownloadEnabled": False,
    }


@pytest.fixture
def sample_customer(sample_customer_payload):
    """Parsed customer record."""
    return Customer.model_validate(sample_customer_payload)
