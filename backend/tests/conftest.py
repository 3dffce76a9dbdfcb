"""Shared pytest fixtures for tabtree tests."""

import pytest
from httpx import ASGITransport, AsyncClient

from tabtree.db.connection import Database
from tabtree.main import app
from tabtree.models import UserSettings
from tabtree.snapshots.router import get_snapshot_service
from tabtree.snapshots.service import SnapshotService
from tabtree.storage.gateway import PersistenceGateway
from tabtree.storage.store import KeyValueStore
from tabtree.sync.coordinator import SyncCoordinator
from tabtree.sync.host import ReportedTabsPlatform
from tabtree.sync.router import get_gateway, get_host_platform, get_sync_coordinator
from tabtree.trees.engine import TreeStateEngine
from tabtree.trees.registry import TreeRegistry
from tabtree.trees.router import get_registry, get_user_settings


@pytest.fixture
async def db():
    """In-memory database for tests."""
    async with Database.open(":memory:") as database:
        yield database


@pytest.fixture
async def store(db):
    """KeyValueStore backed by in-memory database."""
    return KeyValueStore(db)


@pytest.fixture
def engine():
    """Engine for window 1 with only the default view."""
    return TreeStateEngine.for_window(1)


@pytest.fixture
def registry():
    return TreeRegistry()


@pytest.fixture
async def gateway(store, registry):
    """Gateway with a short debounce, wired to the registry."""
    gw = PersistenceGateway(store, registry.to_document, debounce_ms=10, backoff_ms=1)
    registry.set_on_change(gw.mark_dirty)
    yield gw
    await gw.close()


@pytest.fixture
def host():
    return ReportedTabsPlatform()


@pytest.fixture
def coordinator(registry, host):
    return SyncCoordinator(registry, host, UserSettings())


@pytest.fixture
async def client(registry, gateway, host, coordinator, store):
    """Async test client with in-memory services wired into the app."""
    snapshot_service = SnapshotService(registry, store, lambda: coordinator.settings)
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_host_platform] = lambda: host
    app.dependency_overrides[get_sync_coordinator] = lambda: coordinator
    app.dependency_overrides[get_user_settings] = lambda: coordinator.settings
    app.dependency_overrides[get_snapshot_service] = lambda: snapshot_service
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
    app.dependency_overrides.clear()
