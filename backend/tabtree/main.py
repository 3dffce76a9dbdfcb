"""tabtree FastAPI application entry point."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tabtree.config import AppConfig, load_default_settings
from tabtree.db.connection import Database
from tabtree.snapshots.router import get_snapshot_service
from tabtree.snapshots.router import router as snapshots_router
from tabtree.snapshots.scheduler import AutoSnapshotter
from tabtree.snapshots.service import SnapshotService
from tabtree.storage import KeyValueStore, PersistenceGateway
from tabtree.sync.coordinator import SyncCoordinator
from tabtree.sync.host import ReportedTabsPlatform
from tabtree.sync.router import get_gateway, get_host_platform, get_sync_coordinator
from tabtree.sync.router import router as sync_router
from tabtree.trees.registry import TreeRegistry
from tabtree.trees.router import get_registry, get_user_settings
from tabtree.trees.router import router as trees_router

config = AppConfig.from_env()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage database lifecycle and service wiring."""
    db = await Database.connect(config.db_path)
    store = KeyValueStore(db)

    # Trees, restored from the last persisted document
    registry = TreeRegistry()
    gateway = PersistenceGateway(
        store,
        registry.to_document,
        debounce_ms=config.flush_debounce_ms,
        max_attempts=config.flush_retries,
    )
    registry.load_document(await gateway.load())
    registry.set_on_change(gateway.mark_dirty)
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_gateway] = lambda: gateway

    # Host sync
    settings = await gateway.load_settings(load_default_settings())
    host = ReportedTabsPlatform()
    coordinator = SyncCoordinator(registry, host, settings)
    app.dependency_overrides[get_host_platform] = lambda: host
    app.dependency_overrides[get_sync_coordinator] = lambda: coordinator
    app.dependency_overrides[get_user_settings] = lambda: coordinator.settings

    # Snapshots
    snapshot_service = SnapshotService(registry, store, lambda: coordinator.settings)
    app.dependency_overrides[get_snapshot_service] = lambda: snapshot_service
    snapshotter = AutoSnapshotter(snapshot_service, registry)
    store.subscribe(snapshotter.on_storage_change)
    snapshotter.start(settings.auto_snapshot_interval_minutes)

    app.state.db = db
    yield

    await snapshotter.close()
    await gateway.close()
    await db.close()


app = FastAPI(
    title="tabtree",
    description="Hierarchical tab tree state: nesting, groups, views, drag-and-drop and snapshots",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.cors_origin],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(trees_router)
app.include_router(sync_router)
app.include_router(snapshots_router)


@app.get("/api/health")
async def health() -> dict:
    return {"status": "ok", "version": "0.1.0"}
