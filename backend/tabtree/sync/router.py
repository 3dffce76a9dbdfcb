"""FastAPI routes for host tab sync, user settings and persistence status."""

from fastapi import APIRouter, Depends, status

from tabtree.models import HostEventEnvelope, UserSettings
from tabtree.storage.gateway import PersistenceGateway
from tabtree.sync.coordinator import SyncCoordinator
from tabtree.sync.host import ReportedTabsPlatform
from tabtree.sync.schemas import (
    EventResult,
    PersistenceStatus,
    ReportTabsRequest,
    SyncStatusResponse,
)

router = APIRouter(prefix="/api", tags=["sync"])


def get_sync_coordinator() -> SyncCoordinator:
    """Dependency placeholder, replaced at app startup."""
    raise RuntimeError("SyncCoordinator not initialized")


def get_host_platform() -> ReportedTabsPlatform:
    """Dependency placeholder, replaced at app startup."""
    raise RuntimeError("Host platform not initialized")


def get_gateway() -> PersistenceGateway:
    """Dependency placeholder, replaced at app startup."""
    raise RuntimeError("PersistenceGateway not initialized")


def _status(coordinator: SyncCoordinator, window_id: int) -> SyncStatusResponse:
    return SyncStatusResponse(
        window_id=window_id,
        state=coordinator.state_of(window_id),
        queued=coordinator.queued(window_id),
        last_active_ref=coordinator.last_active_ref(window_id),
        unread_refs=sorted(coordinator.unread_refs(window_id)),
    )


@router.post("/sync/windows/{window_id}/tabs")
async def report_tabs(
    window_id: int,
    request: ReportTabsRequest,
    coordinator: SyncCoordinator = Depends(get_sync_coordinator),
    host: ReportedTabsPlatform = Depends(get_host_platform),
) -> SyncStatusResponse:
    """Take the host's full tab list for a window and reconcile if not yet live."""
    host.report(window_id, request.tabs)
    await coordinator.observe_window(window_id)
    return _status(coordinator, window_id)


@router.get("/sync/windows/{window_id}")
async def sync_status(
    window_id: int,
    coordinator: SyncCoordinator = Depends(get_sync_coordinator),
) -> SyncStatusResponse:
    return _status(coordinator, window_id)


@router.delete("/sync/windows/{window_id}", status_code=status.HTTP_204_NO_CONTENT)
async def forget_window(
    window_id: int,
    coordinator: SyncCoordinator = Depends(get_sync_coordinator),
    host: ReportedTabsPlatform = Depends(get_host_platform),
) -> None:
    host.forget(window_id)
    coordinator.forget_window(window_id)


@router.post("/sync/events")
async def ingest_event(
    envelope: HostEventEnvelope,
    coordinator: SyncCoordinator = Depends(get_sync_coordinator),
) -> EventResult:
    return EventResult(event_id=envelope.event_id, applied=coordinator.handle_event(envelope))


@router.get("/settings")
async def get_settings(
    coordinator: SyncCoordinator = Depends(get_sync_coordinator),
) -> UserSettings:
    return coordinator.settings


@router.put("/settings")
async def put_settings(
    settings: UserSettings,
    coordinator: SyncCoordinator = Depends(get_sync_coordinator),
    gateway: PersistenceGateway = Depends(get_gateway),
) -> UserSettings:
    coordinator.settings = settings
    await gateway.save_settings(settings)
    return settings


@router.get("/persistence")
async def persistence_status(
    gateway: PersistenceGateway = Depends(get_gateway),
) -> PersistenceStatus:
    return PersistenceStatus(
        dirty=gateway.dirty,
        write_count=gateway.write_count,
        last_failure=str(gateway.last_failure) if gateway.last_failure else None,
    )
