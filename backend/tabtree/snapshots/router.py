"""Snapshot API routes: export, import and saved snapshots."""

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from tabtree.snapshots.schemas import (
    ImportResult,
    ImportSnapshotRequest,
    SaveSnapshotRequest,
    SnapshotSummary,
)
from tabtree.snapshots.service import SnapshotService, snapshot_filename

router = APIRouter(prefix="/api", tags=["snapshots"])


def get_snapshot_service() -> SnapshotService:
    """Dependency placeholder, overridden at startup."""
    raise RuntimeError("SnapshotService not configured")


@router.get("/windows/{window_id}/snapshot")
async def export_window(
    window_id: int,
    name: str = "",
    service: SnapshotService = Depends(get_snapshot_service),
) -> JSONResponse:
    """Export a window's tree as a downloadable snapshot document."""
    document = service.export(window_id, name)
    return JSONResponse(
        content=document.model_dump(mode="json"),
        headers={
            "Content-Disposition": f'attachment; filename="{snapshot_filename(document)}"',
        },
    )


@router.post("/windows/{window_id}/snapshot/import")
async def import_window(
    window_id: int,
    request: ImportSnapshotRequest,
    service: SnapshotService = Depends(get_snapshot_service),
) -> ImportResult:
    return service.restore(window_id, request.document, request.mode)


@router.post("/windows/{window_id}/snapshots", status_code=status.HTTP_201_CREATED)
async def save_snapshot(
    window_id: int,
    request: SaveSnapshotRequest,
    service: SnapshotService = Depends(get_snapshot_service),
) -> SnapshotSummary:
    document = await service.save(window_id, request.name, is_auto_save=request.is_auto_save)
    return SnapshotSummary(
        snapshot_id=document.snapshot_id,
        name=document.name,
        created_at=document.created_at,
        is_auto_save=document.is_auto_save,
        tab_count=len(document.window.tabs),
    )


@router.get("/snapshots")
async def list_snapshots(
    service: SnapshotService = Depends(get_snapshot_service),
) -> list[SnapshotSummary]:
    return await service.list_snapshots()


@router.post("/snapshots/{snapshot_id}/restore/{window_id}")
async def restore_saved(
    snapshot_id: str,
    window_id: int,
    mode: Literal["replace", "merge"] = "replace",
    service: SnapshotService = Depends(get_snapshot_service),
) -> ImportResult:
    document = await service.get(snapshot_id)
    if document is None:
        raise HTTPException(status_code=404, detail=f"Snapshot not found: {snapshot_id}")
    return service.restore(window_id, document, mode)


@router.delete("/snapshots/{snapshot_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_snapshot(
    snapshot_id: str,
    service: SnapshotService = Depends(get_snapshot_service),
) -> None:
    if not await service.delete(snapshot_id):
        raise HTTPException(status_code=404, detail=f"Snapshot not found: {snapshot_id}")
