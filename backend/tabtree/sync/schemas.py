"""Request and response schemas for sync, settings and persistence endpoints."""

from pydantic import BaseModel

from tabtree.models import HostTab
from tabtree.sync.coordinator import SyncState


class ReportTabsRequest(BaseModel):
    tabs: list[HostTab]


class SyncStatusResponse(BaseModel):
    window_id: int
    state: SyncState
    queued: int
    last_active_ref: int | None = None
    unread_refs: list[int] = []


class EventResult(BaseModel):
    event_id: str
    applied: bool


class PersistenceStatus(BaseModel):
    dirty: bool
    write_count: int
    last_failure: str | None = None
