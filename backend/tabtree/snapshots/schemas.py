"""Snapshot document format and import/export request and response schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from tabtree.models import DEFAULT_VIEW_COLOR, GroupInfo

SNAPSHOT_FORMAT_VERSION = 1


class SnapshotTab(BaseModel):
    """One node or pinned tab. Parents are referenced by position in the tab list."""

    index: int
    external_ref: int
    parent_index: int | None = None
    view_id: str
    is_expanded: bool = True
    pinned: bool = False
    group_info: GroupInfo | None = None


class SnapshotView(BaseModel):
    id: str
    name: str
    color: str = DEFAULT_VIEW_COLOR
    icon: str | None = None


class SnapshotWindow(BaseModel):
    current_view_id: str
    views: list[SnapshotView] = Field(default_factory=list)
    tabs: list[SnapshotTab] = Field(default_factory=list)


class SnapshotDocument(BaseModel):
    format_version: int = SNAPSHOT_FORMAT_VERSION
    snapshot_id: str
    created_at: datetime
    name: str = ""
    is_auto_save: bool = False
    window: SnapshotWindow


# -- Requests --


class SaveSnapshotRequest(BaseModel):
    name: str = ""
    is_auto_save: bool = False


class ImportSnapshotRequest(BaseModel):
    mode: Literal["replace", "merge"] = "replace"
    document: SnapshotDocument


# -- Responses --


class SnapshotSummary(BaseModel):
    snapshot_id: str
    name: str
    created_at: datetime
    is_auto_save: bool
    tab_count: int


class ImportResult(BaseModel):
    mode: Literal["replace", "merge"]
    views_created: int = 0
    nodes_created: int = 0
    pinned_restored: int = 0
    skipped: int = 0
    warnings: list[str] = Field(default_factory=list)
