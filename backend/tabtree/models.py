"""Canonical data structures and host event types for tabtree.

Defined once here, referenced everywhere else. The tree is an arena: nodes
reference each other only by id inside one window's state. Host event
payloads describe tab lifecycle notifications; the HostEventEnvelope wraps
them with routing metadata.
"""

from datetime import datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, Field

DEFAULT_VIEW_ID = "default"
DEFAULT_VIEW_NAME = "Default"
DEFAULT_VIEW_COLOR = "#6b7280"
DEFAULT_GROUP_NAME = "Group"
DEFAULT_GROUP_COLOR = "#f59e0b"

# ---------------------------------------------------------------------------
# Behaviour enums
# ---------------------------------------------------------------------------


class InsertionHint(StrEnum):
    CHILD = "child"
    SIBLING = "sibling"
    END = "end"


class ChildBehavior(StrEnum):
    PROMOTE = "promote"
    ORPHAN = "orphan"
    CASCADE = "cascade"


# ---------------------------------------------------------------------------
# Tree data model
# ---------------------------------------------------------------------------


class GroupInfo(BaseModel):
    name: str = DEFAULT_GROUP_NAME
    color: str = DEFAULT_GROUP_COLOR


class Node(BaseModel):
    id: str
    external_ref: int  # host tab id, or a negative sentinel for group nodes
    parent_id: str | None = None
    children: list[str] = Field(default_factory=list)
    is_expanded: bool = True
    depth: int = 0  # derived, never authoritative
    view_id: str
    group_info: GroupInfo | None = None

    @property
    def is_group(self) -> bool:
        return self.group_info is not None


class View(BaseModel):
    id: str
    name: str
    color: str = DEFAULT_VIEW_COLOR
    icon: str | None = None
    root_node_ids: list[str] = Field(default_factory=list)


class ViewPatch(BaseModel):
    """Fields to update on a view. Only fields present in the patch are changed."""

    name: str | None = None
    color: str | None = None
    icon: str | None = None


class IndexEntry(BaseModel):
    view_id: str
    node_id: str


class WindowState(BaseModel):
    """The whole tree model of one host window."""

    window_id: int
    views: dict[str, View] = Field(default_factory=dict)
    view_order: list[str] = Field(default_factory=list)
    current_view_id: str = DEFAULT_VIEW_ID
    nodes: dict[str, Node] = Field(default_factory=dict)
    index: dict[int, IndexEntry] = Field(default_factory=dict)
    pinned_refs: list[int] = Field(default_factory=list)
    next_group_ref: int = -1


class TreeStateDocument(BaseModel):
    """Whole-store document: every window's state under one key."""

    version: int = 1
    windows: dict[int, WindowState] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Behavioural settings
# ---------------------------------------------------------------------------


class UserSettings(BaseModel):
    new_tab_position_from_link: InsertionHint = InsertionHint.CHILD
    new_tab_position_manual: InsertionHint = InsertionHint.END
    duplicate_tab_position: Literal["sibling", "end"] = "sibling"
    child_behavior: ChildBehavior = ChildBehavior.PROMOTE
    gap_threshold_ratio: float = Field(default=0.25, ge=0.0, lt=0.5)
    auto_snapshot_interval_minutes: float = Field(default=0, ge=0)  # 0 disables
    max_snapshots: int = Field(default=10, ge=1)


# ---------------------------------------------------------------------------
# Host tab platform
# ---------------------------------------------------------------------------


class HostTab(BaseModel):
    """Point-in-time description of one host tab."""

    tab_id: int = Field(ge=0)
    window_id: int
    index: int = 0
    url: str = ""
    title: str = ""
    pinned: bool = False
    active: bool = False
    opener_tab_id: int | None = None


# ---------------------------------------------------------------------------
# Host event payloads, one per lifecycle notification
# ---------------------------------------------------------------------------


class TabCreatedPayload(BaseModel):
    tab: HostTab
    cause: Literal["link", "manual", "duplicate"] = "manual"
    source_tab_id: int | None = None  # the tab a duplicate was copied from


class TabRemovedPayload(BaseModel):
    tab_id: int = Field(ge=0)
    is_window_closing: bool = False


class TabActivatedPayload(BaseModel):
    tab_id: int = Field(ge=0)


class TabMovedPayload(BaseModel):
    tab_id: int = Field(ge=0)
    from_index: int
    to_index: int


class TabAttachedPayload(BaseModel):
    tab_id: int = Field(ge=0)
    new_position: int = 0
    pinned: bool = False


class TabDetachedPayload(BaseModel):
    tab_id: int = Field(ge=0)
    old_position: int = 0


class TabReplacedPayload(BaseModel):
    added_tab_id: int = Field(ge=0)
    removed_tab_id: int = Field(ge=0)


# ---------------------------------------------------------------------------
# Event type registry
# ---------------------------------------------------------------------------

EVENT_TYPES: dict[str, type[BaseModel]] = {
    "TabCreated": TabCreatedPayload,
    "TabRemoved": TabRemovedPayload,
    "TabActivated": TabActivatedPayload,
    "TabMoved": TabMovedPayload,
    "TabAttached": TabAttachedPayload,
    "TabDetached": TabDetachedPayload,
    "TabReplaced": TabReplacedPayload,
}


# ---------------------------------------------------------------------------
# Event envelope
# ---------------------------------------------------------------------------


class HostEventEnvelope(BaseModel):
    """Wraps every host notification with its window and arrival metadata."""

    event_id: str
    window_id: int
    timestamp: datetime
    event_type: str
    payload: dict[str, Any]

    def typed_payload(self) -> BaseModel:
        """Deserialize payload into the correct Pydantic model based on event_type."""
        payload_cls = EVENT_TYPES[self.event_type]
        return payload_cls.model_validate(self.payload)
