"""Request and response schemas for window tree endpoints."""

from pydantic import BaseModel, Field

from tabtree.drop.resolver import Bounds, DropTarget, NodeBox, Pointer
from tabtree.models import (
    DEFAULT_GROUP_COLOR,
    DEFAULT_GROUP_NAME,
    DEFAULT_VIEW_COLOR,
    ChildBehavior,
    InsertionHint,
    Node,
    View,
)

# -- Requests --


class AddNodeRequest(BaseModel):
    ref: int
    parent_id: str | None = None
    view_id: str | None = None
    hint: InsertionHint = InsertionHint.END


class MoveNodeRequest(BaseModel):
    target_parent_id: str | None = None
    target_index: int | None = None


class MoveByGapRequest(BaseModel):
    destination_gap: int = Field(ge=0)
    target_depth: int | None = Field(default=None, ge=0)


class DropRequest(BaseModel):
    """A whole drag gesture in one call: resolve the final pointer, then commit."""

    node_id: str
    pointer: Pointer
    boxes: list[NodeBox]
    bounds: Bounds | None = None
    target_depth: int | None = Field(default=None, ge=0)


class CreateGroupRequest(BaseModel):
    node_ids: list[str]
    name: str = DEFAULT_GROUP_NAME
    color: str = DEFAULT_GROUP_COLOR


class UpdateGroupRequest(BaseModel):
    name: str | None = None
    color: str | None = None


class GroupMemberRequest(BaseModel):
    node_id: str


class CreateViewRequest(BaseModel):
    name: str
    color: str = DEFAULT_VIEW_COLOR
    icon: str | None = None


class ReorderRequest(BaseModel):
    new_index: int = Field(ge=0)


class PinRequest(BaseModel):
    ref: int


class ReorderPinnedRequest(BaseModel):
    ref: int
    insert_index: int = Field(ge=0)


# -- Responses --


class TreeResponse(BaseModel):
    window_id: int
    view_id: str
    roots: list[dict]


class RemoveNodeResponse(BaseModel):
    removed_refs: list[int]
    child_behavior: ChildBehavior


class DropResponse(BaseModel):
    target: DropTarget
    indicator: float | None = None
    moved: Node | None = None


class ViewListResponse(BaseModel):
    current_view_id: str
    views: list[View]


class DissolveGroupResponse(BaseModel):
    member_ids: list[str]
