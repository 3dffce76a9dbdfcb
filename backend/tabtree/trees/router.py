"""FastAPI routes for window trees: nodes, drag-and-drop, groups, views, pinned tabs."""

from fastapi import APIRouter, Depends, HTTPException, status

from tabtree.drop.resolver import indicator_position
from tabtree.drop.session import DragSession
from tabtree.models import ChildBehavior, Node, UserSettings, View, ViewPatch, WindowState
from tabtree.trees.engine import (
    CycleDetectedError,
    DuplicateReferenceError,
    EmptyGroupError,
    InvalidParentError,
    NodeNotFoundError,
    NotAGroupError,
    TreeStateEngine,
    ViewExistsError,
    ViewNotFoundError,
)
from tabtree.trees.registry import TreeRegistry
from tabtree.trees.schemas import (
    AddNodeRequest,
    CreateGroupRequest,
    CreateViewRequest,
    DissolveGroupResponse,
    DropRequest,
    DropResponse,
    GroupMemberRequest,
    MoveByGapRequest,
    MoveNodeRequest,
    PinRequest,
    RemoveNodeResponse,
    ReorderPinnedRequest,
    ReorderRequest,
    TreeResponse,
    UpdateGroupRequest,
    ViewListResponse,
)

router = APIRouter(prefix="/api/windows", tags=["trees"])

ENGINE_ERRORS = (
    NodeNotFoundError,
    ViewNotFoundError,
    ViewExistsError,
    InvalidParentError,
    CycleDetectedError,
    NotAGroupError,
    DuplicateReferenceError,
    EmptyGroupError,
)


def get_registry() -> TreeRegistry:
    """Dependency placeholder, replaced at app startup."""
    raise RuntimeError("TreeRegistry not initialized")


def get_user_settings() -> UserSettings:
    """Dependency placeholder, replaced at app startup."""
    raise RuntimeError("UserSettings not initialized")


def _engine(registry: TreeRegistry, window_id: int) -> TreeStateEngine:
    engine = registry.get(window_id)
    if engine is None:
        raise HTTPException(status_code=404, detail=f"Window not found: {window_id}")
    return engine


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, (NodeNotFoundError, ViewNotFoundError)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, (CycleDetectedError, DuplicateReferenceError, ViewExistsError)):
        return HTTPException(status_code=409, detail=str(e))
    return HTTPException(status_code=422, detail=str(e))


def _view_list(engine: TreeStateEngine) -> ViewListResponse:
    return ViewListResponse(current_view_id=engine.current_view_id, views=engine.views())


# -- Windows --


@router.get("")
async def list_windows(registry: TreeRegistry = Depends(get_registry)) -> list[int]:
    return registry.window_ids()


@router.get("/{window_id}/state")
async def get_window_state(
    window_id: int,
    registry: TreeRegistry = Depends(get_registry),
) -> WindowState:
    return _engine(registry, window_id).state


@router.get("/{window_id}/tree")
async def get_tree(
    window_id: int,
    view_id: str | None = None,
    registry: TreeRegistry = Depends(get_registry),
) -> TreeResponse:
    engine = _engine(registry, window_id)
    view_id = view_id or engine.current_view_id
    try:
        tree = engine.get_tree(view_id)
    except ViewNotFoundError as e:
        raise _http_error(e)
    return TreeResponse(window_id=window_id, view_id=view_id, roots=tree.to_dicts())


# -- Nodes --


@router.post("/{window_id}/nodes", status_code=status.HTTP_201_CREATED)
async def add_node(
    window_id: int,
    request: AddNodeRequest,
    registry: TreeRegistry = Depends(get_registry),
) -> Node:
    engine = _engine(registry, window_id)
    try:
        return engine.add_node(
            request.ref,
            request.parent_id,
            request.view_id or engine.current_view_id,
            request.hint,
        )
    except ENGINE_ERRORS as e:
        raise _http_error(e)


@router.delete("/{window_id}/nodes/{node_id}")
async def remove_node(
    window_id: int,
    node_id: str,
    child_behavior: ChildBehavior | None = None,
    registry: TreeRegistry = Depends(get_registry),
    settings: UserSettings = Depends(get_user_settings),
) -> RemoveNodeResponse:
    engine = _engine(registry, window_id)
    behavior = child_behavior or settings.child_behavior
    try:
        removed = engine.remove_node(node_id, behavior)
    except NodeNotFoundError as e:
        raise _http_error(e)
    return RemoveNodeResponse(removed_refs=removed, child_behavior=behavior)


@router.post("/{window_id}/nodes/{node_id}/move")
async def move_node(
    window_id: int,
    node_id: str,
    request: MoveNodeRequest,
    registry: TreeRegistry = Depends(get_registry),
) -> Node:
    try:
        return _engine(registry, window_id).move_node(
            node_id, request.target_parent_id, request.target_index
        )
    except ENGINE_ERRORS as e:
        raise _http_error(e)


@router.post("/{window_id}/nodes/{node_id}/move-by-gap")
async def move_by_gap(
    window_id: int,
    node_id: str,
    request: MoveByGapRequest,
    registry: TreeRegistry = Depends(get_registry),
) -> Node:
    try:
        return _engine(registry, window_id).move_subtree_by_size(
            node_id, request.destination_gap, target_depth=request.target_depth
        )
    except ENGINE_ERRORS as e:
        raise _http_error(e)


@router.post("/{window_id}/nodes/{node_id}/move-to-view/{view_id}")
async def move_to_view(
    window_id: int,
    node_id: str,
    view_id: str,
    registry: TreeRegistry = Depends(get_registry),
) -> Node:
    try:
        return _engine(registry, window_id).move_subtree_to_view(node_id, view_id)
    except ENGINE_ERRORS as e:
        raise _http_error(e)


@router.post("/{window_id}/nodes/{node_id}/toggle")
async def toggle_expand(
    window_id: int,
    node_id: str,
    registry: TreeRegistry = Depends(get_registry),
) -> Node:
    try:
        return _engine(registry, window_id).toggle_expand(node_id)
    except NodeNotFoundError as e:
        raise _http_error(e)


@router.post("/{window_id}/drop")
async def drop(
    window_id: int,
    request: DropRequest,
    registry: TreeRegistry = Depends(get_registry),
    settings: UserSettings = Depends(get_user_settings),
) -> DropResponse:
    """Resolve a pointer against the rendered rows and apply the drop."""
    session = DragSession(_engine(registry, window_id), settings.gap_threshold_ratio)
    try:
        session.start(request.node_id)
    except NodeNotFoundError as e:
        raise _http_error(e)
    target = session.update(request.pointer, request.boxes, request.bounds)
    indicator = indicator_position(target, request.boxes)
    moved = session.commit(request.target_depth)
    return DropResponse(target=target, indicator=indicator, moved=moved)


# -- Groups --


@router.post("/{window_id}/groups", status_code=status.HTTP_201_CREATED)
async def create_group(
    window_id: int,
    request: CreateGroupRequest,
    registry: TreeRegistry = Depends(get_registry),
) -> Node:
    try:
        return _engine(registry, window_id).create_group_from_nodes(
            request.node_ids, request.name, request.color
        )
    except ENGINE_ERRORS as e:
        raise _http_error(e)


@router.patch("/{window_id}/groups/{group_id}")
async def update_group(
    window_id: int,
    group_id: str,
    request: UpdateGroupRequest,
    registry: TreeRegistry = Depends(get_registry),
) -> Node:
    try:
        return _engine(registry, window_id).update_group(
            group_id, name=request.name, color=request.color
        )
    except ENGINE_ERRORS as e:
        raise _http_error(e)


@router.post("/{window_id}/groups/{group_id}/members")
async def add_to_group(
    window_id: int,
    group_id: str,
    request: GroupMemberRequest,
    registry: TreeRegistry = Depends(get_registry),
) -> Node:
    try:
        return _engine(registry, window_id).add_node_to_group(request.node_id, group_id)
    except ENGINE_ERRORS as e:
        raise _http_error(e)


@router.delete("/{window_id}/groups/{group_id}/members/{node_id}")
async def remove_from_group(
    window_id: int,
    group_id: str,
    node_id: str,
    registry: TreeRegistry = Depends(get_registry),
) -> Node:
    engine = _engine(registry, window_id)
    try:
        if engine.get_node(node_id).parent_id != group_id:
            raise HTTPException(
                status_code=422, detail=f"Node {node_id} is not a member of {group_id}"
            )
        return engine.remove_node_from_group(node_id)
    except ENGINE_ERRORS as e:
        raise _http_error(e)


@router.delete("/{window_id}/groups/{group_id}")
async def dissolve_group(
    window_id: int,
    group_id: str,
    registry: TreeRegistry = Depends(get_registry),
) -> DissolveGroupResponse:
    try:
        members = _engine(registry, window_id).dissolve_group(group_id)
    except ENGINE_ERRORS as e:
        raise _http_error(e)
    return DissolveGroupResponse(member_ids=members)


# -- Views --


@router.get("/{window_id}/views")
async def list_views(
    window_id: int,
    registry: TreeRegistry = Depends(get_registry),
) -> ViewListResponse:
    return _view_list(_engine(registry, window_id))


@router.post("/{window_id}/views", status_code=status.HTTP_201_CREATED)
async def create_view(
    window_id: int,
    request: CreateViewRequest,
    registry: TreeRegistry = Depends(get_registry),
) -> View:
    return _engine(registry, window_id).create_view(request.name, request.color, request.icon)


@router.patch("/{window_id}/views/{view_id}")
async def update_view(
    window_id: int,
    view_id: str,
    request: ViewPatch,
    registry: TreeRegistry = Depends(get_registry),
) -> View:
    try:
        return _engine(registry, window_id).update_view(view_id, request)
    except ViewNotFoundError as e:
        raise _http_error(e)


@router.delete("/{window_id}/views/{view_id}")
async def delete_view(
    window_id: int,
    view_id: str,
    registry: TreeRegistry = Depends(get_registry),
) -> ViewListResponse:
    engine = _engine(registry, window_id)
    try:
        engine.delete_view(view_id)
    except ViewNotFoundError as e:
        raise _http_error(e)
    return _view_list(engine)


@router.post("/{window_id}/views/{view_id}/switch")
async def switch_view(
    window_id: int,
    view_id: str,
    registry: TreeRegistry = Depends(get_registry),
) -> ViewListResponse:
    engine = _engine(registry, window_id)
    try:
        engine.switch_view(view_id)
    except ViewNotFoundError as e:
        raise _http_error(e)
    return _view_list(engine)


@router.post("/{window_id}/views/{view_id}/reorder")
async def reorder_view(
    window_id: int,
    view_id: str,
    request: ReorderRequest,
    registry: TreeRegistry = Depends(get_registry),
) -> ViewListResponse:
    engine = _engine(registry, window_id)
    try:
        engine.reorder_view(view_id, request.new_index)
    except ViewNotFoundError as e:
        raise _http_error(e)
    return _view_list(engine)


# -- Pinned tabs --


@router.post("/{window_id}/pinned")
async def pin_tab(
    window_id: int,
    request: PinRequest,
    registry: TreeRegistry = Depends(get_registry),
) -> list[int]:
    try:
        return _engine(registry, window_id).pin_tab(request.ref)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.post("/{window_id}/pinned/reorder")
async def reorder_pinned(
    window_id: int,
    request: ReorderPinnedRequest,
    registry: TreeRegistry = Depends(get_registry),
) -> list[int]:
    try:
        return _engine(registry, window_id).reorder_pinned(request.ref, request.insert_index)
    except NodeNotFoundError as e:
        raise _http_error(e)


@router.post("/{window_id}/pinned/{ref}/unpin", status_code=status.HTTP_201_CREATED)
async def unpin_tab(
    window_id: int,
    ref: int,
    view_id: str | None = None,
    registry: TreeRegistry = Depends(get_registry),
) -> Node:
    try:
        return _engine(registry, window_id).unpin_tab(ref, view_id)
    except ENGINE_ERRORS as e:
        raise _http_error(e)
