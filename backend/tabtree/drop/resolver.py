"""Geometry-based drop target resolution.

Pure functions: given the pointer position and the on-screen boxes of the
rows in display order, decide whether a drop lands on a row or in a gap
between rows, and where the drop indicator goes. Nothing here touches the
tree; the caller hands the result to the engine.
"""

from enum import StrEnum

from pydantic import BaseModel

DEFAULT_GAP_THRESHOLD_RATIO = 0.25


class DropKind(StrEnum):
    ON_NODE = "on_node"
    IN_GAP = "in_gap"
    NONE = "none"


class Pointer(BaseModel):
    x: float = 0.0
    y: float = 0.0


class NodeBox(BaseModel):
    """One row's extent along the drag axis, plus its tree depth."""

    node_id: str
    start: float  # top (vertical) or left (horizontal)
    end: float  # bottom or right
    depth: int = 0

    @property
    def extent(self) -> float:
        return self.end - self.start


class Bounds(BaseModel):
    start: float
    end: float


class DropTarget(BaseModel):
    kind: DropKind
    node_id: str | None = None
    gap_index: int | None = None
    above_node_id: str | None = None
    below_node_id: str | None = None
    adjacent_depths: tuple[int | None, int | None] = (None, None)


NO_TARGET = DropTarget(kind=DropKind.NONE)


def resolve_drop_target(
    pointer: Pointer,
    boxes: list[NodeBox],
    *,
    gap_ratio: float = DEFAULT_GAP_THRESHOLD_RATIO,
    bounds: Bounds | None = None,
    dragged_ids: set[str] | None = None,
) -> DropTarget:
    """Classify a vertical pointer position against rows in display order.

    Rows in ``dragged_ids`` (the dragged subtree) are dropped before any
    counting, so gap indices refer to the rows that remain.
    """
    rows = [box for box in boxes if not dragged_ids or box.node_id not in dragged_ids]
    if not rows:
        return NO_TARGET
    y = pointer.y
    if bounds is not None and not bounds.start <= y <= bounds.end:
        return NO_TARGET

    if y < rows[0].start:
        return _gap(0, rows)
    if y >= rows[-1].end:
        return _gap(len(rows), rows)

    for i, box in enumerate(rows):
        if box.start <= y < box.end:
            margin = box.extent * gap_ratio
            if y < box.start + margin:
                return _gap(i, rows)
            if y >= box.end - margin:
                return _gap(i + 1, rows)
            return DropTarget(kind=DropKind.ON_NODE, node_id=box.node_id)
        if i + 1 < len(rows) and box.end <= y < rows[i + 1].start:
            # pointer sits in whitespace between two rows
            return _gap(i + 1, rows)

    return _gap(len(rows), rows)


def _gap(index: int, rows: list[NodeBox]) -> DropTarget:
    above = rows[index - 1] if index > 0 else None
    below = rows[index] if index < len(rows) else None
    return DropTarget(
        kind=DropKind.IN_GAP,
        gap_index=index,
        above_node_id=above.node_id if above else None,
        below_node_id=below.node_id if below else None,
        adjacent_depths=(above.depth if above else None, below.depth if below else None),
    )


def indicator_position(target: DropTarget, boxes: list[NodeBox]) -> float | None:
    """Where to draw the gap marker, measured on the pre-removal boxes.

    The neighbours are looked up by id, so the dragged rows still on screen
    do not shift the marker.
    """
    if target.kind is not DropKind.IN_GAP:
        return None
    by_id = {box.node_id: box for box in boxes}
    above = by_id.get(target.above_node_id) if target.above_node_id else None
    below = by_id.get(target.below_node_id) if target.below_node_id else None
    if above and below:
        return (above.end + below.start) / 2
    if above:
        return above.end
    if below:
        return below.start
    return None


def resolve_horizontal_drop_target(pointer: Pointer, boxes: list[NodeBox]) -> int | None:
    """Insertion index for a flat horizontal strip (pinned tabs). Never lands on an item."""
    if not boxes:
        return None
    for i, box in enumerate(boxes):
        if pointer.x < box.start + box.extent / 2:
            return i
    return len(boxes)


def horizontal_indicator_position(index: int, boxes: list[NodeBox]) -> float | None:
    if not boxes:
        return None
    if index <= 0:
        return boxes[0].start
    if index >= len(boxes):
        return boxes[-1].end
    return (boxes[index - 1].end + boxes[index].start) / 2


def depth_range(above_depth: int | None, below_depth: int | None) -> tuple[int, int]:
    """Depths a node dropped between two rows may take, as (min, max)."""
    max_depth = (above_depth if above_depth is not None else -1) + 1
    min_depth = below_depth if below_depth is not None else 0
    return min(min_depth, max_depth), max_depth


def target_depth(pointer_x: float, container_left: float, indent_width: float, max_depth: int) -> int:
    """Depth chosen by horizontal pointer offset, one level per indent width."""
    if indent_width <= 0 or max_depth < 0:
        return 0
    depth = int((pointer_x - container_left) // indent_width)
    return max(0, min(depth, max_depth))
