"""Drag gesture state: tracks the latest drop target and applies it on commit."""

import logging

from tabtree.drop.resolver import (
    DEFAULT_GAP_THRESHOLD_RATIO,
    NO_TARGET,
    Bounds,
    DropKind,
    DropTarget,
    NodeBox,
    Pointer,
    depth_range,
    resolve_drop_target,
)
from tabtree.models import Node
from tabtree.trees.engine import InvalidParentError, NodeNotFoundError, TreeStateEngine

logger = logging.getLogger(__name__)


class DragSession:
    """One drag gesture over one window's tree.

    The dragged subtree is captured at ``start`` and excluded from every
    resolution. Only ``commit`` touches the engine; cancelling, or
    committing with no usable target, leaves the tree as it was.
    """

    def __init__(
        self,
        engine: TreeStateEngine,
        gap_ratio: float = DEFAULT_GAP_THRESHOLD_RATIO,
    ) -> None:
        self._engine = engine
        self._gap_ratio = gap_ratio
        self._node_id: str | None = None
        self._dragged: set[str] = set()
        self._target: DropTarget = NO_TARGET

    @property
    def active(self) -> bool:
        return self._node_id is not None

    @property
    def node_id(self) -> str | None:
        return self._node_id

    @property
    def target(self) -> DropTarget:
        return self._target

    def start(self, node_id: str) -> None:
        self._dragged = set(self._engine.subtree_ids(node_id))
        self._node_id = node_id
        self._target = NO_TARGET

    def update(
        self,
        pointer: Pointer,
        boxes: list[NodeBox],
        bounds: Bounds | None = None,
    ) -> DropTarget:
        if not self.active:
            return NO_TARGET
        self._target = resolve_drop_target(
            pointer,
            boxes,
            gap_ratio=self._gap_ratio,
            bounds=bounds,
            dragged_ids=self._dragged,
        )
        return self._target

    def cancel(self) -> None:
        self._node_id = None
        self._dragged = set()
        self._target = NO_TARGET

    def depth_bounds(self) -> tuple[int, int] | None:
        """Depth range allowed at the current gap, for drawing the indicator."""
        if self._target.kind is not DropKind.IN_GAP:
            return None
        return depth_range(*self._target.adjacent_depths)

    def commit(self, target_depth: int | None = None) -> Node | None:
        """Apply the last resolved target. Returns the moved node, or None for a no-op."""
        node_id, target = self._node_id, self._target
        self.cancel()
        if node_id is None or target.kind is DropKind.NONE:
            return None
        try:
            if target.kind is DropKind.ON_NODE:
                if target.node_id in self._dragged_at(node_id):
                    return None
                return self._engine.move_node(node_id, target.node_id, None)
            return self._engine.move_subtree_by_size(
                node_id, target.gap_index or 0, target_depth=target_depth
            )
        except (NodeNotFoundError, InvalidParentError):
            # the host closed a tab involved in the drop mid-gesture
            logger.debug("Drop of %s discarded, a node involved no longer exists", node_id)
            return None

    def _dragged_at(self, node_id: str) -> set[str]:
        return set(self._engine.subtree_ids(node_id))
