"""Tree state engine: the single mutation API over one window's tab tree.

Every structural change (host event, drag gesture, menu action, snapshot
import) funnels through these methods. Each call validates before it
mutates, so a rejected call leaves the model untouched. Depth is derived:
any path that changes structure re-derives depth for the affected subtree
before returning.
"""

import logging
from collections.abc import Callable, Iterable, Iterator
from uuid import uuid4

from tabtree.drop.resolver import depth_range
from tabtree.models import (
    DEFAULT_GROUP_COLOR,
    DEFAULT_GROUP_NAME,
    DEFAULT_VIEW_COLOR,
    DEFAULT_VIEW_ID,
    DEFAULT_VIEW_NAME,
    ChildBehavior,
    GroupInfo,
    IndexEntry,
    InsertionHint,
    Node,
    View,
    ViewPatch,
    WindowState,
)
from tabtree.trees.materialize import TreeIterable

logger = logging.getLogger(__name__)


class TreeStateEngine:
    """Owns one window's state and enforces the tree invariants."""

    def __init__(
        self,
        state: WindowState,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._state = state
        self._on_change = on_change
        if not state.views:
            self._install_default_view()

    @classmethod
    def for_window(
        cls, window_id: int, on_change: Callable[[], None] | None = None
    ) -> "TreeStateEngine":
        """Create an engine for a window with only the default view."""
        return cls(WindowState(window_id=window_id), on_change)

    @classmethod
    def from_state(
        cls, state: WindowState, on_change: Callable[[], None] | None = None
    ) -> "TreeStateEngine":
        """Adopt a persisted state, repairing links and re-deriving depth and index."""
        engine = cls(state, on_change)
        engine._repair()
        return engine

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    @property
    def state(self) -> WindowState:
        return self._state

    @property
    def window_id(self) -> int:
        return self._state.window_id

    @property
    def current_view_id(self) -> str:
        return self._state.current_view_id

    @property
    def pinned_refs(self) -> list[int]:
        return list(self._state.pinned_refs)

    def set_on_change(self, on_change: Callable[[], None] | None) -> None:
        self._on_change = on_change

    def views(self) -> list[View]:
        """All views in display order."""
        return [self._state.views[view_id] for view_id in self._state.view_order]

    def get_view(self, view_id: str) -> View:
        return self._require_view(view_id)

    def get_node(self, node_id: str) -> Node:
        return self._require_node(node_id)

    def get_node_by_ref(self, ref: int) -> Node | None:
        """O(1) lookup through the reverse index. None for unknown refs."""
        entry = self._state.index.get(ref)
        if entry is None:
            return None
        return self._state.nodes.get(entry.node_id)

    def has_ref(self, ref: int) -> bool:
        return ref in self._state.index

    def refs(self) -> list[int]:
        return list(self._state.index)

    def is_group(self, node_id: str) -> bool:
        return self._require_node(node_id).is_group

    def subtree_ids(self, node_id: str) -> list[str]:
        """The node and all of its descendants, in pre-order."""
        self._require_node(node_id)
        return list(self._walk(node_id))

    def flatten(self, view_id: str, *, visible_only: bool = True) -> list[Node]:
        """Rows of a view in pre-order. Collapsed children are skipped when visible_only."""
        view = self._require_view(view_id)
        rows: list[Node] = []
        stack = list(reversed(view.root_node_ids))
        while stack:
            node = self._state.nodes[stack.pop()]
            rows.append(node)
            if node.is_expanded or not visible_only:
                stack.extend(reversed(node.children))
        return rows

    def get_tree(self, view_id: str) -> TreeIterable:
        """Restartable nested sequence of a view's roots, copied at call time."""
        view = self._require_view(view_id)
        nodes = {
            node.id: node.model_copy(deep=True)
            for node in self.flatten(view_id, visible_only=False)
        }
        return TreeIterable(tuple(view.root_node_ids), nodes)

    def check_invariants(self) -> list[str]:
        """Return a description of every violated invariant (empty when healthy)."""
        s = self._state
        problems: list[str] = []

        if s.current_view_id not in s.views:
            problems.append(f"current view {s.current_view_id} does not exist")

        seen_roots: set[str] = set()
        for view in s.views.values():
            for root_id in view.root_node_ids:
                node = s.nodes.get(root_id)
                if node is None:
                    problems.append(f"view {view.id} lists missing root {root_id}")
                    continue
                if node.parent_id is not None:
                    problems.append(f"view {view.id} lists non-root {root_id}")
                if node.view_id != view.id:
                    problems.append(f"root {root_id} belongs to view {node.view_id}")
                if root_id in seen_roots:
                    problems.append(f"root {root_id} listed twice")
                seen_roots.add(root_id)

        for node in s.nodes.values():
            for child_id in node.children:
                child = s.nodes.get(child_id)
                if child is None:
                    problems.append(f"{node.id} lists missing child {child_id}")
                elif child.parent_id != node.id:
                    problems.append(f"{child_id} is listed under {node.id} but points at {child.parent_id}")
            if node.parent_id is None:
                if node.depth != 0:
                    problems.append(f"root {node.id} has depth {node.depth}")
                if node.id not in seen_roots:
                    problems.append(f"root {node.id} missing from its view")
                continue
            parent = s.nodes.get(node.parent_id)
            if parent is None:
                problems.append(f"{node.id} points at missing parent {node.parent_id}")
                continue
            if parent.children.count(node.id) != 1:
                problems.append(f"{node.id} appears {parent.children.count(node.id)} times under {parent.id}")
            if node.depth != parent.depth + 1:
                problems.append(f"{node.id} has depth {node.depth}, parent has {parent.depth}")
            if node.view_id != parent.view_id:
                problems.append(f"{node.id} is in view {node.view_id}, parent in {parent.view_id}")
            if node.id in self._ancestors(node.id):
                problems.append(f"{node.id} is its own ancestor")

        if len(s.index) != len(s.nodes):
            problems.append(f"index has {len(s.index)} entries for {len(s.nodes)} nodes")
        for node in s.nodes.values():
            entry = s.index.get(node.external_ref)
            if entry is None or entry.node_id != node.id or entry.view_id != node.view_id:
                problems.append(f"index entry for ref {node.external_ref} is stale")

        return problems

    # ------------------------------------------------------------------
    # Node operations
    # ------------------------------------------------------------------

    def add_node(
        self,
        ref: int,
        parent_id: str | None,
        view_id: str,
        hint: InsertionHint | str = InsertionHint.END,
        *,
        expanded: bool = True,
        group_info: GroupInfo | None = None,
    ) -> Node:
        """Create a node for ``ref`` relative to the reference node ``parent_id``.

        ``child`` appends under the reference node, ``sibling`` inserts right
        after it, ``end`` appends as the last root of the view. Without a
        reference node every hint behaves like ``end``.
        """
        view = self._require_view(view_id)
        hint = InsertionHint(hint)
        if ref in self._state.index:
            raise DuplicateReferenceError(ref)
        reference: Node | None = None
        if parent_id is not None:
            reference = self._state.nodes.get(parent_id)
            if reference is None or reference.view_id != view_id:
                raise InvalidParentError(parent_id)

        node = Node(
            id=str(uuid4()),
            external_ref=ref,
            view_id=view_id,
            is_expanded=expanded,
            group_info=group_info,
        )
        if reference is None or hint is InsertionHint.END:
            view.root_node_ids.append(node.id)
        elif hint is InsertionHint.CHILD:
            node.parent_id = reference.id
            node.depth = reference.depth + 1
            reference.children.append(node.id)
        else:
            siblings = self._sibling_list(reference)
            siblings.insert(siblings.index(reference.id) + 1, node.id)
            node.parent_id = reference.parent_id
            node.depth = reference.depth

        self._state.nodes[node.id] = node
        self._state.index[ref] = IndexEntry(view_id=view_id, node_id=node.id)
        if ref <= self._state.next_group_ref:
            self._state.next_group_ref = ref - 1
        self._changed()
        return node

    def remove_node(
        self,
        node_id: str,
        child_behavior: ChildBehavior | str = ChildBehavior.PROMOTE,
    ) -> list[int]:
        """Remove a node and return the external refs that left the tree."""
        node = self._require_node(node_id)
        child_behavior = ChildBehavior(child_behavior)
        siblings = self._sibling_list(node)
        position = siblings.index(node.id)

        if child_behavior is ChildBehavior.CASCADE:
            doomed = list(self._walk(node.id))
            siblings.pop(position)
        else:
            doomed = [node.id]
            children, node.children = node.children, []
            if child_behavior is ChildBehavior.PROMOTE:
                siblings[position:position + 1] = children
                new_parent_id, new_depth = node.parent_id, node.depth
            else:
                siblings.pop(position)
                self._state.views[node.view_id].root_node_ids.extend(children)
                new_parent_id, new_depth = None, 0
            for child_id in children:
                self._state.nodes[child_id].parent_id = new_parent_id
                self._reassign(child_id, new_depth, node.view_id)

        removed_refs: list[int] = []
        for doomed_id in doomed:
            gone = self._state.nodes.pop(doomed_id)
            self._state.index.pop(gone.external_ref, None)
            removed_refs.append(gone.external_ref)
        self._changed()
        return removed_refs

    def move_node(
        self,
        node_id: str,
        target_parent_id: str | None,
        target_index: int | None = None,
    ) -> Node:
        """Reparent/reorder a node together with its whole subtree.

        ``target_index`` is a position in the target list after the node has
        been detached; None appends. A target inside the node's own subtree
        raises CycleDetectedError and nothing changes.
        """
        node = self._require_node(node_id)
        target: Node | None = None
        if target_parent_id is not None:
            if target_parent_id == node_id:
                raise CycleDetectedError(node_id, target_parent_id)
            target = self._state.nodes.get(target_parent_id)
            if target is None:
                raise InvalidParentError(target_parent_id)
            if node_id in self._ancestors(target_parent_id):
                raise CycleDetectedError(node_id, target_parent_id)

        self._detach(node)
        if target is None:
            destination = self._state.views[node.view_id].root_node_ids
            view_id, depth = node.view_id, 0
        else:
            destination = target.children
            view_id, depth = target.view_id, target.depth + 1
        if target_index is None:
            index = len(destination)
        else:
            index = max(0, min(target_index, len(destination)))
        destination.insert(index, node.id)
        node.parent_id = target_parent_id
        self._reassign(node.id, depth, view_id)
        self._changed()
        return node

    def move_subtree_by_size(
        self,
        node_id: str,
        destination_gap: int,
        *,
        target_depth: int | None = None,
    ) -> Node:
        """Move a node's subtree to a gap between the visible rows of its view.

        Gaps are counted with the dragged subtree excluded, so a subtree
        passing over its own former rows is not counted against itself. The
        rows above and below the gap decide parent and position;
        ``target_depth`` picks a level within the range they allow.
        """
        node = self._require_node(node_id)
        excluded = set(self._walk(node_id))
        rows = [row for row in self.flatten(node.view_id) if row.id not in excluded]
        gap = max(0, min(destination_gap, len(rows)))
        above = rows[gap - 1] if gap > 0 else None
        below = rows[gap] if gap < len(rows) else None

        min_depth, max_depth = depth_range(
            above.depth if above else None,
            below.depth if below else None,
        )
        if target_depth is None:
            target_depth = below.depth if below else (above.depth if above else 0)
        depth = max(min_depth, min(target_depth, max_depth))

        if above is None:
            return self.move_node(node_id, None, 0)
        if depth == above.depth + 1:
            return self.move_node(node_id, above.id, 0)
        anchor = above
        while anchor.depth > depth and anchor.parent_id is not None:
            anchor = self._state.nodes[anchor.parent_id]
        siblings = [sid for sid in self._sibling_list(anchor) if sid != node_id]
        return self.move_node(node_id, anchor.parent_id, siblings.index(anchor.id) + 1)

    def move_subtree_to_view(self, node_id: str, view_id: str) -> Node:
        """Move a subtree, structure intact, to the end of another view's roots."""
        node = self._require_node(node_id)
        view = self._require_view(view_id)
        if node.view_id == view_id and node.parent_id is None:
            return node
        self._detach(node)
        node.parent_id = None
        view.root_node_ids.append(node.id)
        self._reassign(node.id, 0, view_id)
        self._changed()
        return node

    def toggle_expand(self, node_id: str) -> Node:
        node = self._require_node(node_id)
        node.is_expanded = not node.is_expanded
        self._changed()
        return node

    def expand_node(self, node_id: str) -> Node:
        node = self._require_node(node_id)
        if not node.is_expanded:
            node.is_expanded = True
            self._changed()
        return node

    def replace_external_ref(self, old_ref: int, new_ref: int) -> None:
        """Point a node (or pinned slot) at a new host tab id."""
        if new_ref in self._state.index or new_ref in self._state.pinned_refs:
            raise DuplicateReferenceError(new_ref)
        if old_ref in self._state.pinned_refs:
            position = self._state.pinned_refs.index(old_ref)
            self._state.pinned_refs[position] = new_ref
            self._changed()
            return
        entry = self._state.index.get(old_ref)
        if entry is None:
            raise NodeNotFoundError(f"ref:{old_ref}")
        self._state.nodes[entry.node_id].external_ref = new_ref
        self._state.index[new_ref] = self._state.index.pop(old_ref)
        self._changed()

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def create_group_from_nodes(
        self,
        node_ids: Iterable[str],
        name: str = DEFAULT_GROUP_NAME,
        color: str = DEFAULT_GROUP_COLOR,
    ) -> Node:
        """Bundle nodes (with their subtrees) under a new group node.

        The group takes the first member's slot: under the members' common
        parent when they share one, otherwise at the root level of the first
        member's view.
        """
        requested = list(dict.fromkeys(node_ids))
        if not requested:
            raise EmptyGroupError()
        members = [self._require_node(node_id) for node_id in requested]
        view_id = members[0].view_id
        wanted = set(requested)
        members = [m for m in members if not any(a in wanted for a in self._ancestors(m.id))]
        order = {
            row.id: position
            for position, row in enumerate(self.flatten(view_id, visible_only=False))
        }
        members.sort(key=lambda m: order.get(m.id, len(order)))

        first = members[0]
        parent_ids = {m.parent_id for m in members}
        if first.parent_id is not None and len(parent_ids) == 1:
            parent = self._state.nodes[first.parent_id]
            destination = parent.children
            slot = min(destination.index(m.id) for m in members)
            parent_id, depth = parent.id, parent.depth + 1
        else:
            top = first
            while top.parent_id is not None:
                top = self._state.nodes[top.parent_id]
            destination = self._state.views[view_id].root_node_ids
            slot = destination.index(top.id)
            parent_id, depth = None, 0

        group = Node(
            id=str(uuid4()),
            external_ref=self.allocate_group_ref(),
            parent_id=parent_id,
            view_id=view_id,
            group_info=GroupInfo(name=name or DEFAULT_GROUP_NAME, color=color),
        )
        self._state.nodes[group.id] = group
        self._state.index[group.external_ref] = IndexEntry(view_id=view_id, node_id=group.id)
        destination.insert(slot, group.id)
        for member in members:
            self._detach(member)
            member.parent_id = group.id
            group.children.append(member.id)
        self._reassign(group.id, depth, view_id)
        self._changed()
        return group

    def add_node_to_group(self, node_id: str, group_id: str) -> Node:
        """Append a node as the last member of a group."""
        group = self._require_node(group_id)
        if not group.is_group:
            raise NotAGroupError(group_id)
        return self.move_node(node_id, group_id, None)

    def remove_node_from_group(self, node_id: str) -> Node:
        """Take a node out of its group and place it right after the group."""
        node = self._require_node(node_id)
        group = self._state.nodes.get(node.parent_id) if node.parent_id else None
        if group is None or not group.is_group:
            raise NotAGroupError(node.parent_id or node_id)
        siblings = self._sibling_list(group)
        return self.move_node(node_id, group.parent_id, siblings.index(group.id) + 1)

    def dissolve_group(self, group_id: str) -> list[str]:
        """Drop a group node; its members take its place. Returns the member ids."""
        group = self._require_node(group_id)
        if not group.is_group:
            raise NotAGroupError(group_id)
        members = list(group.children)
        self.remove_node(group_id, ChildBehavior.PROMOTE)
        return members

    def update_group(
        self, group_id: str, *, name: str | None = None, color: str | None = None
    ) -> Node:
        group = self._require_node(group_id)
        if group.group_info is None:
            raise NotAGroupError(group_id)
        if name:
            group.group_info.name = name
        if color:
            group.group_info.color = color
        self._changed()
        return group

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def create_view(
        self,
        name: str,
        color: str = DEFAULT_VIEW_COLOR,
        icon: str | None = None,
        *,
        view_id: str | None = None,
    ) -> View:
        view_id = view_id or f"view-{uuid4().hex[:12]}"
        if view_id in self._state.views:
            raise ViewExistsError(view_id)
        view = View(id=view_id, name=name, color=color, icon=icon)
        self._state.views[view_id] = view
        self._state.view_order.append(view_id)
        self._changed()
        return view

    def delete_view(self, view_id: str) -> str:
        """Delete a view, moving its subtrees to the fallback view.

        Deleting the current view selects the first remaining view, or a
        fresh default view when none remains. Returns the fallback view id.
        """
        view = self._require_view(view_id)
        remaining = [v for v in self._state.view_order if v != view_id]
        if self._state.current_view_id != view_id:
            fallback_id = self._state.current_view_id
        elif remaining:
            fallback_id = remaining[0]
        else:
            fallback_id = self._install_default_view(avoid=view_id).id
        fallback = self._state.views[fallback_id]

        for root_id in view.root_node_ids:
            fallback.root_node_ids.append(root_id)
            self._reassign(root_id, 0, fallback_id)
        del self._state.views[view_id]
        self._state.view_order.remove(view_id)
        if self._state.current_view_id == view_id:
            self._state.current_view_id = fallback_id
        self._changed()
        return fallback_id

    def switch_view(self, view_id: str) -> View:
        view = self._require_view(view_id)
        self._state.current_view_id = view_id
        self._changed()
        return view

    def update_view(self, view_id: str, patch: ViewPatch | dict) -> View:
        """Apply the fields present in ``patch``. Name and color cannot be cleared."""
        view = self._require_view(view_id)
        if isinstance(patch, dict):
            patch = ViewPatch.model_validate(patch)
        for field_name in patch.model_fields_set:
            value = getattr(patch, field_name)
            if value is None and field_name != "icon":
                continue
            setattr(view, field_name, value)
        self._changed()
        return view

    def reorder_view(self, view_id: str, new_index: int) -> list[str]:
        self._require_view(view_id)
        order = self._state.view_order
        order.remove(view_id)
        order.insert(max(0, min(new_index, len(order))), view_id)
        self._changed()
        return list(order)

    # ------------------------------------------------------------------
    # Pinned tabs
    # ------------------------------------------------------------------

    def pin_tab(self, ref: int) -> list[int]:
        """Move a tab into the pinned strip; a tree node for it is removed (promote)."""
        if ref < 0:
            raise ValueError("Group nodes cannot be pinned")
        if ref in self._state.pinned_refs:
            return self.pinned_refs
        node = self.get_node_by_ref(ref)
        if node is not None:
            self.remove_node(node.id, ChildBehavior.PROMOTE)
        self._state.pinned_refs.append(ref)
        self._changed()
        return self.pinned_refs

    def unpin_tab(self, ref: int, view_id: str | None = None) -> Node:
        """Return a pinned tab to the tree as the last root of a view."""
        if ref not in self._state.pinned_refs:
            raise NodeNotFoundError(f"ref:{ref}")
        view_id = view_id or self._state.current_view_id
        self._require_view(view_id)
        self._state.pinned_refs.remove(ref)
        return self.add_node(ref, None, view_id, InsertionHint.END)

    def reorder_pinned(self, ref: int, insert_index: int) -> list[int]:
        """Move a pinned tab to an insertion index counted on the current strip."""
        pinned = self._state.pinned_refs
        if ref not in pinned:
            raise NodeNotFoundError(f"ref:{ref}")
        old_index = pinned.index(ref)
        if insert_index > old_index:
            insert_index -= 1
        pinned.remove(ref)
        pinned.insert(max(0, min(insert_index, len(pinned))), ref)
        self._changed()
        return self.pinned_refs

    def remove_pinned(self, ref: int) -> bool:
        """Forget a pinned tab the host closed. False if it was not pinned."""
        if ref not in self._state.pinned_refs:
            return False
        self._state.pinned_refs.remove(ref)
        self._changed()
        return True

    def reset(self) -> None:
        """Clear the window down to a single empty default view."""
        s = self._state
        s.nodes.clear()
        s.index.clear()
        s.views.clear()
        s.view_order.clear()
        s.pinned_refs.clear()
        s.next_group_ref = -1
        self._install_default_view()
        self._changed()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()

    def _require_node(self, node_id: str) -> Node:
        node = self._state.nodes.get(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def _require_view(self, view_id: str) -> View:
        view = self._state.views.get(view_id)
        if view is None:
            raise ViewNotFoundError(view_id)
        return view

    def _sibling_list(self, node: Node) -> list[str]:
        """The list holding ``node``: its parent's children or its view's roots."""
        if node.parent_id is None:
            return self._state.views[node.view_id].root_node_ids
        return self._state.nodes[node.parent_id].children

    def _detach(self, node: Node) -> None:
        self._sibling_list(node).remove(node.id)

    def _walk(self, node_id: str) -> Iterator[str]:
        """Pre-order ids of a subtree. Safe against corrupted cyclic links."""
        visited: set[str] = set()
        stack = [node_id]
        while stack:
            current = stack.pop()
            if current in visited or current not in self._state.nodes:
                continue
            visited.add(current)
            yield current
            stack.extend(reversed(self._state.nodes[current].children))

    def _ancestors(self, node_id: str) -> Iterator[str]:
        """Parent, grandparent, ... of a node. Stops on a repeated id."""
        visited: set[str] = set()
        node = self._state.nodes.get(node_id)
        while node is not None and node.parent_id is not None:
            if node.parent_id in visited:
                return
            visited.add(node.parent_id)
            yield node.parent_id
            node = self._state.nodes.get(node.parent_id)

    def _reassign(self, node_id: str, depth: int, view_id: str) -> None:
        """Top-down pass setting depth and view for a subtree, keeping the index in step."""
        stack = [(node_id, depth)]
        while stack:
            current_id, current_depth = stack.pop()
            node = self._state.nodes[current_id]
            node.depth = current_depth
            if node.view_id != view_id:
                node.view_id = view_id
                self._state.index[node.external_ref] = IndexEntry(view_id=view_id, node_id=node.id)
            stack.extend((child_id, current_depth + 1) for child_id in node.children)

    def allocate_group_ref(self) -> int:
        """Reserve the next negative sentinel ref for a group node."""
        ref = self._state.next_group_ref
        while ref in self._state.index:
            ref -= 1
        self._state.next_group_ref = ref - 1
        return ref

    def _install_default_view(self, avoid: str | None = None) -> View:
        view_id = DEFAULT_VIEW_ID
        if view_id in self._state.views or view_id == avoid:
            view_id = f"view-{uuid4().hex[:12]}"
        view = View(id=view_id, name=DEFAULT_VIEW_NAME)
        self._state.views[view_id] = view
        self._state.view_order.append(view_id)
        if self._state.current_view_id not in self._state.views:
            self._state.current_view_id = view_id
        return view

    def _repair(self) -> None:
        """Make a loaded state satisfy every invariant.

        Stored sibling order is kept where it is consistent; links that do
        not point back are dropped, nodes caught on a parent cycle become
        roots, then depth, view membership and the index are re-derived.
        """
        s = self._state
        s.view_order = [v for v in dict.fromkeys(s.view_order) if v in s.views]
        s.view_order.extend(v for v in s.views if v not in s.view_order)
        if not s.views:
            self._install_default_view()
        if s.current_view_id not in s.views:
            s.current_view_id = s.view_order[0]

        for node in s.nodes.values():
            if node.view_id not in s.views:
                node.view_id = s.current_view_id
            if node.parent_id is not None and node.parent_id not in s.nodes:
                node.parent_id = None

        claimed: set[str] = set()
        for node in s.nodes.values():
            kept: list[str] = []
            for child_id in node.children:
                child = s.nodes.get(child_id)
                if child is not None and child.parent_id == node.id and child_id not in claimed:
                    kept.append(child_id)
                    claimed.add(child_id)
            node.children = kept
        for node in s.nodes.values():
            if node.parent_id is not None and node.id not in claimed:
                s.nodes[node.parent_id].children.append(node.id)
                claimed.add(node.id)

        for view in s.views.values():
            view.root_node_ids = [
                node_id
                for node_id in dict.fromkeys(view.root_node_ids)
                if node_id in s.nodes
                and s.nodes[node_id].parent_id is None
                and s.nodes[node_id].view_id == view.id
            ]
        for node in s.nodes.values():
            roots = s.views[node.view_id].root_node_ids
            if node.parent_id is None and node.id not in roots:
                roots.append(node.id)

        while True:
            reached: set[str] = set()
            for view in s.views.values():
                for root_id in view.root_node_ids:
                    reached.update(self._walk(root_id))
            stray_id = next((node_id for node_id in s.nodes if node_id not in reached), None)
            if stray_id is None:
                break
            stray = s.nodes[stray_id]
            logger.warning("Node %s sits on a parent cycle, making it a root", stray_id)
            s.nodes[stray.parent_id].children.remove(stray_id)
            stray.parent_id = None
            s.views[stray.view_id].root_node_ids.append(stray_id)

        s.index.clear()
        for view in s.views.values():
            for root_id in view.root_node_ids:
                for node_id in self._walk(root_id):
                    node = s.nodes[node_id]
                    node.view_id = view.id
                    s.index[node.external_ref] = IndexEntry(view_id=view.id, node_id=node_id)
                self._reassign(root_id, 0, view.id)

        s.pinned_refs = [ref for ref in dict.fromkeys(s.pinned_refs) if ref not in s.index]
        lowest = min((ref for ref in s.index if ref < 0), default=0)
        s.next_group_ref = min(s.next_group_ref, lowest - 1)


class NodeNotFoundError(Exception):
    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"Node not found: {node_id}")


class ViewNotFoundError(Exception):
    def __init__(self, view_id: str) -> None:
        self.view_id = view_id
        super().__init__(f"View not found: {view_id}")


class ViewExistsError(Exception):
    def __init__(self, view_id: str) -> None:
        self.view_id = view_id
        super().__init__(f"View already exists: {view_id}")


class InvalidParentError(Exception):
    def __init__(self, parent_id: str) -> None:
        self.parent_id = parent_id
        super().__init__(f"Invalid parent node: {parent_id}")


class CycleDetectedError(Exception):
    def __init__(self, node_id: str, target_parent_id: str) -> None:
        self.node_id = node_id
        self.target_parent_id = target_parent_id
        super().__init__(
            f"Moving {node_id} under {target_parent_id} would make it its own ancestor"
        )


class NotAGroupError(Exception):
    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"Not a group node: {node_id}")


class DuplicateReferenceError(Exception):
    def __init__(self, ref: int) -> None:
        self.ref = ref
        super().__init__(f"Tab reference already in tree: {ref}")


class EmptyGroupError(Exception):
    def __init__(self) -> None:
        super().__init__("No nodes specified for grouping")
