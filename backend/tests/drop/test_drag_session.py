"""Drag sessions: resolving pointer samples and committing to the engine."""

import pytest

from tabtree.drop.resolver import Bounds, DropKind, Pointer, indicator_position
from tabtree.drop.session import DragSession
from tests.fixtures import add_child, add_roots, boxes_for, outline


@pytest.fixture
def dragged_tree(engine):
    """R[X,Y], S, T (refs 1[2,3],4,5) laid out in 20 unit rows from y=0."""
    r, _, _ = add_roots(engine, 1, 4, 5)
    add_child(engine, r, 2)
    add_child(engine, r, 3)
    return engine, r


class TestDragSession:
    def test_drop_in_gap_after_sibling(self, dragged_tree):
        engine, r = dragged_tree
        boxes = boxes_for(engine)
        session = DragSession(engine)
        session.start(r.id)
        target = session.update(Pointer(y=78), boxes)
        assert (target.kind, target.gap_index) == (DropKind.IN_GAP, 1)
        assert indicator_position(target, boxes) == 80
        moved = session.commit()
        assert moved is r
        assert outline(engine) == "4,1[2,3],5"
        assert engine.check_invariants() == []

    def test_drop_on_node_nests_as_last_child(self, dragged_tree):
        engine, r = dragged_tree
        session = DragSession(engine)
        session.start(r.id)
        target = session.update(Pointer(y=90), boxes_for(engine))
        assert target.kind is DropKind.ON_NODE
        session.commit()
        assert outline(engine) == "4,5[1[2,3]]"

    def test_horizontal_offset_picks_depth(self, dragged_tree):
        engine, r = dragged_tree
        session = DragSession(engine)
        session.start(r.id)
        session.update(Pointer(y=78), boxes_for(engine))
        assert session.depth_bounds() == (0, 1)
        session.commit(target_depth=1)
        assert outline(engine) == "4[1[2,3]],5"

    def test_drop_over_own_subtree_changes_nothing(self, dragged_tree):
        engine, r = dragged_tree
        before = outline(engine)
        session = DragSession(engine)
        session.start(r.id)
        session.update(Pointer(y=30), boxes_for(engine))
        session.commit()
        assert outline(engine) == before

    def test_no_target_commit_is_noop(self, dragged_tree):
        engine, r = dragged_tree
        before = engine.state.model_dump_json()
        session = DragSession(engine)
        session.start(r.id)
        target = session.update(Pointer(y=500), boxes_for(engine), Bounds(start=0, end=100))
        assert target.kind is DropKind.NONE
        assert session.commit() is None
        assert engine.state.model_dump_json() == before

    def test_cancel_leaves_tree_untouched(self, dragged_tree):
        engine, r = dragged_tree
        before = engine.state.model_dump_json()
        session = DragSession(engine)
        session.start(r.id)
        session.update(Pointer(y=78), boxes_for(engine))
        session.cancel()
        assert not session.active
        assert session.commit() is None
        assert engine.state.model_dump_json() == before

    def test_update_without_start(self, engine):
        session = DragSession(engine)
        assert session.update(Pointer(y=5), []).kind is DropKind.NONE
        assert session.commit() is None

    def test_node_closed_mid_drag(self, dragged_tree):
        engine, r = dragged_tree
        session = DragSession(engine)
        session.start(r.id)
        session.update(Pointer(y=78), boxes_for(engine))
        engine.remove_node(r.id)
        assert session.commit() is None
        assert outline(engine) == "2,3,4,5"

    def test_target_closed_mid_drag(self, dragged_tree):
        engine, r = dragged_tree
        boxes = boxes_for(engine)
        session = DragSession(engine)
        session.start(r.id)
        session.update(Pointer(y=90), boxes)
        engine.remove_node(engine.get_node_by_ref(5).id)
        assert session.commit() is None
        assert outline(engine) == "1[2,3],4"
