"""Drop target resolution: geometry rules for rows, gaps and indicators.

Rows are 20 units tall, so with the default ratio each row has a 5 unit
gap band at its top and bottom edge.
"""

import pytest

from tabtree.drop.resolver import (
    Bounds,
    DropKind,
    NodeBox,
    Pointer,
    depth_range,
    horizontal_indicator_position,
    indicator_position,
    resolve_drop_target,
    resolve_horizontal_drop_target,
    target_depth,
)
from tests.fixtures import make_boxes


@pytest.fixture
def rows():
    return make_boxes(("a", 0), ("b", 1), ("c", 0))


def at(y: float) -> Pointer:
    return Pointer(x=0, y=y)


class TestResolveDropTarget:
    def test_empty_list_has_no_target(self):
        assert resolve_drop_target(at(10), []).kind is DropKind.NONE

    def test_above_first_row_is_gap_zero(self, rows):
        target = resolve_drop_target(at(-30), rows)
        assert target.kind is DropKind.IN_GAP
        assert target.gap_index == 0
        assert target.above_node_id is None
        assert target.below_node_id == "a"

    def test_top_band_of_row_is_gap_before_it(self, rows):
        target = resolve_drop_target(at(22), rows)
        assert (target.kind, target.gap_index) == (DropKind.IN_GAP, 1)
        assert (target.above_node_id, target.below_node_id) == ("a", "b")
        assert target.adjacent_depths == (0, 1)

    def test_bottom_band_of_row_is_gap_after_it(self, rows):
        target = resolve_drop_target(at(38), rows)
        assert (target.kind, target.gap_index) == (DropKind.IN_GAP, 2)
        assert target.adjacent_depths == (1, 0)

    def test_center_is_on_node(self, rows):
        target = resolve_drop_target(at(30), rows)
        assert target.kind is DropKind.ON_NODE
        assert target.node_id == "b"

    def test_band_edges(self, rows):
        assert resolve_drop_target(at(25), rows).kind is DropKind.ON_NODE
        assert resolve_drop_target(at(24.9), rows).kind is DropKind.IN_GAP
        assert resolve_drop_target(at(35), rows).kind is DropKind.IN_GAP

    def test_at_or_below_last_row_is_final_gap(self, rows):
        for y in (60, 400):
            target = resolve_drop_target(at(y), rows)
            assert (target.kind, target.gap_index) == (DropKind.IN_GAP, 3)
            assert target.above_node_id == "c"
            assert target.below_node_id is None

    def test_custom_ratio(self, rows):
        assert resolve_drop_target(at(28), rows, gap_ratio=0.45).kind is DropKind.IN_GAP
        assert resolve_drop_target(at(28), rows, gap_ratio=0.1).kind is DropKind.ON_NODE

    def test_outside_bounds_has_no_target(self, rows):
        bounds = Bounds(start=0, end=80)
        assert resolve_drop_target(at(100), rows, bounds=bounds).kind is DropKind.NONE
        assert resolve_drop_target(at(70), rows, bounds=bounds).gap_index == 3

    def test_dragged_rows_are_not_counted(self):
        rows = make_boxes(("a", 0), ("b", 0), ("b1", 1), ("d", 0))
        dragged = {"b", "b1"}
        target = resolve_drop_target(at(45), rows, dragged_ids=dragged)
        assert (target.kind, target.gap_index) == (DropKind.IN_GAP, 1)
        assert (target.above_node_id, target.below_node_id) == ("a", "d")
        on_d = resolve_drop_target(at(70), rows, dragged_ids=dragged)
        assert (on_d.kind, on_d.node_id) == (DropKind.ON_NODE, "d")

    def test_everything_dragged_has_no_target(self, rows):
        assert resolve_drop_target(at(10), rows, dragged_ids={"a", "b", "c"}).kind is DropKind.NONE


class TestIndicatorPosition:
    def test_between_rows(self, rows):
        target = resolve_drop_target(at(22), rows)
        assert indicator_position(target, rows) == 20

    def test_edges(self, rows):
        assert indicator_position(resolve_drop_target(at(-5), rows), rows) == 0
        assert indicator_position(resolve_drop_target(at(90), rows), rows) == 60

    def test_measured_on_pre_removal_boxes(self):
        rows = make_boxes(("a", 0), ("b", 0), ("b1", 1), ("d", 0))
        target = resolve_drop_target(at(45), rows, dragged_ids={"b", "b1"})
        assert indicator_position(target, rows) == 40

    def test_no_indicator_on_node(self, rows):
        assert indicator_position(resolve_drop_target(at(30), rows), rows) is None


class TestHorizontal:
    @pytest.fixture
    def strip(self):
        return [
            NodeBox(node_id="p1", start=0, end=100),
            NodeBox(node_id="p2", start=100, end=200),
        ]

    def test_insert_index_by_midpoint(self, strip):
        assert resolve_horizontal_drop_target(Pointer(x=30), strip) == 0
        assert resolve_horizontal_drop_target(Pointer(x=60), strip) == 1
        assert resolve_horizontal_drop_target(Pointer(x=140), strip) == 1
        assert resolve_horizontal_drop_target(Pointer(x=260), strip) == 2

    def test_empty_strip(self):
        assert resolve_horizontal_drop_target(Pointer(x=5), []) is None
        assert horizontal_indicator_position(0, []) is None

    def test_indicator(self, strip):
        assert horizontal_indicator_position(0, strip) == 0
        assert horizontal_indicator_position(1, strip) == 100
        assert horizontal_indicator_position(2, strip) == 200


class TestDepthHelpers:
    def test_depth_range(self):
        """Min is the row below, max one deeper than the row above."""
        assert depth_range(None, None) == (0, 0)
        assert depth_range(None, 0) == (0, 0)
        assert depth_range(2, 0) == (0, 3)
        assert depth_range(2, None) == (0, 3)
        assert depth_range(0, 1) == (1, 1)
        assert depth_range(1, 3) == (2, 2)

    def test_target_depth_from_offset(self):
        assert target_depth(45, 0, 20, 5) == 2
        assert target_depth(45, 0, 20, 1) == 1
        assert target_depth(-10, 0, 20, 3) == 0

    def test_target_depth_degenerate_inputs(self):
        assert target_depth(45, 0, 0, 3) == 0
        assert target_depth(45, 0, 20, -1) == 0
