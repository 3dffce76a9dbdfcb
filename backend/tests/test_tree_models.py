"""Shared models: event envelopes, settings validation, the stored document."""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from tabtree.models import (
    EVENT_TYPES,
    HostEventEnvelope,
    Node,
    TabCreatedPayload,
    TabRemovedPayload,
    TreeStateDocument,
    UserSettings,
)
from tests.fixtures import add_child, add_roots, created_event, make_event


class TestEventEnvelope:
    def test_every_event_type_has_a_payload(self):
        assert set(EVENT_TYPES) == {
            "TabCreated",
            "TabRemoved",
            "TabActivated",
            "TabMoved",
            "TabAttached",
            "TabDetached",
            "TabReplaced",
        }

    def test_typed_payload(self):
        payload = created_event(4, cause="link", opener_tab_id=1).typed_payload()
        assert isinstance(payload, TabCreatedPayload)
        assert payload.tab.opener_tab_id == 1
        assert payload.cause == "link"

    def test_defaults_filled(self):
        payload = make_event("TabRemoved", tab_id=3).typed_payload()
        assert isinstance(payload, TabRemovedPayload)
        assert payload.is_window_closing is False

    def test_unknown_type(self):
        with pytest.raises(KeyError):
            make_event("TabZoomed", tab_id=1).typed_payload()

    def test_invalid_payload(self):
        with pytest.raises(ValidationError):
            make_event("TabMoved", tab_id=1).typed_payload()

    def test_negative_tab_id_invalid(self):
        with pytest.raises(ValidationError):
            make_event("TabActivated", tab_id=-2).typed_payload()
        with pytest.raises(ValidationError):
            make_event("TabReplaced", added_tab_id=-1, removed_tab_id=3).typed_payload()

    def test_parse_from_json(self):
        envelope = HostEventEnvelope.model_validate_json(
            '{"event_id": "e1", "window_id": 2, "timestamp": "2024-05-01T10:00:00Z",'
            ' "event_type": "TabActivated", "payload": {"tab_id": 7}}'
        )
        assert envelope.timestamp == datetime(2024, 5, 1, 10, tzinfo=UTC)
        assert envelope.typed_payload().tab_id == 7


class TestUserSettings:
    def test_gap_ratio_bounds(self):
        UserSettings(gap_threshold_ratio=0.0)
        with pytest.raises(ValidationError):
            UserSettings(gap_threshold_ratio=0.5)
        with pytest.raises(ValidationError):
            UserSettings(gap_threshold_ratio=-0.1)

    def test_unknown_enum_value(self):
        with pytest.raises(ValidationError):
            UserSettings(child_behavior="explode")

    def test_snapshot_and_duplicate_settings(self):
        settings = UserSettings()
        assert settings.auto_snapshot_interval_minutes == 0
        assert settings.max_snapshots == 10
        assert settings.duplicate_tab_position == "sibling"
        with pytest.raises(ValidationError):
            UserSettings(duplicate_tab_position="child")
        with pytest.raises(ValidationError):
            UserSettings(max_snapshots=0)
        with pytest.raises(ValidationError):
            UserSettings(auto_snapshot_interval_minutes=-1)


class TestStoredDocument:
    def test_node_group_flag(self):
        assert Node(id="a", external_ref=-1, view_id="v", group_info={"name": "G"}).is_group
        assert not Node(id="b", external_ref=3, view_id="v").is_group

    def test_json_round_trip_keeps_int_keys(self, engine):
        one, _ = add_roots(engine, 1, 2)
        add_child(engine, one, 3)
        engine.create_group_from_nodes([one.id])
        document = TreeStateDocument(windows={1: engine.state})

        restored = TreeStateDocument.model_validate_json(document.model_dump_json())
        assert restored == document
        assert set(restored.windows[1].index) == {-1, 1, 2, 3}
