"""Shared test helpers: tree builders, host events and geometry."""

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from tabtree.drop.resolver import NodeBox
from tabtree.models import HostEventEnvelope, HostTab, InsertionHint, Node
from tabtree.storage.store import StorageError
from tabtree.sync.host import HostTabPlatform, HostUnavailableError
from tabtree.trees.engine import TreeStateEngine

ROW_HEIGHT = 20.0


def add_roots(engine: TreeStateEngine, *refs: int, view_id: str | None = None) -> list[Node]:
    """Append one root per ref to a view (the current view by default)."""
    view_id = view_id or engine.current_view_id
    return [engine.add_node(ref, None, view_id, InsertionHint.END) for ref in refs]


def add_child(engine: TreeStateEngine, parent: Node, ref: int) -> Node:
    return engine.add_node(ref, parent.id, parent.view_id, InsertionHint.CHILD)


def outline(engine: TreeStateEngine, view_id: str | None = None) -> str:
    """Compact rendering of a view by ref: ``1[3,4[5]],2``."""

    def render(node_ids: list[str]) -> str:
        parts = []
        for node_id in node_ids:
            node = engine.get_node(node_id)
            label = str(node.external_ref)
            if node.children:
                label += f"[{render(node.children)}]"
            parts.append(label)
        return ",".join(parts)

    return render(engine.get_view(view_id or engine.current_view_id).root_node_ids)


def refs_of(nodes: list[Node]) -> list[int]:
    return [node.external_ref for node in nodes]


def boxes_for(
    engine: TreeStateEngine,
    view_id: str | None = None,
    *,
    top: float = 0.0,
    height: float = ROW_HEIGHT,
) -> list[NodeBox]:
    """Stacked row boxes for the visible rows of a view, as a renderer would lay them out."""
    rows = engine.flatten(view_id or engine.current_view_id)
    return [
        NodeBox(
            node_id=row.id,
            start=top + i * height,
            end=top + (i + 1) * height,
            depth=row.depth,
        )
        for i, row in enumerate(rows)
    ]


def make_boxes(*specs: tuple[str, int], top: float = 0.0, height: float = ROW_HEIGHT) -> list[NodeBox]:
    """Boxes from (node_id, depth) pairs, stacked without gaps."""
    return [
        NodeBox(node_id=node_id, start=top + i * height, end=top + (i + 1) * height, depth=depth)
        for i, (node_id, depth) in enumerate(specs)
    ]


def make_tab(tab_id: int, window_id: int = 1, **overrides: Any) -> HostTab:
    return HostTab(tab_id=tab_id, window_id=window_id, index=overrides.pop("index", tab_id), **overrides)


def make_event(
    event_type: str,
    window_id: int = 1,
    event_id: str | None = None,
    **payload: Any,
) -> HostEventEnvelope:
    """Create a HostEventEnvelope for testing. Payload is passed through unvalidated."""
    return HostEventEnvelope(
        event_id=event_id or str(uuid4()),
        window_id=window_id,
        timestamp=datetime.now(UTC),
        event_type=event_type,
        payload=payload,
    )


def created_event(
    tab_id: int,
    window_id: int = 1,
    cause: str = "manual",
    source_tab_id: int | None = None,
    **tab_fields: Any,
) -> HostEventEnvelope:
    tab = make_tab(tab_id, window_id, **tab_fields)
    return make_event(
        "TabCreated", window_id, tab=tab.model_dump(), cause=cause, source_tab_id=source_tab_id
    )


class ScriptedHost(HostTabPlatform):
    """Host double: fixed tab lists, optional failure, optional gate to hold a query open."""

    def __init__(self, tabs: dict[int, list[HostTab]] | None = None) -> None:
        self.tabs = tabs or {}
        self.fail = False
        self.gate = None
        self.queries = 0

    async def query_tabs(self, window_id: int) -> list[HostTab]:
        self.queries += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise HostUnavailableError(window_id)
        return list(self.tabs.get(window_id, []))


class FlakyStore:
    """KeyValueStore double whose first ``failures`` writes raise StorageError."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.documents: dict[str, dict] = {}
        self.attempts = 0

    async def get(self, key: str) -> dict | None:
        return self.documents.get(key)

    async def set(self, key: str, document: dict) -> None:
        self.attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise StorageError(key, "disk unavailable")
        self.documents[key] = document

    async def remove(self, key: str) -> bool:
        return self.documents.pop(key, None) is not None
