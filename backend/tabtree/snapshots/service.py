"""Snapshot service: export a window's tree, restore it, keep saved snapshots.

Restores go through engine operations only, so every imported structure
satisfies the same invariants as a hand-built one. Depth is never read
from a snapshot. Entries with a bad parent index, or caught in a parent
cycle, are restored as roots and reported as warnings.
"""

import logging
import re
from datetime import UTC, datetime
from collections.abc import Callable
from typing import Literal
from uuid import uuid4

from tabtree.models import InsertionHint, UserSettings
from tabtree.snapshots.schemas import (
    SNAPSHOT_FORMAT_VERSION,
    ImportResult,
    SnapshotDocument,
    SnapshotSummary,
    SnapshotTab,
    SnapshotView,
    SnapshotWindow,
)
from tabtree.storage.store import KeyValueStore
from tabtree.trees.engine import DuplicateReferenceError, TreeStateEngine
from tabtree.trees.registry import TreeRegistry

logger = logging.getLogger(__name__)

SNAPSHOTS_KEY = "snapshots"


def export_snapshot(
    engine: TreeStateEngine, name: str = "", *, is_auto_save: bool = False
) -> SnapshotDocument:
    """Flatten a window into a snapshot: pinned tabs first, then each view in pre-order."""
    tabs: list[SnapshotTab] = []
    position: dict[str, int] = {}

    for ref in engine.pinned_refs:
        tabs.append(SnapshotTab(
            index=len(tabs),
            external_ref=ref,
            view_id=engine.current_view_id,
            pinned=True,
        ))

    views: list[SnapshotView] = []
    for view in engine.views():
        views.append(SnapshotView(id=view.id, name=view.name, color=view.color, icon=view.icon))
        for node in engine.flatten(view.id, visible_only=False):
            position[node.id] = len(tabs)
            tabs.append(SnapshotTab(
                index=len(tabs),
                external_ref=node.external_ref,
                parent_index=position[node.parent_id] if node.parent_id else None,
                view_id=view.id,
                is_expanded=node.is_expanded,
                group_info=node.group_info.model_copy() if node.group_info else None,
            ))

    return SnapshotDocument(
        snapshot_id=str(uuid4()),
        created_at=datetime.now(UTC),
        name=name,
        is_auto_save=is_auto_save,
        window=SnapshotWindow(current_view_id=engine.current_view_id, views=views, tabs=tabs),
    )


def import_snapshot(
    engine: TreeStateEngine,
    document: SnapshotDocument,
    mode: Literal["replace", "merge"] = "replace",
) -> ImportResult:
    """Restore a snapshot into a window.

    ``replace`` clears the window first and keeps view ids and group refs.
    ``merge`` adds to the existing tree: views are matched by id, then by
    name, tabs already present are skipped and groups get fresh refs.
    """
    result = ImportResult(mode=mode)
    window = document.window
    if document.format_version != SNAPSHOT_FORMAT_VERSION:
        result.warnings.append(f"Unknown snapshot format version {document.format_version}")

    if mode == "replace":
        engine.reset()
    view_map = _restore_views(engine, window.views, mode, result)

    by_index = {tab.index: tab for tab in window.tabs}
    parents = _resolve_parents(window.tabs, by_index, result)
    children: dict[int | None, list[SnapshotTab]] = {}
    for tab in sorted(window.tabs, key=lambda t: t.index):
        if not tab.pinned:
            children.setdefault(parents[tab.index], []).append(tab)

    for tab in sorted((t for t in window.tabs if t.pinned), key=lambda t: t.index):
        if tab.external_ref < 0:
            result.warnings.append(f"Entry {tab.index}: a group cannot be pinned")
            result.skipped += 1
            continue
        if mode == "merge" and _tracked(engine, tab.external_ref):
            result.skipped += 1
            continue
        engine.pin_tab(tab.external_ref)
        result.pinned_restored += 1

    # pre-order, so every parent exists before its children
    stack: list[tuple[SnapshotTab, str | None]] = [
        (tab, None) for tab in reversed(children.get(None, []))
    ]
    while stack:
        tab, parent_node_id = stack.pop()
        node_id = _restore_tab(engine, tab, parent_node_id, view_map, mode, result)
        stack.extend((child, node_id) for child in reversed(children.get(tab.index, [])))

    if mode == "replace" and window.current_view_id in view_map:
        engine.switch_view(view_map[window.current_view_id])
    return result


def snapshot_filename(document: SnapshotDocument) -> str:
    """Download name such as ``tabtree-snapshot-2024-05-01T10-30-00-auto-work.json``."""
    timestamp = document.created_at.strftime("%Y-%m-%dT%H-%M-%S")
    parts = ["tabtree-snapshot", timestamp]
    if document.is_auto_save:
        parts.append("auto")
    safe_name = re.sub(r"[^A-Za-z0-9_-]+", "-", document.name).strip("-")[:50]
    if safe_name:
        parts.append(safe_name)
    return "-".join(parts) + ".json"


def _tracked(engine: TreeStateEngine, ref: int) -> bool:
    return engine.has_ref(ref) or ref in engine.pinned_refs


def _restore_views(
    engine: TreeStateEngine,
    views: list[SnapshotView],
    mode: str,
    result: ImportResult,
) -> dict[str, str]:
    """Create or match the snapshot's views. Returns snapshot view id -> engine view id."""
    view_map: dict[str, str] = {}
    existing = {view.id: view for view in engine.views()}
    placeholder_ids = set(existing) if mode == "replace" else set()

    for view in views:
        if view.id in view_map:
            continue
        if mode == "replace":
            if view.id in existing:
                engine.update_view(view.id, {"name": view.name, "color": view.color, "icon": view.icon})
                placeholder_ids.discard(view.id)
            else:
                engine.create_view(view.name, view.color, view.icon, view_id=view.id)
                result.views_created += 1
            view_map[view.id] = view.id
            continue
        match = existing.get(view.id) or next(
            (v for v in existing.values() if v.name == view.name), None
        )
        if match is None:
            match = engine.create_view(view.name, view.color, view.icon)
            existing[match.id] = match
            result.views_created += 1
        view_map[view.id] = match.id

    # the empty default view left by reset() is dropped when the snapshot brings its own
    if views:
        for view_id in placeholder_ids:
            engine.delete_view(view_id)
    return view_map


def _resolve_parents(
    tabs: list[SnapshotTab],
    by_index: dict[int, SnapshotTab],
    result: ImportResult,
) -> dict[int, int | None]:
    parents: dict[int, int | None] = {}
    for tab in tabs:
        parent_index = tab.parent_index
        if parent_index is None:
            parents[tab.index] = None
            continue
        parent = by_index.get(parent_index)
        if parent is None or parent.pinned or parent_index == tab.index:
            result.warnings.append(f"Entry {tab.index}: invalid parent index {parent_index}, restored as root")
            logger.warning("Snapshot entry %d has invalid parent index %s", tab.index, parent_index)
            parent_index = None
        parents[tab.index] = parent_index

    # an entry is cut only when its own walk comes back to it, so a chain
    # leading into a cycle keeps its parents
    for tab in tabs:
        seen = {tab.index}
        current = parents.get(tab.index)
        while current is not None and current not in seen:
            seen.add(current)
            current = parents.get(current)
        if current == tab.index:
            result.warnings.append(f"Entry {tab.index}: parent cycle, restored as root")
            logger.warning("Snapshot entry %d sits on a parent cycle", tab.index)
            parents[tab.index] = None
    return parents


def _restore_tab(
    engine: TreeStateEngine,
    tab: SnapshotTab,
    parent_node_id: str | None,
    view_map: dict[str, str],
    mode: str,
    result: ImportResult,
) -> str | None:
    """Add one entry as a node. Returns its node id, or None when skipped."""
    ref = tab.external_ref
    if tab.group_info is not None and (mode == "merge" or ref >= 0):
        ref = engine.allocate_group_ref()
    elif _tracked(engine, ref):
        if mode == "replace":
            result.warnings.append(f"Entry {tab.index}: tab {ref} appears more than once")
        result.skipped += 1
        return None

    if parent_node_id is not None:
        view_id = engine.get_node(parent_node_id).view_id
    else:
        view_id = view_map.get(tab.view_id)
        if view_id is None:
            view_id = engine.current_view_id
            result.warnings.append(f"Entry {tab.index}: unknown view {tab.view_id}")

    try:
        node = engine.add_node(
            ref,
            parent_node_id,
            view_id,
            InsertionHint.CHILD,
            expanded=tab.is_expanded,
            group_info=tab.group_info.model_copy() if tab.group_info else None,
        )
    except DuplicateReferenceError:
        result.warnings.append(f"Entry {tab.index}: tab {ref} appears more than once")
        result.skipped += 1
        return None
    result.nodes_created += 1
    return node.id


class SnapshotService:
    """Saved snapshots kept in the key-value store, plus export/import per window."""

    def __init__(
        self,
        registry: TreeRegistry,
        store: KeyValueStore,
        settings: Callable[[], UserSettings] = UserSettings,
    ) -> None:
        self._registry = registry
        self._store = store
        self._settings = settings

    def export(self, window_id: int, name: str = "", *, is_auto_save: bool = False) -> SnapshotDocument:
        return export_snapshot(self._registry.get_or_create(window_id), name, is_auto_save=is_auto_save)

    def restore(
        self,
        window_id: int,
        document: SnapshotDocument,
        mode: Literal["replace", "merge"] = "replace",
    ) -> ImportResult:
        return import_snapshot(self._registry.get_or_create(window_id), document, mode)

    async def save(self, window_id: int, name: str = "", *, is_auto_save: bool = False) -> SnapshotDocument:
        """Export and store a snapshot. Only the newest ``max_snapshots`` auto-saves are kept."""
        document = self.export(window_id, name, is_auto_save=is_auto_save)
        saved = await self._load_all()
        saved.insert(0, document)
        auto_saves = [s for s in saved if s.is_auto_save]
        for stale in auto_saves[self._settings().max_snapshots:]:
            saved.remove(stale)
        await self._store_all(saved)
        return document

    async def list_snapshots(self) -> list[SnapshotSummary]:
        return [
            SnapshotSummary(
                snapshot_id=s.snapshot_id,
                name=s.name,
                created_at=s.created_at,
                is_auto_save=s.is_auto_save,
                tab_count=len(s.window.tabs),
            )
            for s in await self._load_all()
        ]

    async def get(self, snapshot_id: str) -> SnapshotDocument | None:
        return next((s for s in await self._load_all() if s.snapshot_id == snapshot_id), None)

    async def delete(self, snapshot_id: str) -> bool:
        saved = await self._load_all()
        kept = [s for s in saved if s.snapshot_id != snapshot_id]
        if len(kept) == len(saved):
            return False
        await self._store_all(kept)
        return True

    async def _load_all(self) -> list[SnapshotDocument]:
        raw = await self._store.get(SNAPSHOTS_KEY) or {}
        return [SnapshotDocument.model_validate(item) for item in raw.get("items", [])]

    async def _store_all(self, snapshots: list[SnapshotDocument]) -> None:
        await self._store.set(
            SNAPSHOTS_KEY, {"items": [s.model_dump(mode="json") for s in snapshots]}
        )
