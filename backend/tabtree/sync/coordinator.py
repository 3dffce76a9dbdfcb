"""Sync coordinator: applies host tab lifecycle events to the tree engines.

Each window moves UNINITIALIZED -> SYNCING -> LIVE. The first observation
pulls the host's full tab list and reconciles the (possibly persisted)
tree against it. Events that arrive before reconciliation finishes are
queued and replayed in arrival order, so the live stream and the initial
load never race on the same node. The host's event guarantees are weak:
duplicates and events about unknown tabs are absorbed, not reported.
"""

import logging
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

from pydantic import BaseModel, ValidationError

from tabtree.models import (
    ChildBehavior,
    HostEventEnvelope,
    HostTab,
    InsertionHint,
    TabActivatedPayload,
    TabAttachedPayload,
    TabCreatedPayload,
    TabDetachedPayload,
    TabMovedPayload,
    TabRemovedPayload,
    TabReplacedPayload,
    UserSettings,
)
from tabtree.sync.host import HostTabPlatform, HostUnavailableError
from tabtree.trees.engine import (
    DuplicateReferenceError,
    InvalidParentError,
    NodeNotFoundError,
    TreeStateEngine,
    ViewNotFoundError,
)
from tabtree.trees.registry import TreeRegistry

logger = logging.getLogger(__name__)

_SEEN_EVENT_LIMIT = 1024


class SyncState(StrEnum):
    UNINITIALIZED = "uninitialized"
    SYNCING = "syncing"
    LIVE = "live"


@dataclass
class WindowSync:
    state: SyncState = SyncState.UNINITIALIZED
    queue: list[HostEventEnvelope] = field(default_factory=list)
    seen_event_ids: OrderedDict[str, None] = field(default_factory=OrderedDict)
    last_active_ref: int | None = None
    unread_refs: set[int] = field(default_factory=set)


class SyncCoordinator:
    def __init__(
        self,
        registry: TreeRegistry,
        host: HostTabPlatform,
        settings: UserSettings | None = None,
    ) -> None:
        self._registry = registry
        self._host = host
        self.settings = settings or UserSettings()
        self._windows: dict[int, WindowSync] = {}
        self._handlers: dict[
            str, Callable[[TreeStateEngine, WindowSync, BaseModel], bool]
        ] = {
            "TabCreated": self._handle_created,
            "TabRemoved": self._handle_removed,
            "TabActivated": self._handle_activated,
            "TabMoved": self._handle_moved,
            "TabAttached": self._handle_attached,
            "TabDetached": self._handle_detached,
            "TabReplaced": self._handle_replaced,
        }

    def state_of(self, window_id: int) -> SyncState:
        return self._window(window_id).state

    def queued(self, window_id: int) -> int:
        return len(self._window(window_id).queue)

    def last_active_ref(self, window_id: int) -> int | None:
        return self._window(window_id).last_active_ref

    def unread_refs(self, window_id: int) -> set[int]:
        return set(self._window(window_id).unread_refs)

    def forget_window(self, window_id: int) -> None:
        """Drop all sync bookkeeping and the tree of a closed window."""
        self._windows.pop(window_id, None)
        self._registry.remove(window_id)

    async def observe_window(self, window_id: int) -> SyncState:
        """Reconcile a window against the host, then replay queued events.

        A host failure returns the window to UNINITIALIZED with its queue
        intact, ready for another observation.
        """
        window = self._window(window_id)
        if window.state is not SyncState.UNINITIALIZED:
            return window.state
        window.state = SyncState.SYNCING
        try:
            tabs = await self._host.query_tabs(window_id)
        except (HostUnavailableError, OSError) as e:
            logger.warning("Could not enumerate tabs of window %d: %s", window_id, e)
            window.state = SyncState.UNINITIALIZED
            return window.state

        engine = self._registry.get_or_create(window_id)
        self._reconcile(engine, window, tabs)
        while window.queue:
            envelope = window.queue.pop(0)
            try:
                self._apply(engine, window, envelope)
            except Exception:
                # one broken event must not hold the window in SYNCING
                logger.exception(
                    "Replay of %s event %s failed", envelope.event_type, envelope.event_id
                )
        window.state = SyncState.LIVE
        return window.state

    def handle_event(self, envelope: HostEventEnvelope) -> bool:
        """Apply (or queue) one host event. Returns False for ignored events."""
        window = self._window(envelope.window_id)
        if envelope.event_id in window.seen_event_ids:
            logger.debug("Ignoring duplicate event %s", envelope.event_id)
            return False
        window.seen_event_ids[envelope.event_id] = None
        if len(window.seen_event_ids) > _SEEN_EVENT_LIMIT:
            window.seen_event_ids.popitem(last=False)

        if window.state is not SyncState.LIVE:
            window.queue.append(envelope)
            return True
        engine = self._registry.get_or_create(envelope.window_id)
        return self._apply(engine, window, envelope)

    # -- Internal --

    def _window(self, window_id: int) -> WindowSync:
        window = self._windows.get(window_id)
        if window is None:
            window = WindowSync()
            self._windows[window_id] = window
        return window

    def _reconcile(
        self, engine: TreeStateEngine, window: WindowSync, tabs: list[HostTab]
    ) -> None:
        host_refs = {tab.tab_id for tab in tabs}
        for ref in engine.refs():
            if ref >= 0 and ref not in host_refs:
                node = engine.get_node_by_ref(ref)
                if node is not None:
                    engine.remove_node(node.id, ChildBehavior.CASCADE)
        for ref in engine.pinned_refs:
            if ref not in host_refs:
                engine.remove_pinned(ref)

        pinned_refs = set(engine.pinned_refs)
        for tab in sorted(tabs, key=lambda t: t.index):
            if tab.pinned:
                engine.pin_tab(tab.tab_id)
            elif tab.tab_id in pinned_refs:
                engine.unpin_tab(tab.tab_id)
            elif not engine.has_ref(tab.tab_id):
                engine.add_node(tab.tab_id, None, engine.current_view_id, InsertionHint.END)
            if tab.active:
                window.last_active_ref = tab.tab_id

    def _apply(
        self, engine: TreeStateEngine, window: WindowSync, envelope: HostEventEnvelope
    ) -> bool:
        try:
            payload = envelope.typed_payload()
        except (KeyError, ValidationError):
            logger.debug("Ignoring malformed %s event %s", envelope.event_type, envelope.event_id)
            return False
        try:
            return self._handlers[envelope.event_type](engine, window, payload)
        except (
            DuplicateReferenceError,
            InvalidParentError,
            NodeNotFoundError,
            ViewNotFoundError,
            ValueError,
        ) as e:
            logger.debug("Ignoring %s event %s: %s", envelope.event_type, envelope.event_id, e)
            return False

    def _handle_created(
        self, engine: TreeStateEngine, window: WindowSync, payload: TabCreatedPayload
    ) -> bool:
        tab = payload.tab
        if engine.has_ref(tab.tab_id) or tab.tab_id in engine.pinned_refs:
            logger.debug("Tab %d already tracked", tab.tab_id)
            return False
        if tab.pinned:
            engine.pin_tab(tab.tab_id)
        elif payload.cause == "duplicate":
            self._place_duplicate(engine, payload)
        else:
            if payload.cause == "link":
                hint = self.settings.new_tab_position_from_link
                reference_ref = tab.opener_tab_id
            else:
                hint = self.settings.new_tab_position_manual
                reference_ref = (
                    window.last_active_ref
                    if hint is InsertionHint.CHILD or tab.opener_tab_id is None
                    else tab.opener_tab_id
                )
            reference = (
                engine.get_node_by_ref(reference_ref)
                if reference_ref is not None and hint is not InsertionHint.END
                else None
            )
            if reference is None:
                engine.add_node(tab.tab_id, None, engine.current_view_id, InsertionHint.END)
            else:
                engine.add_node(tab.tab_id, reference.id, reference.view_id, hint)

        if tab.active:
            window.last_active_ref = tab.tab_id
        else:
            window.unread_refs.add(tab.tab_id)
        return True

    def _place_duplicate(self, engine: TreeStateEngine, payload: TabCreatedPayload) -> None:
        """A duplicate sits right after its source, or at the end when so configured."""
        tab = payload.tab
        source_ref = payload.source_tab_id if payload.source_tab_id is not None else tab.opener_tab_id
        source = engine.get_node_by_ref(source_ref) if source_ref is not None else None
        if self.settings.duplicate_tab_position == "sibling" and source is not None:
            engine.add_node(tab.tab_id, source.id, source.view_id, InsertionHint.SIBLING)
        else:
            engine.add_node(tab.tab_id, None, engine.current_view_id, InsertionHint.END)

    def _handle_removed(
        self, engine: TreeStateEngine, window: WindowSync, payload: TabRemovedPayload
    ) -> bool:
        window.unread_refs.discard(payload.tab_id)
        if window.last_active_ref == payload.tab_id:
            window.last_active_ref = None
        if engine.remove_pinned(payload.tab_id):
            return True
        node = engine.get_node_by_ref(payload.tab_id)
        if node is None or node.is_group:
            logger.debug("Removal of untracked tab %d", payload.tab_id)
            return False
        engine.remove_node(node.id, self.settings.child_behavior)
        return True

    def _handle_activated(
        self, engine: TreeStateEngine, window: WindowSync, payload: TabActivatedPayload
    ) -> bool:
        window.last_active_ref = payload.tab_id
        window.unread_refs.discard(payload.tab_id)
        return True

    def _handle_moved(
        self, engine: TreeStateEngine, window: WindowSync, payload: TabMovedPayload
    ) -> bool:
        # host strip order does not drive tree structure
        return engine.has_ref(payload.tab_id) or payload.tab_id in engine.pinned_refs

    def _handle_attached(
        self, engine: TreeStateEngine, window: WindowSync, payload: TabAttachedPayload
    ) -> bool:
        if engine.has_ref(payload.tab_id) or payload.tab_id in engine.pinned_refs:
            return False
        if payload.pinned:
            engine.pin_tab(payload.tab_id)
        else:
            engine.add_node(payload.tab_id, None, engine.current_view_id, InsertionHint.END)
        return True

    def _handle_detached(
        self, engine: TreeStateEngine, window: WindowSync, payload: TabDetachedPayload
    ) -> bool:
        window.unread_refs.discard(payload.tab_id)
        if engine.remove_pinned(payload.tab_id):
            return True
        node = engine.get_node_by_ref(payload.tab_id)
        if node is None:
            return False
        engine.remove_node(node.id, ChildBehavior.PROMOTE)
        return True

    def _handle_replaced(
        self, engine: TreeStateEngine, window: WindowSync, payload: TabReplacedPayload
    ) -> bool:
        engine.replace_external_ref(payload.removed_tab_id, payload.added_tab_id)
        if window.last_active_ref == payload.removed_tab_id:
            window.last_active_ref = payload.added_tab_id
        if payload.removed_tab_id in window.unread_refs:
            window.unread_refs.discard(payload.removed_tab_id)
            window.unread_refs.add(payload.added_tab_id)
        return True
