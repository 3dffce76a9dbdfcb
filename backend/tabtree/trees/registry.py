"""One engine per host window, and conversion to and from the stored document."""

from collections.abc import Callable

from tabtree.models import TreeStateDocument
from tabtree.trees.engine import TreeStateEngine


class TreeRegistry:
    def __init__(self, on_change: Callable[[], None] | None = None) -> None:
        self._engines: dict[int, TreeStateEngine] = {}
        self._on_change = on_change

    def set_on_change(self, on_change: Callable[[], None] | None) -> None:
        self._on_change = on_change
        for engine in self._engines.values():
            engine.set_on_change(on_change)

    def get(self, window_id: int) -> TreeStateEngine | None:
        return self._engines.get(window_id)

    def get_or_create(self, window_id: int) -> TreeStateEngine:
        engine = self._engines.get(window_id)
        if engine is None:
            engine = TreeStateEngine.for_window(window_id, self._on_change)
            self._engines[window_id] = engine
        return engine

    def remove(self, window_id: int) -> bool:
        """Forget a closed window. Returns False if it was unknown."""
        if self._engines.pop(window_id, None) is None:
            return False
        if self._on_change is not None:
            self._on_change()
        return True

    def window_ids(self) -> list[int]:
        return list(self._engines)

    def to_document(self) -> TreeStateDocument:
        """Copy of every window's state, safe to serialize while mutations continue."""
        return TreeStateDocument(
            windows={
                window_id: engine.state.model_copy(deep=True)
                for window_id, engine in self._engines.items()
            }
        )

    def load_document(self, document: TreeStateDocument) -> None:
        """Replace all engines with the windows of a stored document."""
        self._engines = {
            window_id: TreeStateEngine.from_state(state, self._on_change)
            for window_id, state in document.windows.items()
        }
