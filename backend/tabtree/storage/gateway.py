"""Persistence gateway: debounced whole-document writes of the tree state.

The in-memory model is authoritative. Engines call ``mark_dirty`` after
every mutation; the gateway coalesces a burst of marks into one write of
the full document, retrying with exponential backoff. A write that keeps
failing is recorded and logged, and the document stays dirty so the next
mutation tries again.
"""

import asyncio
import logging
from collections.abc import Callable

from pydantic import ValidationError

from tabtree.models import TreeStateDocument, UserSettings
from tabtree.storage.store import KeyValueStore, StorageError

logger = logging.getLogger(__name__)

TREE_STATE_KEY = "tree_state"
SETTINGS_KEY = "user_settings"
DOCUMENT_VERSION = 1


class PersistenceGateway:
    def __init__(
        self,
        store: KeyValueStore,
        source: Callable[[], TreeStateDocument],
        *,
        debounce_ms: int = 50,
        max_attempts: int = 3,
        backoff_ms: int = 20,
    ) -> None:
        self._store = store
        self._source = source
        self._debounce = debounce_ms / 1000
        self._max_attempts = max(1, max_attempts)
        self._backoff = backoff_ms / 1000
        self._dirty = False
        self._version = 0
        self._pending: asyncio.Task | None = None
        self._lock = asyncio.Lock()
        self.last_failure: PersistenceFailure | None = None
        self.write_count = 0

    @property
    def dirty(self) -> bool:
        return self._dirty

    def mark_dirty(self) -> None:
        """Note a mutation and schedule a debounced flush. Never blocks."""
        self._dirty = True
        self._version += 1
        if self._pending is not None and not self._pending.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # no loop yet; the next flush() or mark from async code picks it up
            return
        self._pending = loop.create_task(self._debounced_flush())

    async def _debounced_flush(self) -> None:
        await asyncio.sleep(self._debounce)
        self._pending = None
        await self.flush()

    async def flush(self) -> bool:
        """Write the current document now if dirty. Returns False if every attempt failed."""
        async with self._lock:
            if not self._dirty:
                return True
            written_version = self._version
            document = self._source().model_dump(mode="json")

            last_error: StorageError | None = None
            for attempt in range(1, self._max_attempts + 1):
                try:
                    await self._store.set(TREE_STATE_KEY, document)
                except StorageError as e:
                    last_error = e
                    if attempt < self._max_attempts:
                        await asyncio.sleep(self._backoff * 2 ** (attempt - 1))
                    continue
                self.write_count += 1
                self.last_failure = None
                if self._version == written_version:
                    self._dirty = False
                return True

            self.last_failure = PersistenceFailure(self._max_attempts, last_error)
            logger.warning(
                "Tree state not persisted after %d attempts: %s",
                self._max_attempts,
                last_error,
            )
            return False

    async def load(self) -> TreeStateDocument:
        """Read the stored document. Missing, unreadable or foreign-version data loads as empty."""
        raw = await self._store.get(TREE_STATE_KEY)
        if raw is None:
            return TreeStateDocument()
        if raw.get("version") != DOCUMENT_VERSION:
            logger.warning("Ignoring stored tree state with version %r", raw.get("version"))
            return TreeStateDocument()
        try:
            return TreeStateDocument.model_validate(raw)
        except ValidationError as e:
            logger.warning("Ignoring unreadable stored tree state: %s", e)
            return TreeStateDocument()

    async def load_settings(self, defaults: UserSettings) -> UserSettings:
        """Stored settings layered over ``defaults``."""
        raw = await self._store.get(SETTINGS_KEY) or {}
        try:
            return UserSettings.model_validate({**defaults.model_dump(), **raw})
        except ValidationError as e:
            logger.warning("Ignoring unreadable stored settings: %s", e)
            return defaults

    async def save_settings(self, settings: UserSettings) -> None:
        await self._store.set(SETTINGS_KEY, settings.model_dump(mode="json"))

    async def close(self) -> None:
        """Cancel the pending debounce and write whatever is dirty."""
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
            try:
                await self._pending
            except asyncio.CancelledError:
                pass
        self._pending = None
        await self.flush()


class PersistenceFailure(Exception):
    def __init__(self, attempts: int, cause: Exception | None) -> None:
        self.attempts = attempts
        self.cause = cause
        super().__init__(f"Write failed after {attempts} attempts: {cause}")
