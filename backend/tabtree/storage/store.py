"""Durable key-value store over SQLite, with change notification."""

import json
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import aiosqlite
from pydantic import BaseModel

from tabtree.db.connection import Database
from tabtree.utils.json import json_str, parse_json_field

logger = logging.getLogger(__name__)


class StorageChange(BaseModel):
    key: str
    new_value: dict[str, Any] | None = None


class KeyValueStore:
    """Whole-document get/set by key. Listeners hear about a write after it commits."""

    def __init__(self, db: Database) -> None:
        self._db = db
        self._listeners: list[Callable[[StorageChange], None]] = []

    async def get(self, key: str) -> dict[str, Any] | None:
        row = await self._db.fetchone("SELECT value FROM kv_store WHERE key = ?", (key,))
        if row is None:
            return None
        return parse_json_field(row["value"])

    async def set(self, key: str, document: dict[str, Any]) -> None:
        try:
            await self._db.execute(
                """
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, json_str(document), datetime.now(UTC).isoformat()),
            )
        except (aiosqlite.Error, TypeError, ValueError) as e:
            raise StorageError(key, str(e)) from e
        # listeners get their own copy
        self._notify(StorageChange(key=key, new_value=json.loads(json_str(document))))

    async def remove(self, key: str) -> bool:
        """Delete a document. False (and no notification) when the key was absent."""
        try:
            deleted = await self._db.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        except aiosqlite.Error as e:
            raise StorageError(key, str(e)) from e
        if not deleted:
            return False
        self._notify(StorageChange(key=key, new_value=None))
        return True

    def subscribe(self, callback: Callable[[StorageChange], None]) -> Callable[[], None]:
        """Register a change listener. Returns a function that unregisters it."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self, change: StorageChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception("Storage listener failed for key %s", change.key)


class StorageError(Exception):
    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        super().__init__(f"Storage write failed for {key}: {reason}")
