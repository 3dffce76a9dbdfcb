"""Automatic snapshots: every window's tree saved on a fixed interval.

The interval comes from user settings. Writing new settings to the store
restarts the timer, and an interval of 0 stops it.
"""

import asyncio
import logging
from datetime import UTC, datetime

from pydantic import ValidationError

from tabtree.models import UserSettings
from tabtree.snapshots.schemas import SnapshotDocument
from tabtree.snapshots.service import SnapshotService
from tabtree.storage.gateway import SETTINGS_KEY
from tabtree.storage.store import StorageChange, StorageError
from tabtree.trees.registry import TreeRegistry

logger = logging.getLogger(__name__)


class AutoSnapshotter:
    def __init__(self, service: SnapshotService, registry: TreeRegistry) -> None:
        self._service = service
        self._registry = registry
        self._task: asyncio.Task | None = None
        self.interval_minutes: float = 0
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, interval_minutes: float) -> None:
        """(Re)start the timer. Must be called from a running event loop."""
        self._cancel()
        self.interval_minutes = interval_minutes
        if interval_minutes <= 0:
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(interval_minutes * 60))
        logger.info("Auto snapshots every %s minutes", interval_minutes)

    def on_storage_change(self, change: StorageChange) -> None:
        """Store listener: follow interval changes in saved user settings."""
        if change.key != SETTINGS_KEY or change.new_value is None:
            return
        try:
            interval = UserSettings.model_validate(change.new_value).auto_snapshot_interval_minutes
        except ValidationError as e:
            logger.warning("Ignoring unreadable settings change: %s", e)
            return
        if interval != self.interval_minutes or not self.running:
            self.start(interval)

    async def snapshot_all(self) -> list[SnapshotDocument]:
        """Save one auto snapshot per window. A failed write skips that window."""
        name = f"Auto Snapshot - {datetime.now(UTC):%Y-%m-%d %H:%M:%S}"
        saved: list[SnapshotDocument] = []
        for window_id in self._registry.window_ids():
            try:
                saved.append(await self._service.save(window_id, name, is_auto_save=True))
            except StorageError as e:
                logger.warning("Auto snapshot of window %d failed: %s", window_id, e)
        self.runs += 1
        return saved

    async def close(self) -> None:
        task = self._task
        self._cancel()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _run(self, period: float) -> None:
        while True:
            await asyncio.sleep(period)
            await self.snapshot_all()

    def _cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
