"""SQLite access for the key-value store: one aiosqlite connection in WAL mode."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiosqlite

from tabtree.db.schema import SCHEMA_SQL

logger = logging.getLogger(__name__)

BUSY_TIMEOUT_MS = 5000


class Database:
    """The single connection behind the store. Every write commits on its own."""

    def __init__(self, connection: aiosqlite.Connection, path: str) -> None:
        self._conn = connection
        self.path = path

    @classmethod
    async def connect(cls, path: str = "tabtree.db") -> "Database":
        conn = await aiosqlite.connect(path)
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")
        db = cls(conn, path)
        await db._ensure_schema()
        logger.info("Opened tree store at %s", path)
        return db

    @classmethod
    @asynccontextmanager
    async def open(cls, path: str = "tabtree.db") -> AsyncIterator["Database"]:
        """``connect`` as a context manager that closes on exit."""
        db = await cls.connect(path)
        try:
            yield db
        finally:
            await db.close()

    async def _ensure_schema(self) -> None:
        """Create tables if they don't exist. Idempotent."""
        await self._conn.executescript(SCHEMA_SQL)
        await self._conn.commit()

    async def journal_mode(self) -> str:
        # in-memory databases report "memory" whatever was requested
        row = await self.fetchone("PRAGMA journal_mode")
        return row[0]

    async def execute(self, sql: str, params: tuple = ()) -> int:
        """Run one write statement and commit. Returns the affected row count."""
        cursor = await self._conn.execute(sql, params)
        await self._conn.commit()
        return cursor.rowcount

    async def fetchone(self, sql: str, params: tuple = ()) -> aiosqlite.Row | None:
        cursor = await self._conn.execute(sql, params)
        return await cursor.fetchone()

    async def fetchall(self, sql: str, params: tuple = ()) -> list[aiosqlite.Row]:
        cursor = await self._conn.execute(sql, params)
        return list(await cursor.fetchall())

    async def close(self) -> None:
        await self._conn.close()
