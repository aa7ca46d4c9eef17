import json
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, List, Optional

import aiosqlite

from verified_media.core.errors import PersistenceError
from verified_media.services.storage import KeyValueStore

logger = logging.getLogger(__name__)


class SqliteStore(KeyValueStore):
    """
    SQLite-backed document store. One row per document key.
    """

    def __init__(self, path: str):
        self.path = path
        self._initialized = False

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[aiosqlite.Connection]:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        conn = await aiosqlite.connect(self.path)
        await conn.execute("PRAGMA journal_mode=WAL;")
        try:
            yield conn
        finally:
            await conn.close()

    async def init_tables(self) -> None:
        """Initialize the document table."""
        if self._initialized:
            return
        async with self.connect() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_documents (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            await conn.commit()
        self._initialized = True
        logger.info(f"Document table initialized at {self.path}")

    async def get(self, key: str) -> Optional[Any]:
        try:
            await self.init_tables()
            async with self.connect() as conn:
                cursor = await conn.execute(
                    "SELECT value FROM kv_documents WHERE key = ?", (key,)
                )
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to read '{key}': {e}") from e

        if row is None:
            return None
        try:
            return json.loads(row[0])
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Corrupt document '{key}': {e}") from e

    async def set(self, key: str, value: Any) -> None:
        try:
            await self.init_tables()
            async with self.connect() as conn:
                await conn.execute(
                    """
                    INSERT OR REPLACE INTO kv_documents (key, value, updated_at)
                    VALUES (?, ?, ?)
                    """,
                    (key, json.dumps(value, default=str), datetime.now(timezone.utc).isoformat()),
                )
                await conn.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to write '{key}': {e}") from e

    async def list(self, prefix: str = "") -> List[str]:
        try:
            await self.init_tables()
            async with self.connect() as conn:
                cursor = await conn.execute(
                    "SELECT key FROM kv_documents WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
                    (prefix.replace("%", r"\%").replace("_", r"\_") + "%",),
                )
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to list keys: {e}") from e
        return [row[0] for row in rows]

    async def delete(self, key: str) -> None:
        try:
            await self.init_tables()
            async with self.connect() as conn:
                await conn.execute("DELETE FROM kv_documents WHERE key = ?", (key,))
                await conn.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to delete '{key}': {e}") from e
