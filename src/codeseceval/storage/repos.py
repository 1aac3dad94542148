"""SQLite-backed key-value store."""

from __future__ import annotations

import time

import aiosqlite


class SqliteKeyValueStore:
    """CRUD for JSON records keyed by string. Keeps insertion order."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def get(self, key: str) -> str | None:
        cursor = await self._db.execute(
            "SELECT value FROM records WHERE key = ?", (key,)
        )
        row = await cursor.fetchone()
        return row["value"] if row else None

    async def put(self, key: str, value: str) -> None:
        now = time.time()
        await self._db.execute(
            "INSERT INTO records (key, value, created_at, updated_at) "
            "VALUES (?, ?, ?, ?) "
            "ON CONFLICT(key) DO UPDATE SET "
            "value = excluded.value, updated_at = excluded.updated_at",
            (key, value, now, now),
        )
        await self._db.commit()

    async def delete(self, key: str) -> bool:
        cursor = await self._db.execute("DELETE FROM records WHERE key = ?", (key,))
        await self._db.commit()
        return cursor.rowcount > 0

    async def items(self, prefix: str = "") -> list[tuple[str, str]]:
        # substr comparison avoids LIKE wildcards in keys
        cursor = await self._db.execute(
            "SELECT key, value FROM records "
            "WHERE substr(key, 1, ?) = ? ORDER BY seq",
            (len(prefix), prefix),
        )
        return [(row["key"], row["value"]) async for row in cursor]
