"""Two-tier key/value storage on SQLite.

`local_state` is the fast tier (timer state, break mode, pause flag), written
every tick and read by every poll. `sync_settings` is the slow tier holding
user configuration. Values are stored as JSON text.
"""

import json
from pathlib import Path
from typing import Any

import aiosqlite

from .errors import StoreError

LOCAL = "local"
SYNC = "sync"

TIER_TABLES = {
    LOCAL: "local_state",
    SYNC: "sync_settings",
}


def _table(tier: str) -> str:
    try:
        return TIER_TABLES[tier]
    except KeyError:
        raise ValueError(f"Unknown storage tier: {tier}") from None


class KeyValueStore:
    """Async key/value store; every write is committed before it returns."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    async def init(self) -> None:
        """Create the tier tables. Safe to call on every startup."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiosqlite.connect(self.db_path) as db:
                # WAL so status polls don't block the tick's writes
                await db.execute("PRAGMA journal_mode=WAL")
                for table in TIER_TABLES.values():
                    await db.execute(f"""
                        CREATE TABLE IF NOT EXISTS {table} (
                            key TEXT PRIMARY KEY,
                            value TEXT NOT NULL,
                            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                        )
                    """)
                await db.commit()
        except (aiosqlite.Error, OSError) as e:
            raise StoreError(f"Failed to initialize store at {self.db_path}: {e}") from e

    async def _fetch(self, sql: str, params: tuple = ()) -> list:
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("PRAGMA busy_timeout=5000")
                cursor = await db.execute(sql, params)
                return list(await cursor.fetchall())
        except aiosqlite.Error as e:
            raise StoreError(f"Read failed: {e}") from e

    async def get(self, tier: str, defaults: dict) -> dict:
        """Return `defaults` overlaid with whichever of its keys are stored."""
        table = _table(tier)
        result = dict(defaults)
        if not defaults:
            return result
        placeholders = ", ".join("?" for _ in defaults)
        rows = await self._fetch(
            f"SELECT key, value FROM {table} WHERE key IN ({placeholders})",
            tuple(defaults),
        )
        for key, value in rows:
            result[key] = json.loads(value)
        return result

    async def get_all(self, tier: str) -> dict:
        table = _table(tier)
        rows = await self._fetch(f"SELECT key, value FROM {table}")
        return {key: json.loads(value) for key, value in rows}

    async def set(self, tier: str, values: dict[str, Any]) -> None:
        table = _table(tier)
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("PRAGMA busy_timeout=5000")
                await db.executemany(
                    f"""
                    INSERT INTO {table} (key, value, updated_at)
                    VALUES (?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    [(key, json.dumps(value)) for key, value in values.items()],
                )
                await db.commit()
        except aiosqlite.Error as e:
            raise StoreError(f"Write to {table} failed: {e}") from e
