"""Durable state store: a small key/value table in SQLite.

The controller keeps exactly one key, `remaining_seconds`. Writes go through
StateWriter so they apply in the order they were started and always carry the
current in-memory value.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

import aiosqlite

from .errors import StoreUnavailable

logger = logging.getLogger("screen_budget.store")

REMAINING_SECONDS_KEY = "remaining_seconds"


def _now_iso() -> str:
    return datetime.now().isoformat()


class StateStore:
    """aiosqlite-backed key/value store. One connection per operation."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    async def _connect(self) -> aiosqlite.Connection:
        db = await aiosqlite.connect(self.db_path)
        await db.execute("PRAGMA busy_timeout=5000")
        return db

    async def init(self) -> None:
        """Create the state table. Safe to call on every startup."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            db = await self._connect()
            try:
                await db.execute("PRAGMA journal_mode=WAL")
                await db.execute("""
                    CREATE TABLE IF NOT EXISTS budget_state (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                """)
                await db.commit()
            finally:
                await db.close()
        except (aiosqlite.Error, OSError) as e:
            raise StoreUnavailable(f"Cannot initialize store at {self.db_path}: {e}") from e

    async def get_int(self, key: str, default: int = 0) -> int:
        try:
            db = await self._connect()
            try:
                cursor = await db.execute(
                    "SELECT value FROM budget_state WHERE key = ?", (key,)
                )
                row = await cursor.fetchone()
            finally:
                await db.close()
        except (aiosqlite.Error, OSError) as e:
            raise StoreUnavailable(f"Cannot read '{key}': {e}") from e

        if row is None:
            return default
        try:
            return int(row[0])
        except ValueError:
            logger.warning(f"Ignoring non-integer value for '{key}': {row[0]!r}")
            return default

    async def set_int(self, key: str, value: int) -> None:
        try:
            db = await self._connect()
            try:
                await db.execute("""
                    INSERT INTO budget_state (key, value, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                """, (key, str(int(value)), _now_iso()))
                await db.commit()
            finally:
                await db.close()
        except (aiosqlite.Error, OSError) as e:
            raise StoreUnavailable(f"Cannot write '{key}': {e}") from e


class StateWriter:
    """Ordered, last-writer-wins persistence of one live integer.

    `read_value` is called only after the write lock is held, so a write that
    starts later can never land an older value than one that started earlier.
    Failures are logged; the next scheduled write retries with the then-current
    value.
    """

    def __init__(self, store: StateStore, read_value: Callable[[], int],
                 key: str = REMAINING_SECONDS_KEY):
        self.store = store
        self.key = key
        self._read_value = read_value
        self._lock = asyncio.Lock()
        self._pending: set[asyncio.Task] = set()
        self.last_written: Optional[int] = None
        self.failures = 0

    async def write(self) -> bool:
        """Write the current value now. Returns False if the store failed."""
        async with self._lock:
            value = self._read_value()
            try:
                await self.store.set_int(self.key, value)
            except StoreUnavailable as e:
                self.failures += 1
                logger.error(f"Persist failed (will retry on next write): {e}")
                return False
            self.last_written = value
            return True

    def schedule(self) -> asyncio.Task:
        """Fire-and-forget write; the task is tracked until it finishes."""
        task = asyncio.get_running_loop().create_task(self.write())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for every scheduled write to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
