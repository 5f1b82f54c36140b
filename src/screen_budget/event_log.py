"""Rolling diagnostic log shown alongside the remaining budget."""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime
from typing import Deque

logger = logging.getLogger("screen_budget.events")

DEFAULT_CAPACITY = 10


class EventLog:
    """Circular buffer of {timestamp, message} entries, oldest evicted first."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError(f"Event log capacity must be >= 1, got {capacity}")
        self._entries: Deque[dict] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._entries.maxlen

    def add(self, message: str, now: datetime | None = None) -> dict:
        entry = {
            "timestamp": (now or datetime.now()).strftime("%H:%M:%S"),
            "message": message,
        }
        self._entries.append(entry)
        logger.info(f"Event: {entry['timestamp']}: {message}")
        return entry

    def recent(self, limit: int | None = None) -> list[dict]:
        entries = list(self._entries)
        if limit is None:
            return entries
        if limit <= 0:
            return []
        return entries[-limit:]

    def __len__(self) -> int:
        return len(self._entries)
