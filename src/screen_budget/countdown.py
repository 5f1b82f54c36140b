"""Countdown engine: owns the remaining budget and the tick job.

One tick is one second of budget. Ticks are not corrected against wall-clock
time: a late callback still counts as exactly one second.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable

from apscheduler.triggers.interval import IntervalTrigger

from .config import DEFAULT_PERSIST_EVERY_TICKS
from .errors import InvalidBudget
from .signals import StatusEvent, time_expired, time_tick

logger = logging.getLogger("screen_budget.countdown")

TICK_JOB_ID = "countdown_tick"
TICK_INTERVAL_SECONDS = 1


class EngineState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    EXPIRED = "expired"


@dataclass
class TickResult:
    applied: bool = False
    remaining_seconds: int = 0
    expired: bool = False
    persist_due: bool = False
    events: list[StatusEvent] = field(default_factory=list)


class CountdownEngine:
    """Idle/Active/Expired state machine driving a 1-second scheduler job.

    The job passes its generation number back to `on_tick`; `accepts()` lets the
    caller drop ticks from a job that has since been stopped or replaced.
    """

    def __init__(
        self,
        scheduler,
        on_tick: Callable[[int], Awaitable[None]],
        remaining_seconds: int = 0,
        persist_every_ticks: int = DEFAULT_PERSIST_EVERY_TICKS,
    ):
        if remaining_seconds < 0:
            raise InvalidBudget(remaining_seconds)
        self.scheduler = scheduler
        self.persist_every_ticks = persist_every_ticks
        self._on_tick = on_tick
        self._remaining: int = remaining_seconds
        self._state: EngineState = EngineState.IDLE
        self._generation: int = 0
        self._ticks_since_persist: int = 0

    # ---- Read-only properties ----

    @property
    def remaining_seconds(self) -> int:
        return self._remaining

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is EngineState.ACTIVE

    @property
    def generation(self) -> int:
        return self._generation

    # ---- Core methods ----

    def start(self) -> bool:
        """Idle -> Active. Returns False (no-op) when already active, expired, or empty."""
        if self._state is not EngineState.IDLE or self._remaining <= 0:
            return False

        self._generation += 1
        self.scheduler.add_job(
            self._on_tick,
            trigger=IntervalTrigger(seconds=TICK_INTERVAL_SECONDS),
            args=[self._generation],
            id=TICK_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            name="countdown tick",
        )
        self._state = EngineState.ACTIVE
        logger.debug(f"Tick job registered (generation {self._generation})")
        return True

    def stop(self) -> bool:
        """Active -> Idle. Returns False (no-op) when idle or expired."""
        if self._state is not EngineState.ACTIVE:
            return False
        self._state = EngineState.IDLE
        self._cancel_job()
        return True

    def accepts(self, generation: int) -> bool:
        """Whether a tick from job `generation` should still be applied."""
        return self._state is EngineState.ACTIVE and generation == self._generation

    def tick(self) -> TickResult:
        """Advance by one second. Ignored unless active."""
        result = TickResult(remaining_seconds=self._remaining)
        if self._state is not EngineState.ACTIVE:
            return result

        if self._remaining > 0:
            self._remaining -= 1
        self._ticks_since_persist += 1
        result.applied = True
        result.remaining_seconds = self._remaining

        if self._remaining == 0:
            # Active -> Expired is the only edge that raises the expiry alert
            self._state = EngineState.EXPIRED
            self._cancel_job()
            result.expired = True
            result.persist_due = True
            result.events.append(time_expired())

        if self._ticks_since_persist >= self.persist_every_ticks:
            result.persist_due = True
        if result.persist_due:
            self._ticks_since_persist = 0

        result.events.append(time_tick(self._remaining))
        return result

    def set_remaining(self, seconds: int) -> None:
        """Absolute budget update. Expired -> Idle when seconds > 0.

        Does not start or stop the job; the caller re-evaluates eligibility
        under the same lock right after.
        """
        if seconds < 0:
            raise InvalidBudget(seconds)
        self._remaining = seconds
        self._ticks_since_persist = 0
        if self._state is EngineState.EXPIRED and seconds > 0:
            self._state = EngineState.IDLE

    def credit(self, seconds: int) -> None:
        """Add seconds back to the budget (foreground credit policy)."""
        if seconds <= 0:
            return
        self.set_remaining(self._remaining + seconds)

    # ---- Internal ----

    def _cancel_job(self) -> None:
        # Bumping the generation also invalidates a tick already dispatched
        self._generation += 1
        if self.scheduler.get_job(TICK_JOB_ID):
            self.scheduler.remove_job(TICK_JOB_ID)
