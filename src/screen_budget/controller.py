"""Budget controller: single serialized entry point for signals, commands and ticks.

Every operation that touches BudgetState or the countdown engine runs on the
event loop while holding `self._lock`, so a tick can never interleave with a
signal handler's read-modify-write.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from typing import Callable, Optional

from .config import DEFAULT_PERSIST_EVERY_TICKS, ForegroundPolicy
from .countdown import CountdownEngine
from .eligibility import evaluate, format_time, pause_reason
from .errors import InvalidBudget, StoreUnavailable
from .event_log import EventLog
from .probe import DeviceProbe, DeviceSnapshot, NullProbe
from .reporter import LoggingReporter, StatusReporter
from .signals import (
    AppForegroundChanged,
    BudgetSet,
    LockChanged,
    ScreenChanged,
    Signal,
    StatusEvent,
    timer_started,
    timer_stopped,
)
from .store import REMAINING_SECONDS_KEY, StateStore, StateWriter

logger = logging.getLogger("screen_budget.controller")

STATUS_LOG_EVERY_SECONDS = 30


@dataclass
class BudgetState:
    """Latest known device/app flags. Defaults are the fail-safe posture."""

    locked: bool = True
    screen_on: bool = False
    app_foreground: bool = False
    running: bool = False
    foreground_entered_at: Optional[float] = None


class BudgetController:
    def __init__(
        self,
        store: StateStore,
        scheduler,
        reporter: Optional[StatusReporter] = None,
        probe: Optional[DeviceProbe] = None,
        event_log: Optional[EventLog] = None,
        persist_every_ticks: int = DEFAULT_PERSIST_EVERY_TICKS,
        foreground_policy: ForegroundPolicy = ForegroundPolicy.PAUSE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.reporter = reporter or LoggingReporter()
        self.probe = probe or NullProbe()
        self.event_log = event_log or EventLog()
        self.foreground_policy = foreground_policy
        self.state = BudgetState()
        self.engine = CountdownEngine(
            scheduler, self.on_tick, persist_every_ticks=persist_every_ticks
        )
        self.writer = StateWriter(store, lambda: self.engine.remaining_seconds)
        self._lock = asyncio.Lock()
        self._clock = clock
        # False while the in-memory budget may be a fallback rather than the stored one
        self._authoritative = False

    # ---- Read-only properties ----

    @property
    def remaining_seconds(self) -> int:
        return self.engine.remaining_seconds

    @property
    def running(self) -> bool:
        return self.state.running

    # ---- Lifecycle ----

    async def startup(self) -> None:
        """Load the budget and run the recovery protocol.

        The countdown resumes when the probe reports an unlocked session, even if
        the screen is idle. Screen state only feeds the status text, so an
        unlocked session with a blanked screen counts like any other unlock.
        """
        async with self._lock:
            try:
                await self.store.init()
                remaining = await self.store.get_int(REMAINING_SECONDS_KEY, 0)
                self._authoritative = True
            except StoreUnavailable as e:
                logger.error(f"Store unavailable at startup, starting with no budget: {e}")
                remaining = 0

            if remaining < 0:
                logger.warning(f"Stored budget was negative ({remaining}); clamping to 0")
                remaining = 0

            self.state = BudgetState()
            self.engine.set_remaining(remaining)
            self.event_log.add("Service started")
            logger.info(f"Loaded saved time: {remaining} seconds")

            if remaining > 0:
                snapshot = self._query_probe()
                if snapshot is None:
                    logger.info("Device state unknown - timer will start on the next signal")
                else:
                    logger.info(
                        f"Device state - Locked: {snapshot.locked}, ScreenOn: {snapshot.screen_on}"
                    )
                    self.state.locked = snapshot.locked
                    self.state.screen_on = snapshot.screen_on
            else:
                logger.info("No saved time found - timer will not start")

            self._publish(self._reconcile())

    async def shutdown(self) -> None:
        """Stop ticking and flush the current budget."""
        async with self._lock:
            if self.engine.stop():
                self.event_log.add("Timer stopped")
                self._publish([timer_stopped(self.remaining_seconds)])
            self.state.running = False
            if self._authoritative:
                await self.writer.write()
            else:
                logger.warning("Skipping final persist: budget was never loaded or set")
        await self.writer.drain()

    # ---- Inbound ----

    async def handle(self, message) -> None:
        """Dispatch any inbound signal or command."""
        if isinstance(message, BudgetSet):
            await self.set_budget(message.seconds)
        else:
            await self.handle_signal(message)

    async def handle_signal(self, signal: Signal) -> None:
        async with self._lock:
            try:
                if isinstance(signal, LockChanged):
                    if signal.locked != self.state.locked:
                        logger.info(f"Device {'locked' if signal.locked else 'unlocked'}")
                    self.state.locked = signal.locked
                elif isinstance(signal, ScreenChanged):
                    self.state.screen_on = signal.on
                elif isinstance(signal, AppForegroundChanged):
                    self._apply_foreground(signal.foreground)
                else:
                    raise TypeError(f"Unknown signal: {signal!r}")
                self._publish(self._reconcile())
            except Exception:
                logger.exception(f"Failed to handle signal {signal!r}")

    async def set_budget(self, seconds: int) -> None:
        """Set the remaining budget (absolute) and persist it before returning."""
        if seconds < 0:
            logger.warning(f"Rejected budget of {seconds} seconds")
            raise InvalidBudget(seconds)

        async with self._lock:
            try:
                self.engine.set_remaining(seconds)
                self._authoritative = True
                self.event_log.add(f"Time set to {format_time(seconds)}")
                logger.info(f"Updated remaining time to {seconds} seconds")
                try:
                    await self.writer.write()
                finally:
                    self._publish(self._reconcile())
            except Exception:
                logger.exception(f"Failed to apply budget of {seconds} seconds")

    async def on_tick(self, generation: int) -> None:
        """Scheduler job callback: one second of budget."""
        async with self._lock:
            if not self.engine.accepts(generation):
                logger.debug(f"Dropping tick from stale job generation {generation}")
                return
            try:
                result = self.engine.tick()
                if result.persist_due:
                    self.writer.schedule()
                if result.expired:
                    logger.info("Time expired!")
                    self.event_log.add("TIME EXPIRED!")
                elif result.remaining_seconds % STATUS_LOG_EVERY_SECONDS == 0:
                    self.event_log.add(f"Screen ON: {format_time(result.remaining_seconds)} left")
                self.state.running = self.engine.is_active
                self._publish(result.events)
            except Exception:
                logger.exception("Tick failed; stopping countdown")
                self._stop_after_failure()

    # ---- Outward ----

    def status_text(self) -> str:
        s = self.state
        if self.remaining_seconds <= 0:
            return "Time Expired!"
        if s.app_foreground:
            return "App Open (Paused)"
        if s.locked:
            return "Locked"
        if not s.screen_on:
            return "Screen Off"
        return "Screen On (Counting)"

    def snapshot(self) -> dict:
        s = self.state
        data = asdict(s)
        data.pop("foreground_entered_at")
        data.update({
            "remaining_seconds": self.remaining_seconds,
            "remaining_formatted": format_time(self.remaining_seconds),
            "engine_state": self.engine.state.value,
            "status": self.status_text(),
            "pause_reason": pause_reason(s.locked, s.app_foreground, self.remaining_seconds),
            "foreground_policy": self.foreground_policy.value,
            "log": self.event_log.recent(),
        })
        return data

    # ---- Internal ----

    def _apply_foreground(self, foreground: bool) -> None:
        if foreground == self.state.app_foreground:
            return
        self.state.app_foreground = foreground

        if foreground:
            self.state.foreground_entered_at = self._clock()
            self.event_log.add("App opened (timer paused)")
            return

        entered = self.state.foreground_entered_at
        self.state.foreground_entered_at = None
        if self.foreground_policy is not ForegroundPolicy.CREDIT or entered is None:
            self.event_log.add("App closed")
            return
        if self.remaining_seconds <= 0:
            # An exhausted budget stays exhausted until the next BudgetSet
            self.event_log.add("App closed (no credit, time expired)")
            return

        credit = int(self._clock() - entered)
        self.engine.credit(credit)
        self.event_log.add(f"App closed (+{credit}s added)")
        logger.info(f"App left foreground - added {credit}s back to timer")
        if credit > 0:
            self.writer.schedule()

    def _reconcile(self) -> list[StatusEvent]:
        """Re-evaluate eligibility and start/stop the engine on real transitions."""
        s = self.state
        remaining = self.remaining_seconds
        events: list[StatusEvent] = []
        try:
            if evaluate(s.locked, s.app_foreground, remaining):
                if self.engine.start():
                    self.event_log.add("Timer started")
                    events.append(timer_started(remaining))
            elif self.engine.stop():
                logger.info(f"Pausing countdown: {pause_reason(s.locked, s.app_foreground, remaining)}")
                self.event_log.add("Timer stopped")
                self.writer.schedule()
                events.append(timer_stopped(remaining))
        finally:
            s.running = self.engine.is_active
        return events

    def _stop_after_failure(self) -> None:
        try:
            self.engine.stop()
        except Exception:
            logger.exception("Failed to cancel tick job after tick failure")
        self.state.running = self.engine.is_active
        self.event_log.add("Timer stopped (error)")
        self.writer.schedule()
        self._publish([timer_stopped(self.remaining_seconds)])

    def _query_probe(self) -> Optional[DeviceSnapshot]:
        try:
            return self.probe.query()
        except Exception:
            logger.exception("Device probe failed; staying paused")
            return None

    def _publish(self, events: list[StatusEvent]) -> None:
        for event in events:
            try:
                self.reporter.publish(event)
            except Exception:
                logger.exception(f"Status reporter failed on {event.type.value}")
