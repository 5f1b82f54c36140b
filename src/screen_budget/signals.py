"""Inbound signals/commands and outward status events."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


# ---- Inbound: signal source -> controller ----

@dataclass(frozen=True)
class LockChanged:
    locked: bool


@dataclass(frozen=True)
class ScreenChanged:
    on: bool


@dataclass(frozen=True)
class AppForegroundChanged:
    foreground: bool


@dataclass(frozen=True)
class BudgetSet:
    seconds: int


Signal = LockChanged | ScreenChanged | AppForegroundChanged


# ---- Outward: controller -> status reporter ----

class EventType(str, Enum):
    TIMER_STARTED = "timer_started"
    TIMER_STOPPED = "timer_stopped"
    TIME_TICK = "time_tick"
    TIME_EXPIRED = "time_expired"


@dataclass(frozen=True)
class StatusEvent:
    type: EventType
    remaining_seconds: int

    def to_dict(self) -> dict:
        return {"type": self.type.value, "remaining_seconds": self.remaining_seconds}


def timer_started(remaining_seconds: int) -> StatusEvent:
    return StatusEvent(EventType.TIMER_STARTED, remaining_seconds)


def timer_stopped(remaining_seconds: int) -> StatusEvent:
    return StatusEvent(EventType.TIMER_STOPPED, remaining_seconds)


def time_tick(remaining_seconds: int) -> StatusEvent:
    return StatusEvent(EventType.TIME_TICK, remaining_seconds)


def time_expired() -> StatusEvent:
    return StatusEvent(EventType.TIME_EXPIRED, 0)
