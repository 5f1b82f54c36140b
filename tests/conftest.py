from pathlib import Path
from unittest.mock import MagicMock

import pytest

from screen_budget.config import ForegroundPolicy
from screen_budget.controller import BudgetController
from screen_budget.probe import NullProbe
from screen_budget.signals import EventType
from screen_budget.store import StateStore


class RecordingReporter:
    """Collects every outward event in delivery order."""

    def __init__(self):
        self.events = []

    def publish(self, event):
        self.events.append(event)

    def of_type(self, event_type: EventType):
        return [e for e in self.events if e.type is event_type]


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_scheduler() -> MagicMock:
    """Mock APScheduler: jobs are recorded, never run."""
    scheduler = MagicMock()
    scheduler.add_job = MagicMock()
    scheduler.remove_job = MagicMock()
    scheduler.get_job = MagicMock(return_value=object())
    return scheduler


@pytest.fixture
def scheduler():
    return make_scheduler()


@pytest.fixture
def db_path(tmp_path) -> Path:
    return tmp_path / "state.db"


@pytest.fixture
def reporter():
    return RecordingReporter()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_controller(db_path, scheduler, reporter, clock):
    """Factory so a test can build several controllers over the same DB."""

    def _make(probe=None, policy=ForegroundPolicy.PAUSE, persist_every_ticks=10,
              store=None, reporter_override=None):
        return BudgetController(
            store=store or StateStore(db_path),
            scheduler=scheduler,
            reporter=reporter_override or reporter,
            probe=probe or NullProbe(),
            persist_every_ticks=persist_every_ticks,
            foreground_policy=policy,
            clock=clock,
        )

    return _make


async def advance(controller: BudgetController, ticks: int) -> None:
    """Deliver `ticks` scheduler callbacks for the current job generation."""
    for _ in range(ticks):
        await controller.on_tick(controller.engine.generation)
