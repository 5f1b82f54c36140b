"""Unit tests for CountdownEngine (mock scheduler, ticks driven by hand)."""

from datetime import timedelta

import pytest

from screen_budget.countdown import (
    TICK_JOB_ID,
    CountdownEngine,
    EngineState,
    TickResult,
)
from screen_budget.errors import InvalidBudget
from screen_budget.signals import EventType

from conftest import make_scheduler


async def _noop_tick(generation: int) -> None:
    pass


def make_engine(remaining: int = 60, persist_every: int = 10) -> CountdownEngine:
    return CountdownEngine(make_scheduler(), _noop_tick, remaining, persist_every)


def run_ticks(engine: CountdownEngine, n: int) -> list[TickResult]:
    return [engine.tick() for _ in range(n)]


# ---- start / stop ----

class TestStartStop:
    def test_initial_state_idle(self):
        engine = make_engine()
        assert engine.state is EngineState.IDLE
        assert not engine.is_active

    def test_start_registers_one_second_job(self):
        engine = make_engine()
        assert engine.start() is True
        engine.scheduler.add_job.assert_called_once()
        kwargs = engine.scheduler.add_job.call_args.kwargs
        assert kwargs["id"] == TICK_JOB_ID
        assert kwargs["replace_existing"] is True
        assert kwargs["args"] == [engine.generation]
        assert kwargs["trigger"].interval == timedelta(seconds=1)

    def test_start_twice_is_noop(self):
        engine = make_engine()
        assert engine.start() is True
        assert engine.start() is False
        assert engine.scheduler.add_job.call_count == 1
        assert engine.state is EngineState.ACTIVE

    def test_stop_twice_is_noop(self):
        engine = make_engine()
        engine.start()
        assert engine.stop() is True
        assert engine.stop() is False
        assert engine.scheduler.remove_job.call_count == 1
        assert engine.state is EngineState.IDLE

    def test_stop_while_idle_does_not_touch_scheduler(self):
        engine = make_engine()
        assert engine.stop() is False
        engine.scheduler.remove_job.assert_not_called()

    def test_start_with_no_budget_refused(self):
        engine = make_engine(remaining=0)
        assert engine.start() is False
        engine.scheduler.add_job.assert_not_called()

    def test_stop_skips_remove_when_job_missing(self):
        engine = make_engine()
        engine.start()
        engine.scheduler.get_job.return_value = None
        assert engine.stop() is True
        engine.scheduler.remove_job.assert_not_called()

    def test_negative_initial_budget_rejected(self):
        with pytest.raises(InvalidBudget):
            make_engine(remaining=-1)


# ---- tick ----

class TestTick:
    def test_tick_ignored_when_idle(self):
        engine = make_engine(remaining=10)
        result = engine.tick()
        assert result.applied is False
        assert result.events == []
        assert engine.remaining_seconds == 10

    def test_n_ticks_decrease_by_n(self):
        engine = make_engine(remaining=100)
        engine.start()
        run_ticks(engine, 37)
        assert engine.remaining_seconds == 63

    def test_ticks_bounded_at_zero(self):
        engine = make_engine(remaining=5)
        engine.start()
        run_ticks(engine, 50)
        assert engine.remaining_seconds == 0

    def test_each_tick_reports_remaining(self):
        engine = make_engine(remaining=3)
        engine.start()
        result = engine.tick()
        assert result.events[-1].type is EventType.TIME_TICK
        assert result.events[-1].remaining_seconds == 2

    def test_expiry_fires_once(self):
        engine = make_engine(remaining=3)
        engine.start()
        results = run_ticks(engine, 10)
        expired = [e for r in results for e in r.events if e.type is EventType.TIME_EXPIRED]
        assert len(expired) == 1
        assert results[2].expired is True
        assert engine.state is EngineState.EXPIRED

    def test_expiry_cancels_job(self):
        engine = make_engine(remaining=1)
        engine.start()
        engine.tick()
        engine.scheduler.remove_job.assert_called_once_with(TICK_JOB_ID)
        assert not engine.is_active

    def test_start_after_expiry_is_noop(self):
        engine = make_engine(remaining=1)
        engine.start()
        engine.tick()
        assert engine.start() is False
        assert engine.stop() is False

    def test_persist_due_every_interval(self):
        engine = make_engine(remaining=100, persist_every=10)
        engine.start()
        results = run_ticks(engine, 30)
        due = [i + 1 for i, r in enumerate(results) if r.persist_due]
        assert due == [10, 20, 30]

    def test_persist_due_on_expiry(self):
        engine = make_engine(remaining=3, persist_every=10)
        engine.start()
        results = run_ticks(engine, 3)
        assert results[-1].persist_due is True

    def test_ticks_all_integer(self):
        engine = make_engine(remaining=100)
        engine.start()
        run_ticks(engine, 7)
        assert isinstance(engine.remaining_seconds, int)


# ---- generations ----

class TestGenerations:
    def test_accepts_current_generation(self):
        engine = make_engine()
        engine.start()
        assert engine.accepts(engine.generation)

    def test_rejects_after_stop(self):
        engine = make_engine()
        engine.start()
        gen = engine.generation
        engine.stop()
        assert not engine.accepts(gen)

    def test_rejects_previous_job_after_restart(self):
        engine = make_engine()
        engine.start()
        old = engine.generation
        engine.stop()
        engine.start()
        assert not engine.accepts(old)
        assert engine.accepts(engine.generation)


# ---- set_remaining ----

class TestSetRemaining:
    def test_absolute_not_additive(self):
        engine = make_engine(remaining=50)
        engine.set_remaining(20)
        assert engine.remaining_seconds == 20

    def test_negative_rejected_state_unchanged(self):
        engine = make_engine(remaining=50)
        with pytest.raises(InvalidBudget):
            engine.set_remaining(-5)
        assert engine.remaining_seconds == 50

    def test_expired_to_idle_on_positive_budget(self):
        engine = make_engine(remaining=1)
        engine.start()
        engine.tick()
        engine.set_remaining(30)
        assert engine.state is EngineState.IDLE
        assert engine.start() is True

    def test_zero_budget_keeps_expired(self):
        engine = make_engine(remaining=1)
        engine.start()
        engine.tick()
        engine.set_remaining(0)
        assert engine.state is EngineState.EXPIRED

    def test_credit_adds(self):
        engine = make_engine(remaining=10)
        engine.credit(5)
        assert engine.remaining_seconds == 15

    def test_credit_ignores_non_positive(self):
        engine = make_engine(remaining=10)
        engine.credit(0)
        engine.credit(-3)
        assert engine.remaining_seconds == 10
