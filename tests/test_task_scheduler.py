# tests/test_task_scheduler.py

from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import datetime, timedelta

import pytest

from rent_scheduler.rentals.generation import GenerationReport
from rent_scheduler.tasks.task_models import TaskBusyError, TaskNotFoundError, next_daily_run
from rent_scheduler.tasks.task_scheduler import (
    GENERATE_MISSING_RENTS,
    RECALCULATE_RENT_STATUSES,
    TaskScheduler,
)

from .fakes import FakeClock, ManualSleep, UnavailableRepo, settle

HOUR = timedelta(hours=1)
DAY = timedelta(hours=24)


class RecordingHandler:
    """Async task handler that records the `now` values it was called with."""

    def __init__(self, *, fail: bool = False) -> None:
        self.calls: list[datetime] = []
        self.fail = fail

    async def __call__(self, now: datetime) -> str:
        self.calls.append(now)
        if self.fail:
            raise RuntimeError("boom")
        return "ok"


class BlockingHandler:
    def __init__(self) -> None:
        self.calls = 0
        self.release = asyncio.Event()

    async def __call__(self, now: datetime) -> None:
        self.calls += 1
        await self.release.wait()


def _make(store, clock: FakeClock, sleep: ManualSleep | None = None) -> TaskScheduler:
    return TaskScheduler(store, clock=clock, sleep=sleep or ManualSleep())


def test_builtin_tasks_are_registered_for_next_morning(store) -> None:
    clock = FakeClock(datetime(2024, 3, 2, 8, 30))
    scheduler = _make(store, clock)

    status = {t["name"]: t for t in scheduler.get_tasks_status()}

    assert list(status) == [GENERATE_MISSING_RENTS, RECALCULATE_RENT_STATUSES]
    assert status[GENERATE_MISSING_RENTS]["next_run"] == datetime(2024, 3, 2, 9, 0)
    assert status[RECALCULATE_RENT_STATUSES]["next_run"] == datetime(2024, 3, 3, 8, 0)
    assert all(t["last_run"] is None for t in status.values())
    assert all(t["running"] is False for t in status.values())
    assert scheduler.get_task(GENERATE_MISSING_RENTS).interval == DAY


def test_next_daily_run_at_exact_time_is_tomorrow() -> None:
    assert next_daily_run(datetime(2024, 3, 2, 9, 0), 9) == datetime(2024, 3, 3, 9, 0)
    assert next_daily_run(datetime(2024, 3, 2, 8, 59, 59), 9) == datetime(2024, 3, 2, 9, 0)
    assert next_daily_run(datetime(2024, 12, 31, 10, 0), 9) == datetime(2025, 1, 1, 9, 0)


@pytest.mark.asyncio
async def test_start_runs_overdue_tasks_immediately(store, clock) -> None:
    scheduler = _make(store, clock)
    handler = RecordingHandler()
    scheduler.add_task("overdue", handler, first_run=clock.now - HOUR, interval=DAY)

    await scheduler.start()
    try:
        assert handler.calls == [clock.now]
        task = scheduler.get_task("overdue")
        assert task.last_run == clock.now
        assert task.next_run == clock.now + DAY
        assert task.last_result == "ok"
    finally:
        scheduler.stop()
        await settle()


@pytest.mark.asyncio
async def test_failed_task_is_retried_after_one_hour(store, clock) -> None:
    scheduler = _make(store, clock)
    failing = RecordingHandler(fail=True)
    healthy = RecordingHandler()
    scheduler.add_task("failing", failing, first_run=clock.now, interval=DAY)
    scheduler.add_task("healthy", healthy, first_run=clock.now, interval=DAY)

    await scheduler.run_due_tasks()

    failed = scheduler.get_task("failing")
    assert failed.next_run == clock.now + HOUR
    assert failed.last_run is None
    assert failed.in_progress is False
    # One failure does not stop the other tasks.
    assert healthy.calls == [clock.now]
    assert scheduler.get_task("healthy").next_run == clock.now + DAY


@pytest.mark.asyncio
async def test_builtin_tasks_back_off_when_database_is_down() -> None:
    clock = FakeClock(datetime(2024, 3, 2, 10, 0))
    repo = UnavailableRepo()
    scheduler = TaskScheduler(repo, clock=clock, sleep=ManualSleep())

    clock.now = datetime(2024, 3, 3, 9, 0)
    await scheduler.run_due_tasks()

    assert repo.attempts == 2
    for t in scheduler.get_tasks_status():
        assert t["next_run"] == datetime(2024, 3, 3, 10, 0)
        assert t["last_run"] is None


@pytest.mark.asyncio
async def test_tasks_not_due_are_left_alone(store, clock) -> None:
    scheduler = _make(store, clock)
    handler = RecordingHandler()
    scheduler.add_task("later", handler, first_run=clock.now + timedelta(minutes=1), interval=DAY)

    await scheduler.run_due_tasks()

    assert handler.calls == []


@pytest.mark.asyncio
async def test_ticker_runs_tasks_once_they_become_due(store, clock) -> None:
    sleep = ManualSleep()
    scheduler = _make(store, clock, sleep)
    handler = RecordingHandler()
    scheduler.add_task("soon", handler, first_run=clock.now + timedelta(minutes=5), interval=DAY)

    await scheduler.start()
    try:
        await settle()
        assert handler.calls == []
        assert sleep.calls == [60.0]

        clock.advance(minutes=5)
        sleep.tick()
        await settle()

        assert handler.calls == [clock.now]
        assert sleep.calls == [60.0, 60.0]
    finally:
        scheduler.stop()
        await settle()


@pytest.mark.asyncio
async def test_running_task_is_not_started_twice(store, clock) -> None:
    sleep = ManualSleep()
    scheduler = _make(store, clock, sleep)
    handler = BlockingHandler()
    scheduler.add_task("slow", handler, first_run=clock.now, interval=DAY)

    start = asyncio.create_task(scheduler.start())
    await settle()
    assert handler.calls == 1
    assert scheduler.get_task("slow").in_progress is True

    # Ticks keep firing while the handler is busy, without re-running it.
    clock.advance(minutes=2)
    sleep.tick()
    await settle()
    sleep.tick()
    await settle()
    assert handler.calls == 1

    with pytest.raises(TaskBusyError):
        await scheduler.force_run_task("slow")

    handler.release.set()
    await start
    await scheduler.drain()
    assert scheduler.get_task("slow").in_progress is False

    scheduler.stop()
    await settle()


@pytest.mark.asyncio
async def test_start_twice_warns_and_stop_is_idempotent(store, clock, caplog) -> None:
    sleep = ManualSleep()
    scheduler = _make(store, clock, sleep)

    await scheduler.start()
    with caplog.at_level(logging.WARNING):
        await scheduler.start()
    assert "already running" in caplog.text
    assert scheduler.running is True

    scheduler.stop()
    scheduler.stop()
    await settle()
    assert scheduler.running is False
    assert all(t["running"] is False for t in scheduler.get_tasks_status())


@pytest.mark.asyncio
async def test_stopped_scheduler_no_longer_ticks(store, clock) -> None:
    sleep = ManualSleep()
    scheduler = _make(store, clock, sleep)
    handler = RecordingHandler()
    scheduler.add_task("soon", handler, first_run=clock.now + timedelta(minutes=1), interval=DAY)

    await scheduler.start()
    await settle()
    scheduler.stop()
    await settle()

    clock.advance(minutes=5)
    sleep.tick()
    await settle()

    assert handler.calls == []


@pytest.mark.asyncio
async def test_force_run_unknown_task_changes_nothing(store, clock) -> None:
    scheduler = _make(store, clock)
    before = scheduler.get_tasks_status()

    with pytest.raises(TaskNotFoundError):
        await scheduler.force_run_task("nonexistent-task")

    assert scheduler.get_tasks_status() == before


@pytest.mark.asyncio
async def test_force_run_advances_schedule_on_success(store, clock, make_contract) -> None:
    make_contract()
    scheduler = _make(store, clock)

    result = await scheduler.force_run_task(GENERATE_MISSING_RENTS)

    assert isinstance(result, GenerationReport)
    assert result.created_count == 1
    task = scheduler.get_task(GENERATE_MISSING_RENTS)
    assert task.last_run == clock.now
    assert task.next_run == clock.now + DAY


@pytest.mark.asyncio
async def test_force_run_failure_propagates_and_keeps_schedule(clock) -> None:
    scheduler = TaskScheduler(UnavailableRepo(), clock=clock, sleep=ManualSleep())
    task = scheduler.get_task(RECALCULATE_RENT_STATUSES)
    next_run = task.next_run

    with pytest.raises(sqlite3.OperationalError):
        await scheduler.force_run_task(RECALCULATE_RENT_STATUSES)

    assert task.last_run is None
    assert task.next_run == next_run
    assert task.in_progress is False


def test_add_task_rejects_duplicates(store, clock) -> None:
    scheduler = _make(store, clock)
    with pytest.raises(ValueError):
        scheduler.add_task(GENERATE_MISSING_RENTS, RecordingHandler(), first_run=clock.now, interval=DAY)
