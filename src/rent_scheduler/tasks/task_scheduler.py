# src/rent_scheduler/tasks/task_scheduler.py

from __future__ import annotations

"""
Task scheduler.

A small polling loop that:
- keeps a list of named periodic tasks (next run + interval),
- checks every tick which tasks are due and runs them,
- reschedules them: now + interval on success, now + retry delay on failure.

Two tasks are registered at construction:
- generate-missing-rents     (daily, first run at the next 09:00)
- recalculate-rent-statuses  (daily, first run at the next 08:00)

The clock and the sleep function are injected so tests can drive time by hand.
"""

import asyncio
import functools
import inspect
import logging
from datetime import datetime, timedelta
from typing import Any

from ..core.ports import Clock, RentalRepo, Sleeper, TaskHandler
from ..rentals.generation import generate_missing_rents
from ..rentals.statuses import recalculate_rent_statuses
from .task_models import ScheduledTask, TaskBusyError, TaskNotFoundError, next_daily_run

logger = logging.getLogger(__name__)

GENERATE_MISSING_RENTS = "generate-missing-rents"
RECALCULATE_RENT_STATUSES = "recalculate-rent-statuses"

DAILY = timedelta(hours=24)


def local_now() -> datetime:
    return datetime.now()


class TaskScheduler:
    def __init__(
            self,
            repo: RentalRepo,
            *,
            clock: Clock = local_now,
            sleep: Sleeper = asyncio.sleep,
            tick_seconds: float = 60.0,
            retry_delay_seconds: float = 3600.0,
            generation_hour: int = 9,
            recalculation_hour: int = 8,
    ) -> None:
        self._repo = repo
        self._clock = clock
        self._sleep = sleep
        self._tick_s = max(0.5, float(tick_seconds))
        self._retry_delay = timedelta(seconds=max(1.0, float(retry_delay_seconds)))

        self._tasks: list[ScheduledTask] = []
        self._running = False
        self._ticker: asyncio.Task[None] | None = None
        self._checks: set[asyncio.Task[None]] = set()

        now = self._clock()
        self.add_task(
            GENERATE_MISSING_RENTS,
            functools.partial(generate_missing_rents, repo),
            first_run=next_daily_run(now, generation_hour),
            interval=DAILY,
        )
        self.add_task(
            RECALCULATE_RENT_STATUSES,
            functools.partial(recalculate_rent_statuses, repo),
            first_run=next_daily_run(now, recalculation_hour),
            interval=DAILY,
        )

    @property
    def running(self) -> bool:
        return self._running

    def add_task(
            self,
            name: str,
            handler: TaskHandler,
            *,
            first_run: datetime,
            interval: timedelta,
    ) -> ScheduledTask:
        if not name or not name.strip():
            raise ValueError("task name is required")
        if any(t.name == name for t in self._tasks):
            raise ValueError(f"task already registered: {name}")
        if interval <= timedelta(0):
            raise ValueError("interval must be positive")

        task = ScheduledTask(name=name, next_run=first_run, interval=interval, handler=handler)
        self._tasks.append(task)
        logger.info("Scheduled task added: %s next_run=%s", name, first_run.isoformat())
        return task

    def get_task(self, name: str) -> ScheduledTask:
        for task in self._tasks:
            if task.name == name:
                return task
        raise TaskNotFoundError(f"Task not found: {name}")

    # ---- lifecycle ----

    async def start(self) -> None:
        """
        Start ticking and run one due-task check right away, so tasks that are
        already overdue at startup do not wait a full tick.

        Must be awaited from inside a running event loop.
        """
        if self._running:
            logger.warning("Task scheduler is already running")
            return

        self._running = True
        logger.info("Starting task scheduler (tick=%ss)", self._tick_s)
        self._ticker = asyncio.create_task(self._tick_loop(), name="rent-scheduler-ticker")
        await self._safe_check()

    def stop(self) -> None:
        """Stop ticking. Handlers already running are left to finish."""
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None
        if self._running:
            logger.info("Stopping task scheduler")
        self._running = False

    async def drain(self) -> None:
        """Wait for due-task checks spawned by the ticker to finish."""
        if self._checks:
            await asyncio.gather(*list(self._checks), return_exceptions=True)

    async def _tick_loop(self) -> None:
        # Each tick spawns its own check: a slow handler does not delay the next tick.
        while True:
            await self._sleep(self._tick_s)
            check = asyncio.create_task(self._safe_check())
            self._checks.add(check)
            check.add_done_callback(self._checks.discard)

    async def _safe_check(self) -> None:
        try:
            await self.run_due_tasks()
        except Exception:
            logger.exception("Due-task check failed")

    # ---- execution ----

    async def run_due_tasks(self) -> None:
        now = self._clock()
        for task in list(self._tasks):
            if task.in_progress or task.next_run > now:
                continue
            await self._run_scheduled(task, now)

    async def _run_scheduled(self, task: ScheduledTask, now: datetime) -> None:
        task.in_progress = True
        logger.info("Running task %s", task.name)
        try:
            task.last_result = await self._invoke(task, now)
        except Exception:
            task.next_run = now + self._retry_delay
            logger.exception(
                "Task %s failed; rescheduled for %s", task.name, task.next_run.isoformat()
            )
        else:
            task.last_run = now
            task.next_run = now + task.interval
            logger.info(
                "Task %s succeeded; next run at %s", task.name, task.next_run.isoformat()
            )
        finally:
            task.in_progress = False

    @staticmethod
    async def _invoke(task: ScheduledTask, now: datetime) -> Any:
        handler = task.handler
        if inspect.iscoroutinefunction(handler) or inspect.iscoroutinefunction(
                getattr(handler, "__call__", None)
        ):
            return await handler(now)
        # Blocking handlers (SQLite) run in a worker thread so ticks keep firing.
        return await asyncio.to_thread(task.handler, now)

    async def force_run_task(self, name: str) -> Any:
        """
        Run a task immediately, ignoring its schedule, and return the handler result.

        The schedule (last_run / next_run) only moves forward when the handler
        succeeds; a failure propagates to the caller and leaves it unchanged.
        """
        task = self.get_task(name)
        if task.in_progress:
            raise TaskBusyError(f"Task already running: {name}")

        logger.info("Force-running task %s", name)
        task.in_progress = True
        try:
            result = await self._invoke(task, self._clock())
        except Exception:
            logger.warning("Task %s force-run failed; schedule left unchanged", name)
            raise
        finally:
            task.in_progress = False

        done = self._clock()
        task.last_result = result
        task.last_run = done
        task.next_run = done + task.interval
        logger.info("Task %s force-run succeeded; next run at %s", name, task.next_run.isoformat())
        return result

    def get_tasks_status(self) -> list[dict[str, Any]]:
        return [
            {
                "name": task.name,
                "last_run": task.last_run,
                "next_run": task.next_run,
                "running": self._running,
                "in_progress": task.in_progress,
            }
            for task in self._tasks
        ]
