# src/rent_scheduler/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from ..core.ports import TaskHandler


class TaskNotFoundError(LookupError):
    pass


class TaskBusyError(RuntimeError):
    pass


@dataclass(slots=True)
class ScheduledTask:
    """
    A named periodic job.

    Notes:
    - in_progress is set while the handler runs; a task in progress is never
      started a second time, neither by a tick nor by a forced run.
    - last_run is only advanced by successful runs.
    """

    name: str
    next_run: datetime
    interval: timedelta
    handler: TaskHandler
    last_run: datetime | None = None
    in_progress: bool = False
    last_result: Any = field(default=None, repr=False)


def next_daily_run(now: datetime, hour: int, minute: int = 0) -> datetime:
    """Next occurrence of hour:minute: today if still ahead, otherwise tomorrow."""
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate
