# src/rent_scheduler/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the SQLite store and the task scheduler into AppState.

The scheduler is built here and owned by the caller; nothing is created at import time.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.ports import Clock
from ..core.state import AppState
from ..rentals.store import RentalStore
from ..tasks.task_scheduler import TaskScheduler, local_now

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None, clock: Clock = local_now) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    store = RentalStore(settings.db_path)
    scheduler = TaskScheduler(
        store,
        clock=clock,
        tick_seconds=settings.tick_seconds,
        retry_delay_seconds=settings.retry_delay_seconds,
        generation_hour=settings.generation_hour,
        recalculation_hour=settings.recalculation_hour,
    )
    logger.debug("AppState created db=%s", settings.db_path)
    return AppState(settings=settings, store=store, scheduler=scheduler, clock=clock)
