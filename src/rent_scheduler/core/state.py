# src/rent_scheduler/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from .ports import Clock

if TYPE_CHECKING:
    from ..rentals.store import RentalStore
    from ..tasks.task_scheduler import TaskScheduler


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: Any

    store: RentalStore
    scheduler: TaskScheduler

    # Same clock as the scheduler, so console commands and tasks agree on "now".
    clock: Clock = datetime.now
