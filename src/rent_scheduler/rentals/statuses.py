# src/rent_scheduler/rentals/statuses.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from ..core.ports import RentalRepo
from .models import Rent, RentStatus, compute_rent_status, due_date_for

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class StatusChange:
    rent_id: int
    old: RentStatus
    new: RentStatus


@dataclass(slots=True)
class RecalculationReport:
    scanned: int = 0
    changes: list[StatusChange] = field(default_factory=list)

    @property
    def updated(self) -> int:
        return len(self.changes)


def expected_status(rent: Rent, now: datetime) -> RentStatus:
    due = rent.due_date
    if due is None:
        if rent.payment_day is None:
            raise ValueError(f"rent {rent.id} has neither a due date nor a payment day")
        due = due_date_for(rent.year, rent.month, rent.payment_day)
    return compute_rent_status(rent.amount_due, rent.amount_paid, due, now)


def recalculate_rent_statuses(repo: RentalRepo, now: datetime) -> RecalculationReport:
    """
    Bring every stored rent status in line with its amounts and due date.

    Only rents whose status actually changes are written. Runs in one transaction:
    any storage error rolls back every update of the run.
    """
    logger.info("Recalculating rent statuses at %s", now.isoformat())
    report = RecalculationReport()

    with repo.transaction() as tx:
        for rent in tx.list_all_rents_with_contract_payment_day():
            report.scanned += 1
            new_status = expected_status(rent, now)
            if new_status == rent.status:
                continue

            tx.update_rent_status(rent.id, new_status)
            report.changes.append(StatusChange(rent_id=rent.id, old=rent.status, new=new_status))
            logger.info("Rent %s status: %s -> %s", rent.id, rent.status.value, new_status.value)

    logger.info("Status recalculation done: %d rents updated", report.updated)
    return report
