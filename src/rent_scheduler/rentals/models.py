# src/rent_scheduler/rentals/models.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import StrEnum

from dateutil.relativedelta import relativedelta


class ContractStatus(StrEnum):
    """Contract lifecycle status. Only ACTIVE contracts are billed."""

    ACTIVE = "active"
    TERMINATED = "terminated"
    EXPIRED = "expired"
    SUSPENDED = "suspended"

    @classmethod
    def from_db(cls, raw: str | None) -> ContractStatus:
        if not raw:
            return cls.SUSPENDED
        try:
            return cls(raw)
        except ValueError:
            return cls.SUSPENDED


class RentStatus(StrEnum):
    PENDING = "pending"
    PARTIAL = "partial"
    LATE = "late"
    PAID = "paid"

    @classmethod
    def from_db(cls, raw: str | None) -> RentStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except ValueError:
            return cls.PENDING


class RentNotFoundError(LookupError):
    pass


@dataclass(slots=True)
class Rent:
    id: int
    contract_id: int
    month: int
    year: int
    amount_due: Decimal
    amount_paid: Decimal
    due_date: date | None
    status: RentStatus
    note: str = ""

    # Joined from the owning contract; only filled by queries that need it.
    payment_day: int | None = None


@dataclass(slots=True)
class Contract:
    id: int
    property_id: int
    base_rent: Decimal
    monthly_charges: Decimal
    start_date: date
    end_date: date | None
    payment_day: int
    status: ContractStatus

    # Display-only fields joined by the store.
    property_address: str = ""
    tenant_names: list[str] = field(default_factory=list)

    # Rent already billed for the period the contract was fetched for, if any.
    period_rent: Rent | None = None

    @property
    def amount_due(self) -> Decimal:
        return self.base_rent + self.monthly_charges

    @property
    def tenants_display(self) -> str:
        return ", ".join(self.tenant_names)


@dataclass(slots=True)
class Payment:
    id: int
    rent_id: int
    amount: Decimal
    paid_on: date
    method: str
    payer: str


def due_date_for(year: int, month: int, payment_day: int) -> date:
    """
    Due date of a billing period.

    Payment days past the end of the month fall on the month's last day
    (payment_day=31 in February -> 28 or 29).
    """
    return date(year, month, 1) + relativedelta(day=payment_day)


def next_period(now: datetime | date) -> tuple[int, int]:
    """(month, year) of the billing period after the one containing `now`."""
    nxt = date(now.year, now.month, 1) + relativedelta(months=1)
    return nxt.month, nxt.year


def compute_rent_status(
    amount_due: Decimal,
    amount_paid: Decimal,
    due_date: date,
    now: datetime,
) -> RentStatus:
    """
    Status of a rent as a pure function of its amounts, due date and the current time.

    A rent becomes overdue as soon as its due day starts (now > due_date 00:00).
    Partial payments stay PARTIAL whether or not the due date has passed.
    """
    if amount_paid >= amount_due:
        return RentStatus.PAID

    overdue = now > datetime.combine(due_date, time.min, tzinfo=now.tzinfo)
    if amount_paid > 0:
        return RentStatus.PARTIAL
    return RentStatus.LATE if overdue else RentStatus.PENDING
