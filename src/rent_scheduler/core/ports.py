from __future__ import annotations

"""
Ports (interfaces) used by the core.

The scheduler and the rental services depend on Protocols instead of concrete
implementations. This keeps storage swappable and makes testing easier
(tests use the SQLite store on a tmp path, or small fakes).
"""

from collections.abc import Awaitable, Callable, Iterable
from contextlib import AbstractContextManager
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Protocol

Clock = Callable[[], datetime]
Sleeper = Callable[[float], Awaitable[None]]

# A task handler receives the scheduler's "now" for the run.
# It may be a plain function (run in a worker thread) or a coroutine function.
TaskHandler = Callable[[datetime], Any]


class RentalTx(Protocol):
    """Queries available inside one open transaction."""

    def savepoint(self) -> AbstractContextManager[RentalTx]: ...

    # Generation
    def list_active_contracts_with_period_rent(
            self, month: int, year: int, now: datetime
    ) -> list[Any]: ...
    def list_contracts_for_period(
            self, month: int, year: int, contract_ids: Iterable[int] | None = None
    ) -> list[Any]: ...
    def create_rent(
            self,
            contract_id: int,
            month: int,
            year: int,
            amount_due: Decimal,
            due_date: date,
            note: str,
    ) -> Any: ...
    def delete_period_rent(self, contract_id: int, month: int, year: int) -> int: ...

    # Status recalculation
    def list_all_rents_with_contract_payment_day(self) -> list[Any]: ...
    def update_rent_status(self, rent_id: int, new_status: Any) -> None: ...

    # Payments
    def get_rent(self, rent_id: int) -> Any | None: ...
    def add_payment(
            self,
            *,
            rent_id: int,
            amount: Decimal,
            paid_on: date,
            method: str,
            payer: str,
    ) -> Any: ...
    def set_rent_payment_state(self, rent_id: int, amount_paid: Decimal, status: Any) -> None: ...


class RentalRepo(Protocol):
    def transaction(self) -> AbstractContextManager[RentalTx]: ...

    # Read-only scope: no write lock, nothing may be written through it.
    def reading(self) -> AbstractContextManager[RentalTx]: ...
