# tests/conftest.py

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace

import pytest

from rent_scheduler.cli.bootstrap import create_initial_state
from rent_scheduler.core.state import AppState
from rent_scheduler.rentals.models import ContractStatus
from rent_scheduler.rentals.store import RentalStore

from .fakes import FakeClock


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the bootstrap.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="rent-scheduler-test",
        log_level="DEBUG",
        console_enabled=False,
        scheduler_enabled=True,
        data_dir=tmp_path / "data",
        db_path=tmp_path / "data" / "rentals.sqlite3",
        tick_seconds=60.0,
        retry_delay_seconds=3600.0,
        generation_hour=9,
        recalculation_hour=8,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 3, 2, 10, 0))


@pytest.fixture()
def store(tmp_path: Path) -> RentalStore:
    # Real SQLite store: its transaction/savepoint behaviour is part of what we test.
    return RentalStore(tmp_path / "rentals.sqlite3")


@pytest.fixture()
def state(settings: SimpleNamespace, clock: FakeClock) -> AppState:
    return create_initial_state(settings=settings, clock=clock)


@pytest.fixture()
def make_contract(store: RentalStore) -> Callable[..., int]:
    """
    Create a property + tenant + contract in one call.

    Defaults: ACTIVE, 700 + 50 charges, started 2023-01-01, no end date, paid on the 1st.
    """

    def _make(
        *,
        target: RentalStore | None = None,
        address: str = "12 rue des Lilas",
        city: str = "Lyon",
        tenants: tuple[tuple[str, str], ...] = (("Jean", "Dupont"),),
        base_rent: str = "700",
        monthly_charges: str = "50",
        start_date: date = date(2023, 1, 1),
        end_date: date | None = None,
        payment_day: int = 1,
        status: ContractStatus = ContractStatus.ACTIVE,
    ) -> int:
        db = target or store
        property_id = db.add_property(address=address, city=city)
        tenant_ids = [db.add_tenant(first_name=f, last_name=l) for f, l in tenants]
        return db.add_contract(
            property_id=property_id,
            base_rent=Decimal(base_rent),
            monthly_charges=Decimal(monthly_charges),
            start_date=start_date,
            end_date=end_date,
            payment_day=payment_day,
            status=status,
            tenant_ids=tenant_ids,
        )

    return _make
