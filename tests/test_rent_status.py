# tests/test_rent_status.py

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest

from rent_scheduler.rentals.models import (
    Rent,
    RentStatus,
    compute_rent_status,
    due_date_for,
    next_period,
)
from rent_scheduler.rentals.statuses import expected_status


@pytest.mark.parametrize(
    ("due", "paid", "due_date", "now", "expected"),
    [
        ("800", "800", date(2024, 1, 5), datetime(2024, 1, 1), RentStatus.PAID),
        ("800", "800", date(2024, 1, 5), datetime(2024, 2, 1), RentStatus.PAID),
        ("800", "900", date(2024, 1, 5), datetime(2024, 2, 1), RentStatus.PAID),
        ("800", "0", date(2024, 1, 5), datetime(2024, 1, 10), RentStatus.LATE),
        ("800", "300", date(2024, 1, 5), datetime(2024, 1, 10), RentStatus.PARTIAL),
        ("800", "0", date(2024, 1, 5), datetime(2024, 1, 1), RentStatus.PENDING),
        ("800", "300", date(2024, 1, 5), datetime(2024, 1, 1), RentStatus.PARTIAL),
    ],
)
def test_status_formula(due, paid, due_date, now, expected) -> None:
    assert compute_rent_status(Decimal(due), Decimal(paid), due_date, now) == expected


def test_rent_is_late_from_the_start_of_its_due_day() -> None:
    due_date = date(2024, 1, 5)
    assert compute_rent_status(Decimal("800"), Decimal("0"), due_date, datetime(2024, 1, 5)) == RentStatus.PENDING
    assert compute_rent_status(Decimal("800"), Decimal("0"), due_date, datetime(2024, 1, 5, 0, 1)) == RentStatus.LATE


def test_due_date_is_clamped_to_month_end() -> None:
    assert due_date_for(2024, 2, 31) == date(2024, 2, 29)
    assert due_date_for(2023, 2, 30) == date(2023, 2, 28)
    assert due_date_for(2024, 4, 31) == date(2024, 4, 30)
    assert due_date_for(2024, 3, 15) == date(2024, 3, 15)


def test_next_period_rolls_over_the_year() -> None:
    assert next_period(datetime(2024, 3, 31, 23, 0)) == (4, 2024)
    assert next_period(date(2024, 12, 10)) == (1, 2025)


def test_expected_status_falls_back_to_payment_day() -> None:
    rent = Rent(
        id=1,
        contract_id=1,
        month=2,
        year=2024,
        amount_due=Decimal("750"),
        amount_paid=Decimal("0"),
        due_date=None,
        status=RentStatus.PENDING,
        payment_day=31,
    )
    # Due on 2024-02-29 (clamped), so still pending on the 28th.
    assert expected_status(rent, datetime(2024, 2, 28, 12, 0)) == RentStatus.PENDING
    assert expected_status(rent, datetime(2024, 3, 1)) == RentStatus.LATE
