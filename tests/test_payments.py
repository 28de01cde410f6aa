# tests/test_payments.py

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest

from rent_scheduler.rentals.generation import generate_missing_rents
from rent_scheduler.rentals.models import RentNotFoundError, RentStatus
from rent_scheduler.rentals.payments import record_payment

NOW = datetime(2024, 3, 2, 12, 0)


def _pay(store, rent_id, amount, now=NOW):
    return record_payment(
        store,
        rent_id,
        amount,
        paid_on=now.date(),
        method="transfer",
        payer="Jean Dupont",
        now=now,
    )


@pytest.fixture()
def rent(store, make_contract):
    make_contract(payment_day=1)
    generate_missing_rents(store, datetime(2024, 3, 2, 9, 0))
    return store.list_rents()[0]


def test_payments_move_rent_to_partial_then_paid(store, rent) -> None:
    _pay(store, rent.id, "300")
    after_first = store.get_rent(rent.id)
    assert after_first.amount_paid == Decimal("300")
    assert after_first.status == RentStatus.PARTIAL

    _pay(store, rent.id, Decimal("450"))
    after_second = store.get_rent(rent.id)
    assert after_second.amount_paid == Decimal("750")
    assert after_second.status == RentStatus.PAID

    payments = store.list_payments(rent.id)
    assert [p.amount for p in payments] == [Decimal("300"), Decimal("450")]
    assert payments[0].paid_on == date(2024, 3, 2)


def test_overpayment_is_accepted(store, rent, caplog) -> None:
    _pay(store, rent.id, "800")

    assert store.get_rent(rent.id).status == RentStatus.PAID
    assert "Overpayment" in caplog.text


@pytest.mark.parametrize("amount", ["0", "-5", "abc", "NaN"])
def test_invalid_amount_is_rejected(store, rent, amount) -> None:
    with pytest.raises(ValueError):
        _pay(store, rent.id, amount)
    assert store.list_payments(rent.id) == []


def test_unknown_rent_is_rejected(store, rent) -> None:
    with pytest.raises(RentNotFoundError):
        _pay(store, rent.id + 100, "10")
