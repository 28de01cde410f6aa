# src/rent_scheduler/rentals/payments.py

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from ..core.ports import RentalRepo
from .models import Payment, RentNotFoundError
from .statuses import expected_status

logger = logging.getLogger(__name__)


def record_payment(
    repo: RentalRepo,
    rent_id: int,
    amount: Decimal | int | str,
    *,
    paid_on: date,
    method: str,
    payer: str,
    now: datetime,
) -> Payment:
    """
    Record a payment against a rent and refresh the rent's paid amount and status.

    Paying more than what is left is accepted (logged as a warning).
    """
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise ValueError(f"invalid amount: {amount!r}") from None
    if not value.is_finite() or value <= 0:
        raise ValueError("amount must be positive")

    with repo.transaction() as tx:
        rent = tx.get_rent(rent_id)
        if rent is None:
            raise RentNotFoundError(f"Rent not found: {rent_id}")

        remaining = rent.amount_due - rent.amount_paid
        if value > remaining:
            logger.warning(
                "Overpayment on rent %s: amount=%s remaining=%s", rent_id, value, remaining
            )

        payment = tx.add_payment(
            rent_id=rent.id,
            amount=value,
            paid_on=paid_on,
            method=method,
            payer=payer,
        )
        rent.amount_paid += value
        new_status = expected_status(rent, now)
        tx.set_rent_payment_state(rent.id, rent.amount_paid, new_status)

    logger.info(
        "Payment recorded payment_id=%s rent_id=%s amount=%s paid=%s/%s status=%s",
        payment.id,
        rent_id,
        value,
        rent.amount_paid,
        rent.amount_due,
        new_status.value,
    )
    return payment
