# src/rent_scheduler/rentals/generation.py

"""
Rent generation.

- generate_missing_rents: scheduler handler, bills the current month for every
  running contract whose payment day has arrived.
- generate_rents_for_period: manual generation for an explicit month/year
  (admin console), optionally forcing regeneration.
- preview_generation: dry run of the manual generation, writes nothing.

Generations run in a single transaction with one savepoint per contract: a contract that
fails is rolled back on its own and reported, the others are committed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from ..core.ports import RentalRepo, RentalTx
from .models import Contract, due_date_for

logger = logging.getLogger(__name__)

MIN_YEAR = 2020
MAX_YEAR = 2050


@dataclass(slots=True, frozen=True)
class CreatedRent:
    rent_id: int
    contract_id: int
    month: int
    year: int
    amount_due: Decimal
    due_date: date
    address: str
    tenants: str


@dataclass(slots=True, frozen=True)
class ContractError:
    contract_id: int
    address: str
    error: str


@dataclass(slots=True)
class GenerationReport:
    month: int
    year: int
    contracts_scanned: int = 0
    existing: int = 0
    created: list[CreatedRent] = field(default_factory=list)
    errors: list[ContractError] = field(default_factory=list)

    @property
    def created_count(self) -> int:
        return len(self.created)


def _create_for_contract(
    tx: RentalTx,
    contract: Contract,
    report: GenerationReport,
    *,
    due_date: date,
    note: str,
    replace: bool = False,
) -> None:
    try:
        with tx.savepoint():
            if replace:
                tx.delete_period_rent(contract.id, report.month, report.year)
            rent = tx.create_rent(
                contract.id,
                report.month,
                report.year,
                contract.amount_due,
                due_date,
                note,
            )
    except Exception as e:
        report.errors.append(
            ContractError(contract_id=contract.id, address=contract.property_address, error=str(e))
        )
        logger.exception("Rent creation failed contract_id=%s", contract.id)
        return

    report.created.append(
        CreatedRent(
            rent_id=rent.id,
            contract_id=contract.id,
            month=report.month,
            year=report.year,
            amount_due=rent.amount_due,
            due_date=due_date,
            address=contract.property_address,
            tenants=contract.tenants_display,
        )
    )
    logger.info(
        "Rent created rent_id=%s contract_id=%s %02d/%s amount=%s address=%s",
        rent.id,
        contract.id,
        report.month,
        report.year,
        rent.amount_due,
        contract.property_address,
    )


def _check_period(month: int, year: int) -> tuple[int, int]:
    month = int(month)
    year = int(year)
    if not 1 <= month <= 12:
        raise ValueError("month must be between 1 and 12")
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise ValueError(f"year must be between {MIN_YEAR} and {MAX_YEAR}")
    return month, year


def generate_missing_rents(repo: RentalRepo, now: datetime) -> GenerationReport:
    """
    Create the current month's rent for every running contract that lacks one
    and whose payment day has been reached.

    Running twice in the same month creates nothing the second time.
    Raises only when the transaction itself cannot run (e.g. the database is unavailable).
    """
    report = GenerationReport(month=now.month, year=now.year)
    logger.info("Checking for missing rents at %s", now.isoformat())

    with repo.transaction() as tx:
        contracts = tx.list_active_contracts_with_period_rent(report.month, report.year, now)

        for contract in contracts:
            report.contracts_scanned += 1

            if contract.period_rent is not None:
                report.existing += 1
                continue

            if now.day < contract.payment_day:
                continue

            _create_for_contract(
                tx,
                contract,
                report,
                due_date=date(report.year, report.month, contract.payment_day),
                note=f"Rent generated automatically by the scheduler on {now.isoformat()}",
            )

    if report.created:
        logger.info(
            "%d rents created automatically out of %d active contracts",
            report.created_count,
            report.contracts_scanned,
        )
    else:
        logger.info("No rent to create (%d contracts checked)", report.contracts_scanned)

    if report.errors:
        logger.warning("%d errors during automatic rent generation", len(report.errors))

    return report


def generate_rents_for_period(
    repo: RentalRepo,
    month: int,
    year: int,
    *,
    contract_ids: Iterable[int] | None = None,
    force: bool = False,
) -> GenerationReport:
    """
    Generate rents for an explicit billing period.

    Considers active contracts started on or before the end of the period,
    optionally restricted to `contract_ids`. Contracts already billed for the
    period are skipped unless `force` is set, in which case their rent is
    deleted and recreated. Due dates falling past the end of the month are
    moved to its last day.
    """
    month, year = _check_period(month, year)
    ids = None if contract_ids is None else [int(i) for i in contract_ids]
    report = GenerationReport(month=month, year=year)
    logger.info("Generating rents for %02d/%s (force=%s, contracts=%s)", month, year, force, ids)

    with repo.transaction() as tx:
        contracts = tx.list_contracts_for_period(month, year, ids)

        for contract in contracts:
            report.contracts_scanned += 1
            if contract.period_rent is not None:
                report.existing += 1
                if not force:
                    continue

            _create_for_contract(
                tx,
                contract,
                report,
                due_date=due_date_for(year, month, contract.payment_day),
                note=f"Rent generated for {month:02d}/{year}",
                replace=force and contract.period_rent is not None,
            )

    logger.info(
        "Generation for %02d/%s done: created=%d existing=%d errors=%d",
        month,
        year,
        report.created_count,
        report.existing,
        len(report.errors),
    )
    return report


PREVIEW_TO_GENERATE = "to-generate"
PREVIEW_EXISTS = "exists"


@dataclass(slots=True, frozen=True)
class PreviewLine:
    contract_id: int
    address: str
    tenants: str
    amount_due: Decimal
    due_date: date
    rent_exists: bool

    @property
    def action(self) -> str:
        return PREVIEW_EXISTS if self.rent_exists else PREVIEW_TO_GENERATE


@dataclass(slots=True)
class GenerationPreview:
    month: int
    year: int
    lines: list[PreviewLine] = field(default_factory=list)

    @property
    def contracts(self) -> int:
        return len(self.lines)

    @property
    def to_generate(self) -> int:
        return sum(1 for line in self.lines if not line.rent_exists)

    @property
    def existing(self) -> int:
        return sum(1 for line in self.lines if line.rent_exists)

    @property
    def total_amount(self) -> Decimal:
        """Amount that generating the period would bill (existing rents excluded)."""
        return sum((line.amount_due for line in self.lines if not line.rent_exists), Decimal("0"))


def preview_generation(
    repo: RentalRepo,
    month: int,
    year: int,
    *,
    contract_ids: Iterable[int] | None = None,
) -> GenerationPreview:
    """
    Show what generate_rents_for_period would do for the period, without writing.

    Same contract selection and due dates as the real generation.
    """
    month, year = _check_period(month, year)
    ids = None if contract_ids is None else [int(i) for i in contract_ids]
    preview = GenerationPreview(month=month, year=year)

    with repo.reading() as tx:
        contracts = tx.list_contracts_for_period(month, year, ids)

    for contract in contracts:
        preview.lines.append(
            PreviewLine(
                contract_id=contract.id,
                address=contract.property_address,
                tenants=contract.tenants_display,
                amount_due=contract.amount_due,
                due_date=due_date_for(year, month, contract.payment_day),
                rent_exists=contract.period_rent is not None,
            )
        )

    logger.debug(
        "Generation preview %02d/%s: contracts=%d to_generate=%d existing=%d total=%s",
        month,
        year,
        preview.contracts,
        preview.to_generate,
        preview.existing,
        preview.total_amount,
    )
    return preview
