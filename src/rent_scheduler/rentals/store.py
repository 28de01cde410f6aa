# src/rent_scheduler/rentals/store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
from collections.abc import Iterable, Iterator
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any

from .models import Contract, ContractStatus, Payment, Rent, RentStatus, due_date_for

logger = logging.getLogger(__name__)


def _dec(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    return Decimal(str(value))


def _date(value: str | None) -> date | None:
    if not value:
        return None
    return date.fromisoformat(value)


def _day(value: datetime | date) -> str:
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


class RentalTx:
    """
    Queries bound to one open SQLite transaction.

    Obtained from RentalStore.transaction(); never constructed directly by callers.
    savepoint() opens a nested scope that can be rolled back on its own while the
    enclosing transaction keeps going.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._sp_seq = 0

    @contextlib.contextmanager
    def savepoint(self) -> Iterator[RentalTx]:
        self._sp_seq += 1
        name = f"sp_{self._sp_seq}"
        self._conn.execute(f"SAVEPOINT {name}")
        try:
            yield self
        except BaseException:
            self._conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
            self._conn.execute(f"RELEASE SAVEPOINT {name}")
            raise
        self._conn.execute(f"RELEASE SAVEPOINT {name}")

    # ---- row mapping ----

    @staticmethod
    def _row_to_rent(row: sqlite3.Row, prefix: str = "") -> Rent:
        keys = row.keys()
        payment_day_key = f"{prefix}payment_day"
        return Rent(
            id=int(row[f"{prefix}id"]),
            contract_id=int(row[f"{prefix}contract_id"]),
            month=int(row[f"{prefix}month"]),
            year=int(row[f"{prefix}year"]),
            amount_due=_dec(row[f"{prefix}amount_due"]),
            amount_paid=_dec(row[f"{prefix}amount_paid"]),
            due_date=_date(row[f"{prefix}due_date"]),
            status=RentStatus.from_db(row[f"{prefix}status"]),
            note=str(row[f"{prefix}note"] or ""),
            payment_day=int(row[payment_day_key]) if payment_day_key in keys and row[payment_day_key] is not None else None,
        )

    @staticmethod
    def _row_to_contract(row: sqlite3.Row) -> Contract:
        address = str(row["address"] or "")
        city = str(row["city"] or "")
        return Contract(
            id=int(row["id"]),
            property_id=int(row["property_id"]),
            base_rent=_dec(row["base_rent"]),
            monthly_charges=_dec(row["monthly_charges"]),
            start_date=date.fromisoformat(row["start_date"]),
            end_date=_date(row["end_date"]),
            payment_day=int(row["payment_day"]),
            status=ContractStatus.from_db(row["status"]),
            property_address=f"{address}, {city}" if city else address,
        )

    _CONTRACT_SELECT = """
        SELECT c.id, c.property_id, c.base_rent, c.monthly_charges, c.start_date,
               c.end_date, c.payment_day, c.status,
               p.address, p.city,
               r.id AS r_id, r.contract_id AS r_contract_id, r.month AS r_month,
               r.year AS r_year, r.amount_due AS r_amount_due, r.amount_paid AS r_amount_paid,
               r.due_date AS r_due_date, r.status AS r_status, r.note AS r_note
        FROM contracts c
        JOIN properties p ON p.id = c.property_id
        LEFT JOIN rents r ON r.contract_id = c.id AND r.month = ? AND r.year = ?
    """

    def _contracts_from_rows(self, rows: list[sqlite3.Row]) -> list[Contract]:
        contracts: list[Contract] = []
        for row in rows:
            contract = self._row_to_contract(row)
            if row["r_id"] is not None:
                contract.period_rent = self._row_to_rent(row, prefix="r_")
            contracts.append(contract)

        names = self._tenant_names([c.id for c in contracts])
        for contract in contracts:
            contract.tenant_names = names.get(contract.id, [])
        return contracts

    def _tenant_names(self, contract_ids: list[int]) -> dict[int, list[str]]:
        if not contract_ids:
            return {}
        placeholders = ",".join("?" for _ in contract_ids)
        cur = self._conn.execute(
            f"""
            SELECT ct.contract_id, t.first_name, t.last_name
            FROM contract_tenants ct
            JOIN tenants t ON t.id = ct.tenant_id
            WHERE ct.contract_id IN ({placeholders})
            ORDER BY ct.contract_id, t.id
            """,
            contract_ids,
        )
        out: dict[int, list[str]] = {}
        for row in cur.fetchall():
            full = f"{row['first_name'] or ''} {row['last_name'] or ''}".strip()
            out.setdefault(int(row["contract_id"]), []).append(full)
        return out

    # ---- contracts ----

    def add_property(self, *, address: str, city: str = "") -> int:
        cur = self._conn.execute(
            "INSERT INTO properties(address, city) VALUES (?, ?)", (address.strip(), city.strip())
        )
        return int(cur.lastrowid or 0)

    def add_tenant(self, *, first_name: str, last_name: str, email: str | None = None) -> int:
        cur = self._conn.execute(
            "INSERT INTO tenants(first_name, last_name, email) VALUES (?, ?, ?)",
            (first_name.strip(), last_name.strip(), email),
        )
        return int(cur.lastrowid or 0)

    def add_contract(
        self,
        *,
        property_id: int,
        base_rent: Decimal,
        monthly_charges: Decimal,
        start_date: date,
        payment_day: int,
        end_date: date | None = None,
        status: ContractStatus = ContractStatus.ACTIVE,
        tenant_ids: Iterable[int] = (),
    ) -> int:
        if not 1 <= int(payment_day) <= 31:
            raise ValueError("payment_day must be between 1 and 31")

        cur = self._conn.execute(
            """
            INSERT INTO contracts(
                property_id, base_rent, monthly_charges, start_date, end_date,
                payment_day, status, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                int(property_id),
                str(_dec(base_rent)),
                str(_dec(monthly_charges)),
                start_date.isoformat(),
                end_date.isoformat() if end_date else None,
                int(payment_day),
                status.value,
                time.time(),
            ),
        )
        contract_id = int(cur.lastrowid or 0)
        self._conn.executemany(
            "INSERT INTO contract_tenants(contract_id, tenant_id) VALUES (?, ?)",
            [(contract_id, int(t)) for t in tenant_ids],
        )
        return contract_id

    def set_contract_status(self, contract_id: int, status: ContractStatus) -> None:
        self._conn.execute(
            "UPDATE contracts SET status = ? WHERE id = ?", (status.value, int(contract_id))
        )

    def list_active_contracts_with_period_rent(
        self, month: int, year: int, now: datetime
    ) -> list[Contract]:
        """
        Active contracts running at `now`, each joined with its rent for (month, year) if any.
        """
        today = _day(now)
        cur = self._conn.execute(
            self._CONTRACT_SELECT
            + """
            WHERE c.status = 'active'
              AND c.start_date <= ?
              AND (c.end_date IS NULL OR c.end_date >= ?)
            ORDER BY c.id
            """,
            (int(month), int(year), today, today),
        )
        return self._contracts_from_rows(cur.fetchall())

    def list_contracts_for_period(
        self, month: int, year: int, contract_ids: Iterable[int] | None = None
    ) -> list[Contract]:
        """
        Active contracts started on or before the last day of (month, year).

        End dates are not checked: leases renew tacitly while the contract stays active.
        """
        last_day = due_date_for(int(year), int(month), 31).isoformat()
        sql = self._CONTRACT_SELECT + " WHERE c.status = 'active' AND c.start_date <= ?"
        params: list[Any] = [int(month), int(year), last_day]

        if contract_ids is not None:
            ids = [int(i) for i in contract_ids]
            if not ids:
                return []
            sql += f" AND c.id IN ({','.join('?' for _ in ids)})"
            params.extend(ids)

        cur = self._conn.execute(sql + " ORDER BY c.id", params)
        return self._contracts_from_rows(cur.fetchall())

    # ---- rents ----

    def create_rent(
        self,
        contract_id: int,
        month: int,
        year: int,
        amount_due: Decimal,
        due_date: date,
        note: str,
    ) -> Rent:
        now = time.time()
        cur = self._conn.execute(
            """
            INSERT INTO rents(
                contract_id, month, year, amount_due, amount_paid, due_date,
                status, note, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, '0', ?, ?, ?, ?, ?)
            """,
            (
                int(contract_id),
                int(month),
                int(year),
                str(_dec(amount_due)),
                due_date.isoformat(),
                RentStatus.PENDING.value,
                note,
                now,
                now,
            ),
        )
        rowid = cur.lastrowid
        if rowid is None:
            raise RuntimeError("SQLite did not return lastrowid for rents insert")
        return Rent(
            id=int(rowid),
            contract_id=int(contract_id),
            month=int(month),
            year=int(year),
            amount_due=_dec(amount_due),
            amount_paid=Decimal("0"),
            due_date=due_date,
            status=RentStatus.PENDING,
            note=note,
        )

    def delete_period_rent(self, contract_id: int, month: int, year: int) -> int:
        cur = self._conn.execute(
            "DELETE FROM rents WHERE contract_id = ? AND month = ? AND year = ?",
            (int(contract_id), int(month), int(year)),
        )
        return int(cur.rowcount)

    def get_rent(self, rent_id: int) -> Rent | None:
        cur = self._conn.execute(
            """
            SELECT r.*, c.payment_day
            FROM rents r JOIN contracts c ON c.id = r.contract_id
            WHERE r.id = ?
            """,
            (int(rent_id),),
        )
        row = cur.fetchone()
        return self._row_to_rent(row) if row else None

    def list_rents(self, *, month: int | None = None, year: int | None = None) -> list[Rent]:
        sql = "SELECT r.*, c.payment_day FROM rents r JOIN contracts c ON c.id = r.contract_id"
        where: list[str] = []
        params: list[Any] = []
        if month is not None:
            where.append("r.month = ?")
            params.append(int(month))
        if year is not None:
            where.append("r.year = ?")
            params.append(int(year))
        if where:
            sql += " WHERE " + " AND ".join(where)
        cur = self._conn.execute(sql + " ORDER BY r.year, r.month, r.contract_id", params)
        return [self._row_to_rent(r) for r in cur.fetchall()]

    def list_all_rents_with_contract_payment_day(self) -> list[Rent]:
        return self.list_rents()

    def update_rent_status(self, rent_id: int, new_status: RentStatus) -> None:
        self._conn.execute(
            "UPDATE rents SET status = ?, updated_at = ? WHERE id = ?",
            (new_status.value, time.time(), int(rent_id)),
        )

    def set_rent_payment_state(
        self, rent_id: int, amount_paid: Decimal, status: RentStatus
    ) -> None:
        self._conn.execute(
            "UPDATE rents SET amount_paid = ?, status = ?, updated_at = ? WHERE id = ?",
            (str(_dec(amount_paid)), status.value, time.time(), int(rent_id)),
        )

    # ---- payments ----

    def add_payment(
        self,
        *,
        rent_id: int,
        amount: Decimal,
        paid_on: date,
        method: str,
        payer: str,
    ) -> Payment:
        cur = self._conn.execute(
            """
            INSERT INTO payments(rent_id, amount, paid_on, method, payer, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (int(rent_id), str(_dec(amount)), paid_on.isoformat(), method, payer, time.time()),
        )
        return Payment(
            id=int(cur.lastrowid or 0),
            rent_id=int(rent_id),
            amount=_dec(amount),
            paid_on=paid_on,
            method=method,
            payer=payer,
        )

    def list_payments(self, rent_id: int) -> list[Payment]:
        cur = self._conn.execute(
            "SELECT * FROM payments WHERE rent_id = ? ORDER BY paid_on, id", (int(rent_id),)
        )
        return [
            Payment(
                id=int(row["id"]),
                rent_id=int(row["rent_id"]),
                amount=_dec(row["amount"]),
                paid_on=date.fromisoformat(row["paid_on"]),
                method=str(row["method"] or ""),
                payer=str(row["payer"] or ""),
            )
            for row in cur.fetchall()
        ]


class RentalStore:
    """
    SQLite store for properties, tenants, contracts, rents and payments.

    The schema is created on first use. (contract_id, month, year) is UNIQUE on
    rents, so a billing period can never be invoiced twice even if two writers race.

    Thread-safety:
    - each call (or transaction scope) opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "rentals.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("RentalStore ready db=%s rents=%s", self._db_path, self.count_rents())

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        # Autocommit mode: transactions are opened explicitly with BEGIN / SAVEPOINT.
        conn = sqlite3.connect(str(self._db_path), timeout=30.0, isolation_level=None)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        conn.execute("PRAGMA foreign_keys=ON")
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS properties (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    address TEXT NOT NULL,
                    city TEXT NOT NULL DEFAULT ''
                );

                CREATE TABLE IF NOT EXISTS tenants (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    first_name TEXT NOT NULL DEFAULT '',
                    last_name TEXT NOT NULL DEFAULT '',
                    email TEXT
                );

                CREATE TABLE IF NOT EXISTS contracts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    property_id INTEGER NOT NULL REFERENCES properties(id),
                    base_rent TEXT NOT NULL,
                    monthly_charges TEXT NOT NULL DEFAULT '0',
                    start_date TEXT NOT NULL,
                    end_date TEXT,
                    payment_day INTEGER NOT NULL CHECK (payment_day BETWEEN 1 AND 31),
                    status TEXT NOT NULL DEFAULT 'active',
                    created_at REAL NOT NULL
                );

                CREATE TABLE IF NOT EXISTS contract_tenants (
                    contract_id INTEGER NOT NULL REFERENCES contracts(id) ON DELETE CASCADE,
                    tenant_id INTEGER NOT NULL REFERENCES tenants(id) ON DELETE CASCADE,
                    PRIMARY KEY (contract_id, tenant_id)
                );

                CREATE TABLE IF NOT EXISTS rents (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    contract_id INTEGER NOT NULL REFERENCES contracts(id) ON DELETE CASCADE,
                    month INTEGER NOT NULL CHECK (month BETWEEN 1 AND 12),
                    year INTEGER NOT NULL,
                    amount_due TEXT NOT NULL,
                    amount_paid TEXT NOT NULL DEFAULT '0',
                    due_date TEXT,
                    status TEXT NOT NULL DEFAULT 'pending',
                    note TEXT NOT NULL DEFAULT '',
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL,
                    UNIQUE (contract_id, month, year)
                );

                CREATE TABLE IF NOT EXISTS payments (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    rent_id INTEGER NOT NULL REFERENCES rents(id) ON DELETE CASCADE,
                    amount TEXT NOT NULL,
                    paid_on TEXT NOT NULL,
                    method TEXT NOT NULL DEFAULT '',
                    payer TEXT NOT NULL DEFAULT '',
                    created_at REAL NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_contracts_status ON contracts(status, start_date);
                CREATE INDEX IF NOT EXISTS idx_rents_period ON rents(year, month);
                CREATE INDEX IF NOT EXISTS idx_payments_rent ON payments(rent_id);
                """
            )
        finally:
            conn.close()

    # ---- transactions ----

    @contextlib.contextmanager
    def transaction(self) -> Iterator[RentalTx]:
        """
        Open a write transaction. Commits when the block exits normally,
        rolls back everything when it raises.
        """
        conn = self._get_conn()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield RentalTx(conn)
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    @contextlib.contextmanager
    def reading(self) -> Iterator[RentalTx]:
        """
        Open a read-only scope. No write lock is taken, so reads are not held up
        by a writer (WAL); use transaction() for anything that writes.
        """
        conn = self._get_conn()
        try:
            yield RentalTx(conn)
        finally:
            conn.close()

    # ---- public API (one transaction or read scope per call) ----

    def count_rents(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM rents").fetchone()
            return int(n)
        finally:
            conn.close()

    def add_property(self, *, address: str, city: str = "") -> int:
        with self.transaction() as tx:
            return tx.add_property(address=address, city=city)

    def add_tenant(self, *, first_name: str, last_name: str, email: str | None = None) -> int:
        with self.transaction() as tx:
            return tx.add_tenant(first_name=first_name, last_name=last_name, email=email)

    def add_contract(self, **kwargs: Any) -> int:
        with self.transaction() as tx:
            contract_id = tx.add_contract(**kwargs)
        logger.debug("Contract added id=%s", contract_id)
        return contract_id

    def set_contract_status(self, contract_id: int, status: ContractStatus) -> None:
        with self.transaction() as tx:
            tx.set_contract_status(contract_id, status)

    def get_rent(self, rent_id: int) -> Rent | None:
        with self.reading() as tx:
            return tx.get_rent(rent_id)

    def list_rents(self, *, month: int | None = None, year: int | None = None) -> list[Rent]:
        with self.reading() as tx:
            return tx.list_rents(month=month, year=year)

    def list_payments(self, rent_id: int) -> list[Payment]:
        with self.reading() as tx:
            return tx.list_payments(rent_id)
