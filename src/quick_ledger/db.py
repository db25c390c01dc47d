# Quick Ledger - Shorthand bulk entry & ledger engine for small shops
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.


"""
Database layer for Quick Ledger.

This module provides the low-level accessors for the SQLite ledger store.
It is responsible for:

- Initializing the database schema.
- Opening single-writer transactions for the apply / undo / delete engines.
- Inserting and deleting ledger rows and adjusting running balances.
- Recording applied batches (manual text, CSV import).
- Exposing typed read helpers and filtered searches over ledger rows.

The database is the single source of truth for committed transactions and
for the running balances of parties and staff members.

------------------------------------------------------------------------------
Schema Overview
------------------------------------------------------------------------------

1) parties
   - id                     TEXT PRIMARY KEY
   - name                   TEXT NOT NULL UNIQUE COLLATE NOCASE
   - credit_limit_cents     INTEGER NOT NULL DEFAULT 0
   - current_balance_cents  INTEGER NOT NULL DEFAULT 0  -- positive = party owes
   - created_at, updated_at TEXT (ISO datetime, UTC)

2) staff
   - id                     TEXT PRIMARY KEY
   - name                   TEXT NOT NULL UNIQUE COLLATE NOCASE
   - current_advance_cents  INTEGER NOT NULL DEFAULT 0 CHECK (>= 0)
   - created_at, updated_at TEXT

3) batches
   One row per applied batch, recording where its rows came from.
   - id            INTEGER PRIMARY KEY AUTOINCREMENT
   - created_at    TEXT NOT NULL
   - source_type   TEXT NOT NULL  -- "manual" | "csv"
   - source_label  TEXT NOT NULL
   - rows_inserted INTEGER NOT NULL DEFAULT 0
   - undone_at     TEXT           -- set when the batch has been undone

4) transactions
   Committed ledger rows.
   - id                   TEXT PRIMARY KEY  -- the entry id
   - date                 TEXT NOT NULL     -- ISO date "YYYY-MM-DD"
   - type                 TEXT NOT NULL     -- sale | expense | bill | payment
   - amount_cents         INTEGER NOT NULL
   - payment_mode         TEXT              -- sales only
   - expense_category     TEXT              -- expenses and payments
   - has_gst              INTEGER NOT NULL DEFAULT 0
   - bill_number          TEXT
   - return_amount_cents  INTEGER           -- bill goods-return (GR) amount
   - description          TEXT
   - party_id             TEXT REFERENCES parties(id)
   - staff_id             TEXT REFERENCES staff(id)
   - batch_id             INTEGER REFERENCES batches(id)
   - created_at           TEXT NOT NULL

------------------------------------------------------------------------------
SQLite Notes
------------------------------------------------------------------------------

- All amounts are stored as signed integer cents and exposed as Decimal.
- All timestamps are stored as ISO-8601 text (UTC).
- Foreign key enforcement is explicitly enabled.
- Connections run in autocommit mode; writers open ``BEGIN IMMEDIATE``
  through ``transaction()`` and decide explicitly between COMMIT and
  ROLLBACK. Only one writer can hold the database at a time.
"""

from __future__ import annotations

import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Literal

import pandas as pd

from .entries import amount_to_cents, cents_to_amount

# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseConfig:
    """
    Database configuration for Quick Ledger.

    Attributes
    ----------
    engine:
        Database engine identifier. Only "sqlite" is supported.
    path:
        Path to the SQLite database file.
    """

    engine: str
    path: Path


RowType = Literal["sale", "expense", "bill", "payment"]
SourceType = Literal["manual", "csv"]
"""
Origin of an applied batch.

- "manual": shorthand text typed by the operator.
- "csv"   : rows coming from a file import.
"""


@dataclass(frozen=True)
class Party:
    """A party (customer or supplier) with its running balance."""

    id: str
    name: str
    credit_limit: Decimal
    current_balance: Decimal
    created_at: datetime | None
    updated_at: datetime | None


@dataclass(frozen=True)
class Staff:
    """A staff member with the advance currently outstanding."""

    id: str
    name: str
    current_advance: Decimal
    created_at: datetime | None
    updated_at: datetime | None


@dataclass(frozen=True)
class LedgerRow:
    """
    A committed transaction record.

    Rows are immutable once committed; they only disappear through an undo
    or an explicit delete, both of which reverse the balance effects.
    """

    id: str
    date: date
    type: RowType
    amount: Decimal
    payment_mode: str | None
    expense_category: str | None
    has_gst: bool
    bill_number: str | None
    return_amount: Decimal | None
    description: str | None
    party_id: str | None
    staff_id: str | None
    batch_id: int | None
    created_at: datetime


@dataclass(frozen=True)
class NewRow:
    """Data required to insert a ledger row."""

    id: str
    date: date
    type: RowType
    amount: Decimal
    payment_mode: str | None = None
    expense_category: str | None = None
    has_gst: bool = False
    bill_number: str | None = None
    return_amount: Decimal | None = None
    description: str | None = None
    party_id: str | None = None
    staff_id: str | None = None
    batch_id: int | None = None


@dataclass(frozen=True)
class BatchRecord:
    """Metadata of one applied batch."""

    id: int
    created_at: datetime
    source_type: str
    source_label: str
    rows_inserted: int
    undone_at: datetime | None


@dataclass(frozen=True)
class RowsFilter:
    """
    Filters used to search ledger rows. Date bounds are inclusive.

    Attributes
    ----------
    start, end:
        Inclusive date bounds.
    type:
        Restrict to one row type ("sale", "expense", "bill", "payment").
    payment_mode:
        Restrict sales to one payment mode.
    party_id, staff_id:
        Restrict to rows linked to a party / staff member.
    batch_id:
        Restrict to rows inserted by one batch.
    """

    start: date | None = None
    end: date | None = None
    type: RowType | None = None
    payment_mode: str | None = None
    party_id: str | None = None
    staff_id: str | None = None
    batch_id: int | None = None


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _ensure_sqlite(cfg: DatabaseConfig) -> None:
    """Raise if the configuration does not refer to a supported engine."""
    if cfg.engine.lower() != "sqlite":
        msg = (
            f"Unsupported database engine: {cfg.engine!r}. "
            "Only 'sqlite' is supported for now."
        )
        raise ValueError(msg)


def _connect(cfg: DatabaseConfig) -> sqlite3.Connection:
    """
    Open a SQLite connection in autocommit mode with foreign keys enabled.

    The caller is responsible for closing the connection.
    """
    _ensure_sqlite(cfg)
    conn = sqlite3.connect(cfg.path, isolation_level=None)
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def _create_schema_if_needed(conn: sqlite3.Connection) -> None:
    """
    Create tables and indexes if they do not exist yet.

    This function is idempotent and can be called multiple times safely.
    """
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS parties (
            id                    TEXT    PRIMARY KEY,
            name                  TEXT    NOT NULL UNIQUE COLLATE NOCASE,
            credit_limit_cents    INTEGER NOT NULL DEFAULT 0,
            current_balance_cents INTEGER NOT NULL DEFAULT 0,
            created_at            TEXT,
            updated_at            TEXT
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS staff (
            id                    TEXT    PRIMARY KEY,
            name                  TEXT    NOT NULL UNIQUE COLLATE NOCASE,
            current_advance_cents INTEGER NOT NULL DEFAULT 0
                                  CHECK (current_advance_cents >= 0),
            created_at            TEXT,
            updated_at            TEXT
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS batches (
            id            INTEGER PRIMARY KEY AUTOINCREMENT,
            created_at    TEXT    NOT NULL,
            source_type   TEXT    NOT NULL,
            source_label  TEXT    NOT NULL,
            rows_inserted INTEGER NOT NULL DEFAULT 0,
            undone_at     TEXT
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS transactions (
            id                  TEXT    PRIMARY KEY,
            date                TEXT    NOT NULL,  -- ISO date 'YYYY-MM-DD'
            type                TEXT    NOT NULL
                                CHECK (type IN ('sale', 'expense', 'bill', 'payment')),
            amount_cents        INTEGER NOT NULL CHECK (amount_cents >= 0),
            payment_mode        TEXT
                                CHECK (payment_mode IN ('cash', 'digital', 'credit')),
            expense_category    TEXT,
            has_gst             INTEGER NOT NULL DEFAULT 0,
            bill_number         TEXT,
            return_amount_cents INTEGER,
            description         TEXT,
            party_id            TEXT,
            staff_id            TEXT,
            batch_id            INTEGER,
            created_at          TEXT    NOT NULL,

            FOREIGN KEY (party_id) REFERENCES parties(id),
            FOREIGN KEY (staff_id) REFERENCES staff(id),
            FOREIGN KEY (batch_id) REFERENCES batches(id)
        );
        """
    )


    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_transactions_date_amount
            ON transactions(date, amount_cents);
        """
    )
    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_transactions_party
            ON transactions(party_id);
        """
    )


def _to_iso_date(value) -> str:
    """Convert a date-like value to ISO 'YYYY-MM-DD' string."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return date.fromisoformat(str(value)).isoformat()


def _now_utc_iso() -> str:
    """Return the current UTC datetime as ISO string."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value is not None else None


def _new_id() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Public API: lifecycle
# ---------------------------------------------------------------------------


def init_database(cfg: DatabaseConfig) -> None:
    """
    Initialize the database schema if needed.

    - Creates the SQLite file if it does not exist.
    - Creates tables and indexes if they are missing.
    - This function is idempotent: calling it multiple times is safe.

    Raises
    ------
    ValueError
        If cfg.engine is not supported.
    sqlite3.Error
        If schema creation fails.
    """
    cfg.path.parent.mkdir(parents=True, exist_ok=True)

    conn = _connect(cfg)
    try:
        _create_schema_if_needed(conn)
    finally:
        conn.close()


@contextmanager
def transaction(cfg: DatabaseConfig) -> Iterator[sqlite3.Connection]:
    """
    Open a write transaction and yield its connection.

    ``BEGIN IMMEDIATE`` takes the write lock up front, so the reads performed
    inside the block (duplicate checks, row existence checks) cannot be
    invalidated by another writer before COMMIT. The caller must call
    ``conn.commit()`` or ``conn.rollback()``; anything left open when the
    block exits is rolled back.
    """
    init_database(cfg)

    conn = _connect(cfg)
    try:
        conn.execute("BEGIN IMMEDIATE;")
        yield conn
    finally:
        if conn.in_transaction:
            conn.rollback()
        conn.close()


@contextmanager
def read_connection(cfg: DatabaseConfig) -> Iterator[sqlite3.Connection]:
    """Yield a connection for reads outside of any write transaction."""
    init_database(cfg)

    conn = _connect(cfg)
    try:
        yield conn
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Row conversion
# ---------------------------------------------------------------------------

_ROW_COLUMNS = """
    id, date, type, amount_cents, payment_mode, expense_category, has_gst,
    bill_number, return_amount_cents, description, party_id, staff_id,
    batch_id, created_at
"""


def _row_to_ledger_row(row: tuple) -> LedgerRow:
    """
    Convert a ``transactions`` row (selected with _ROW_COLUMNS) into a LedgerRow.
    """
    (
        row_id,
        date_str,
        row_type,
        amount_cents,
        payment_mode,
        expense_category,
        has_gst_int,
        bill_number,
        return_amount_cents,
        description,
        party_id,
        staff_id,
        batch_id,
        created_at_str,
    ) = row

    return LedgerRow(
        id=row_id,
        date=date.fromisoformat(date_str),
        type=row_type,
        amount=cents_to_amount(amount_cents),
        payment_mode=payment_mode,
        expense_category=expense_category,
        has_gst=bool(has_gst_int),
        bill_number=bill_number,
        return_amount=(
            cents_to_amount(return_amount_cents)
            if return_amount_cents is not None
            else None
        ),
        description=description,
        party_id=party_id,
        staff_id=staff_id,
        batch_id=batch_id,
        created_at=datetime.fromisoformat(created_at_str),
    )


def _row_to_party(row: tuple) -> Party:
    party_id, name, limit_cents, balance_cents, created_at, updated_at = row
    return Party(
        id=party_id,
        name=name,
        credit_limit=cents_to_amount(limit_cents),
        current_balance=cents_to_amount(balance_cents),
        created_at=_parse_ts(created_at),
        updated_at=_parse_ts(updated_at),
    )


def _row_to_staff(row: tuple) -> Staff:
    staff_id, name, advance_cents, created_at, updated_at = row
    return Staff(
        id=staff_id,
        name=name,
        current_advance=cents_to_amount(advance_cents),
        created_at=_parse_ts(created_at),
        updated_at=_parse_ts(updated_at),
    )


def _row_to_batch(row: tuple) -> BatchRecord:
    batch_id, created_at, source_type, source_label, rows_inserted, undone_at = row
    return BatchRecord(
        id=batch_id,
        created_at=datetime.fromisoformat(created_at),
        source_type=source_type,
        source_label=source_label,
        rows_inserted=rows_inserted,
        undone_at=_parse_ts(undone_at),
    )


_PARTY_COLUMNS = (
    "id, name, credit_limit_cents, current_balance_cents, created_at, updated_at"
)
_STAFF_COLUMNS = "id, name, current_advance_cents, created_at, updated_at"
_BATCH_COLUMNS = (
    "id, created_at, source_type, source_label, rows_inserted, undone_at"
)


# ---------------------------------------------------------------------------
# Connection-level helpers (used inside transactions by the engines)
# ---------------------------------------------------------------------------


def fetch_row(conn: sqlite3.Connection, row_id: str) -> LedgerRow | None:
    cur = conn.execute(
        f"SELECT {_ROW_COLUMNS} FROM transactions WHERE id = ?;", (row_id,)
    )
    row = cur.fetchone()
    return _row_to_ledger_row(row) if row is not None else None


def fetch_batch_rows(conn: sqlite3.Connection, batch_id: int) -> list[LedgerRow]:
    """Return the committed rows of one batch, in insertion order."""
    cur = conn.execute(
        f"SELECT {_ROW_COLUMNS} FROM transactions WHERE batch_id = ? ORDER BY rowid;",
        (batch_id,),
    )
    return [_row_to_ledger_row(row) for row in cur.fetchall()]


def fetch_party(conn: sqlite3.Connection, party_id: str) -> Party | None:
    cur = conn.execute(
        f"SELECT {_PARTY_COLUMNS} FROM parties WHERE id = ?;", (party_id,)
    )
    row = cur.fetchone()
    return _row_to_party(row) if row is not None else None


def fetch_party_by_name(conn: sqlite3.Connection, name: str) -> Party | None:
    """Case-insensitive lookup on the party name (surrounding spaces ignored)."""
    cur = conn.execute(
        f"SELECT {_PARTY_COLUMNS} FROM parties WHERE name = ? COLLATE NOCASE;",
        (name.strip(),),
    )
    row = cur.fetchone()
    return _row_to_party(row) if row is not None else None


def fetch_staff(conn: sqlite3.Connection, staff_id: str) -> Staff | None:
    cur = conn.execute(
        f"SELECT {_STAFF_COLUMNS} FROM staff WHERE id = ?;", (staff_id,)
    )
    row = cur.fetchone()
    return _row_to_staff(row) if row is not None else None


def fetch_staff_by_name(conn: sqlite3.Connection, name: str) -> Staff | None:
    cur = conn.execute(
        f"SELECT {_STAFF_COLUMNS} FROM staff WHERE name = ? COLLATE NOCASE;",
        (name.strip(),),
    )
    row = cur.fetchone()
    return _row_to_staff(row) if row is not None else None


def create_party(
    conn: sqlite3.Connection,
    name: str,
    *,
    credit_limit: Decimal = Decimal("0"),
) -> Party:
    """Insert a party with a zero balance and return it."""
    now = _now_utc_iso()
    party_id = _new_id()
    conn.execute(
        """
        INSERT INTO parties (
            id, name, credit_limit_cents, current_balance_cents,
            created_at, updated_at
        )
        VALUES (?, ?, ?, 0, ?, ?);
        """,
        (party_id, name.strip(), amount_to_cents(credit_limit), now, now),
    )
    party = fetch_party(conn, party_id)
    if party is None:
        raise RuntimeError(f"Party {name!r} was just inserted but could not be reloaded.")
    return party


def create_staff(conn: sqlite3.Connection, name: str) -> Staff:
    """Insert a staff member with no outstanding advance and return it."""
    now = _now_utc_iso()
    staff_id = _new_id()
    conn.execute(
        """
        INSERT INTO staff (id, name, current_advance_cents, created_at, updated_at)
        VALUES (?, ?, 0, ?, ?);
        """,
        (staff_id, name.strip(), now, now),
    )
    staff = fetch_staff(conn, staff_id)
    if staff is None:
        raise RuntimeError(f"Staff {name!r} was just inserted but could not be reloaded.")
    return staff


def insert_batch(
    conn: sqlite3.Connection,
    *,
    source_type: SourceType,
    source_label: str,
) -> tuple[int, datetime]:
    """Insert a batch row and return (batch_id, created_at)."""
    created_at_iso = _now_utc_iso()
    cur = conn.execute(
        """
        INSERT INTO batches (created_at, source_type, source_label, rows_inserted)
        VALUES (?, ?, ?, 0);
        """,
        (created_at_iso, source_type, source_label),
    )
    return cur.lastrowid, datetime.fromisoformat(created_at_iso)


def set_batch_rows_inserted(
    conn: sqlite3.Connection, batch_id: int, rows_inserted: int
) -> None:
    conn.execute(
        "UPDATE batches SET rows_inserted = ? WHERE id = ?;",
        (rows_inserted, batch_id),
    )


def fetch_batch(conn: sqlite3.Connection, batch_id: int) -> BatchRecord | None:
    cur = conn.execute(
        f"SELECT {_BATCH_COLUMNS} FROM batches WHERE id = ?;", (batch_id,)
    )
    row = cur.fetchone()
    return _row_to_batch(row) if row is not None else None


def mark_batch_undone(conn: sqlite3.Connection, batch_id: int) -> None:
    conn.execute(
        "UPDATE batches SET undone_at = ? WHERE id = ?;",
        (_now_utc_iso(), batch_id),
    )


def insert_ledger_row(conn: sqlite3.Connection, new_row: NewRow) -> LedgerRow:
    """
    Insert one ledger row and return it as stored.

    Raises
    ------
    sqlite3.IntegrityError
        If the id already exists or a reference is invalid.
    """
    created_at_iso = _now_utc_iso()
    conn.execute(
        """
        INSERT INTO transactions (
            id, date, type, amount_cents, payment_mode, expense_category,
            has_gst, bill_number, return_amount_cents, description,
            party_id, staff_id, batch_id, created_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
        """,
        (
            new_row.id,
            _to_iso_date(new_row.date),
            new_row.type,
            amount_to_cents(new_row.amount),
            new_row.payment_mode,
            new_row.expense_category,
            1 if new_row.has_gst else 0,
            new_row.bill_number,
            (
                amount_to_cents(new_row.return_amount)
                if new_row.return_amount is not None
                else None
            ),
            new_row.description,
            new_row.party_id,
            new_row.staff_id,
            new_row.batch_id,
            created_at_iso,
        ),
    )
    stored = fetch_row(conn, new_row.id)
    if stored is None:
        msg = f"Row {new_row.id} was just inserted but could not be reloaded."
        raise RuntimeError(msg)
    return stored


def delete_ledger_row(conn: sqlite3.Connection, row_id: str) -> int:
    """Delete one ledger row. Returns the number of rows deleted (0 or 1)."""
    cur = conn.execute("DELETE FROM transactions WHERE id = ?;", (row_id,))
    return cur.rowcount


def adjust_party_balance(
    conn: sqlite3.Connection, party_id: str, delta_cents: int
) -> None:
    """
    Add ``delta_cents`` to a party balance.

    Raises
    ------
    ValueError
        If the party does not exist.
    """
    cur = conn.execute(
        """
        UPDATE parties
           SET current_balance_cents = current_balance_cents + ?,
               updated_at = ?
         WHERE id = ?;
        """,
        (delta_cents, _now_utc_iso(), party_id),
    )
    if cur.rowcount != 1:
        raise ValueError(f"Party {party_id} does not exist.")


def adjust_staff_advance(
    conn: sqlite3.Connection, staff_id: str, delta_cents: int
) -> None:
    """
    Add ``delta_cents`` to a staff member's outstanding advance.

    Raises
    ------
    ValueError
        If the staff member does not exist.
    sqlite3.IntegrityError
        If the advance would become negative.
    """
    cur = conn.execute(
        """
        UPDATE staff
           SET current_advance_cents = current_advance_cents + ?,
               updated_at = ?
         WHERE id = ?;
        """,
        (delta_cents, _now_utc_iso(), staff_id),
    )
    if cur.rowcount != 1:
        raise ValueError(f"Staff member {staff_id} does not exist.")


def find_matching_row(
    conn: sqlite3.Connection,
    *,
    row_type: RowType,
    row_date: date,
    amount: Decimal,
    party_id: str,
    bill_number: str | None = None,
    match_bill_number: bool = False,
) -> LedgerRow | None:
    """
    Return the first committed row with the same type, date, amount and party.

    When ``match_bill_number`` is True the bill numbers must also be equal,
    ignoring case and surrounding spaces (a missing bill number only matches
    another missing bill number).
    """
    clauses = [
        "type = ?",
        "date = ?",
        "amount_cents = ?",
        "party_id = ?",
    ]
    params: list[object] = [
        row_type,
        _to_iso_date(row_date),
        amount_to_cents(amount),
        party_id,
    ]
    if match_bill_number:
        clauses.append(
            "TRIM(COALESCE(bill_number, '')) = TRIM(COALESCE(?, '')) COLLATE NOCASE"
        )
        params.append(bill_number)

    cur = conn.execute(
        f"""
        SELECT {_ROW_COLUMNS}
          FROM transactions
         WHERE {' AND '.join(clauses)}
         ORDER BY created_at, id
         LIMIT 1;
        """,
        params,
    )
    row = cur.fetchone()
    return _row_to_ledger_row(row) if row is not None else None


def compute_party_balances(conn: sqlite3.Connection) -> dict[str, int]:
    """
    Recompute every party balance (in cents) from committed rows.

    balance = credit sales + bills - payments. Parties without rows get 0.
    """
    cur = conn.execute(
        """
        SELECT p.id,
               COALESCE(SUM(
                   CASE
                       WHEN t.type = 'sale' AND t.payment_mode = 'credit'
                           THEN t.amount_cents
                       WHEN t.type = 'bill' THEN t.amount_cents
                       WHEN t.type = 'payment' THEN -t.amount_cents
                       ELSE 0
                   END
               ), 0)
          FROM parties AS p
          LEFT JOIN transactions AS t
            ON t.party_id = p.id
         GROUP BY p.id;
        """
    )
    return {party_id: int(total) for party_id, total in cur.fetchall()}


def compute_staff_advances(conn: sqlite3.Connection) -> dict[str, int]:
    """Recompute every staff advance (in cents) from committed advance expenses."""
    cur = conn.execute(
        """
        SELECT s.id,
               COALESCE(SUM(
                   CASE
                       WHEN t.type = 'expense' AND t.expense_category = 'advance'
                           THEN t.amount_cents
                       ELSE 0
                   END
               ), 0)
          FROM staff AS s
          LEFT JOIN transactions AS t
            ON t.staff_id = s.id
         GROUP BY s.id;
        """
    )
    return {staff_id: int(total) for staff_id, total in cur.fetchall()}


def set_party_balance(conn: sqlite3.Connection, party_id: str, cents: int) -> None:
    conn.execute(
        """
        UPDATE parties
           SET current_balance_cents = ?, updated_at = ?
         WHERE id = ?;
        """,
        (cents, _now_utc_iso(), party_id),
    )


def set_staff_advance(conn: sqlite3.Connection, staff_id: str, cents: int) -> None:
    conn.execute(
        """
        UPDATE staff
           SET current_advance_cents = ?, updated_at = ?
         WHERE id = ?;
        """,
        (cents, _now_utc_iso(), staff_id),
    )


# ---------------------------------------------------------------------------
# Public read helpers
# ---------------------------------------------------------------------------


def get_row(cfg: DatabaseConfig, row_id: str) -> LedgerRow | None:
    """Load a single ledger row by id, or None if it does not exist."""
    init_database(cfg)
    conn = _connect(cfg)
    try:
        return fetch_row(conn, row_id)
    finally:
        conn.close()


def get_party(cfg: DatabaseConfig, party_id: str) -> Party | None:
    init_database(cfg)
    conn = _connect(cfg)
    try:
        return fetch_party(conn, party_id)
    finally:
        conn.close()


def get_party_by_name(cfg: DatabaseConfig, name: str) -> Party | None:
    init_database(cfg)
    conn = _connect(cfg)
    try:
        return fetch_party_by_name(conn, name)
    finally:
        conn.close()


def get_staff(cfg: DatabaseConfig, staff_id: str) -> Staff | None:
    init_database(cfg)
    conn = _connect(cfg)
    try:
        return fetch_staff(conn, staff_id)
    finally:
        conn.close()


def get_staff_by_name(cfg: DatabaseConfig, name: str) -> Staff | None:
    init_database(cfg)
    conn = _connect(cfg)
    try:
        return fetch_staff_by_name(conn, name)
    finally:
        conn.close()


def get_batch(cfg: DatabaseConfig, batch_id: int) -> BatchRecord | None:
    init_database(cfg)
    conn = _connect(cfg)
    try:
        return fetch_batch(conn, batch_id)
    finally:
        conn.close()


def count_rows(cfg: DatabaseConfig) -> int:
    """Return the number of committed ledger rows."""
    init_database(cfg)
    conn = _connect(cfg)
    try:
        return conn.execute("SELECT COUNT(*) FROM transactions;").fetchone()[0]
    finally:
        conn.close()


def _build_where(
    filters: RowsFilter, prefix: str = ""
) -> tuple[str, list[object]]:
    """Build the WHERE clause of a rows query (``prefix`` is a table alias)."""
    where_clauses: list[str] = ["1 = 1"]
    params: list[object] = []

    if filters.start is not None:
        where_clauses.append(f"{prefix}date >= ?")
        params.append(filters.start.isoformat())
    if filters.end is not None:
        where_clauses.append(f"{prefix}date <= ?")
        params.append(filters.end.isoformat())
    if filters.type is not None:
        where_clauses.append(f"{prefix}type = ?")
        params.append(filters.type)
    if filters.payment_mode is not None:
        where_clauses.append(f"{prefix}payment_mode = ?")
        params.append(filters.payment_mode)
    if filters.party_id is not None:
        where_clauses.append(f"{prefix}party_id = ?")
        params.append(filters.party_id)
    if filters.staff_id is not None:
        where_clauses.append(f"{prefix}staff_id = ?")
        params.append(filters.staff_id)
    if filters.batch_id is not None:
        where_clauses.append(f"{prefix}batch_id = ?")
        params.append(filters.batch_id)

    return " AND ".join(where_clauses), params


def load_rows(
    cfg: DatabaseConfig,
    filters: RowsFilter | None = None,
    *,
    limit: int | None = None,
) -> list[LedgerRow]:
    """
    Load ledger rows matching ``filters`` ordered by date then creation time.

    Parameters
    ----------
    cfg:
        Database configuration.
    filters:
        Optional filters; None loads every row.
    limit:
        Optional maximum number of rows.
    """
    init_database(cfg)
    where_sql, params = _build_where(filters or RowsFilter())

    limit_clause = ""
    if limit is not None:
        limit_clause = " LIMIT ?"
        params.append(limit)

    conn = _connect(cfg)
    try:
        cur = conn.execute(
            f"""
            SELECT {_ROW_COLUMNS}
              FROM transactions
             WHERE {where_sql}
             ORDER BY date ASC, created_at ASC, id ASC
             {limit_clause};
            """,
            params,
        )
        rows = cur.fetchall()
    finally:
        conn.close()

    return [_row_to_ledger_row(row) for row in rows]


_SEARCH_COLUMNS = [
    "id",
    "date",
    "type",
    "amount",
    "payment_mode",
    "expense_category",
    "has_gst",
    "bill_number",
    "description",
    "party",
    "staff",
    "batch_id",
    "created_at",
]


def search_rows(
    cfg: DatabaseConfig,
    filters: RowsFilter,
    *,
    limit: int | None = None,
    offset: int = 0,
    order_by: tuple[str, str] = ("date", "ASC"),
) -> pd.DataFrame:
    """
    Search ledger rows and return a DataFrame for listing.

    Party and staff ids are resolved to names. Supported order columns are
    "date", "amount", "type" and "created_at".

    Result columns
    --------------
    id, date, type, amount, payment_mode, expense_category, has_gst,
    bill_number, description, party, staff, batch_id, created_at
    """
    init_database(cfg)

    where_sql, params = _build_where(filters, prefix="t.")

    allowed_order_columns = {"date", "amount", "type", "created_at"}
    order_column, order_direction = order_by
    if order_column not in allowed_order_columns:
        raise ValueError(f"Invalid order_by column: {order_column!r}")
    order_direction_upper = order_direction.upper()
    if order_direction_upper not in {"ASC", "DESC"}:
        raise ValueError(f"Invalid order_by direction: {order_direction!r}")
    order_expr = "t.amount_cents" if order_column == "amount" else f"t.{order_column}"

    limit_clause = ""
    if limit is not None:
        limit_clause = " LIMIT ? OFFSET ?"
        params.extend([limit, offset])

    query = f"""
        SELECT
            t.id,
            t.date,
            t.type,
            t.amount_cents,
            t.payment_mode,
            t.expense_category,
            t.has_gst,
            t.bill_number,
            t.description,
            p.name,
            s.name,
            t.batch_id,
            t.created_at
        FROM transactions AS t
        LEFT JOIN parties AS p ON t.party_id = p.id
        LEFT JOIN staff AS s ON t.staff_id = s.id
       WHERE {where_sql}
       ORDER BY {order_expr} {order_direction_upper}, t.id {order_direction_upper}
       {limit_clause};
    """

    conn = _connect(cfg)
    try:
        rows = conn.execute(query, params).fetchall()
    finally:
        conn.close()

    if not rows:
        return pd.DataFrame(columns=_SEARCH_COLUMNS)

    df = pd.DataFrame(rows, columns=_SEARCH_COLUMNS)
    df["date"] = pd.to_datetime(df["date"]).dt.date
    df["created_at"] = pd.to_datetime(df["created_at"])
    df["has_gst"] = df["has_gst"].astype(bool)
    df["amount"] = df["amount"].astype(float) / 100.0
    return df


def list_parties(cfg: DatabaseConfig) -> pd.DataFrame:
    """
    Return all parties with their balances.

    Columns: id, name, credit_limit, current_balance
    """
    init_database(cfg)
    conn = _connect(cfg)
    try:
        rows = conn.execute(
            """
            SELECT id, name, credit_limit_cents, current_balance_cents
              FROM parties
             ORDER BY name COLLATE NOCASE;
            """
        ).fetchall()
    finally:
        conn.close()

    columns = ["id", "name", "credit_limit", "current_balance"]
    if not rows:
        return pd.DataFrame(columns=columns)

    df = pd.DataFrame(rows, columns=columns)
    df["credit_limit"] = df["credit_limit"].astype(float) / 100.0
    df["current_balance"] = df["current_balance"].astype(float) / 100.0
    return df


def list_staff(cfg: DatabaseConfig) -> pd.DataFrame:
    """
    Return all staff members with their outstanding advances.

    Columns: id, name, current_advance
    """
    init_database(cfg)
    conn = _connect(cfg)
    try:
        rows = conn.execute(
            """
            SELECT id, name, current_advance_cents
              FROM staff
             ORDER BY name COLLATE NOCASE;
            """
        ).fetchall()
    finally:
        conn.close()

    columns = ["id", "name", "current_advance"]
    if not rows:
        return pd.DataFrame(columns=columns)

    df = pd.DataFrame(rows, columns=columns)
    df["current_advance"] = df["current_advance"].astype(float) / 100.0
    return df


def party_names(cfg: DatabaseConfig) -> set[str]:
    """Return the lower-cased names of every registered party."""
    init_database(cfg)
    conn = _connect(cfg)
    try:
        rows = conn.execute("SELECT name FROM parties;").fetchall()
    finally:
        conn.close()
    return {name.lower() for (name,) in rows}
