# Quick Ledger - Shorthand bulk entry & ledger engine for small shops
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Ledger apply / undo / delete engines.

All three operations run inside one ``BEGIN IMMEDIATE`` transaction and
either commit everything or roll back everything. Outcomes are returned as
explicit result objects (``ApplyResult``, ``UndoResult``, ``DeleteResult``)
whose ``error`` is None on success; rollback is an explicit branch that runs
before the result is returned. Callers preferring exceptions can use
``raise_for_error()``.

Balance effects of a committed row
----------------------------------
- credit sale : +amount on the party balance
- bill        : +amount on the party balance
- payment     : -amount on the party balance
- advance     : +amount on the staff member's outstanding advance
- anything else has no balance effect.

The same rule (``balance_deltas``) drives apply, undo (inverse of the
recorded deltas), delete (inverse of the row's deltas) and the balance
recalculation check.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Collection, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Optional

from .db import (
    DatabaseConfig,
    LedgerRow,
    NewRow,
    SourceType,
    adjust_party_balance,
    adjust_staff_advance,
    compute_party_balances,
    compute_staff_advances,
    delete_ledger_row,
    fetch_batch,
    fetch_batch_rows,
    fetch_party,
    fetch_row,
    fetch_staff,
    insert_batch,
    insert_ledger_row,
    mark_batch_undone,
    set_batch_rows_inserted,
    set_party_balance,
    set_staff_advance,
    transaction,
)
from .duplicates import blocking_reports, scan_entries
from .entries import (
    STAFF_CATEGORIES,
    Bill,
    Entry,
    Expense,
    Payment,
    Sale,
    amount_to_cents,
    cents_to_amount,
    describe_entry,
    line_label,
    party_name_of,
    unknown_entry,
)
from .exceptions import (
    LedgerError,
    StorageError,
    UndoError,
    UnknownStaffError,
    ValidationError,
)
from .registry import Registry, RegistryFactory, sqlite_registry_factory
from .validator import validate

logger = logging.getLogger(__name__)

Account = Literal["party", "staff"]
OutcomeStatus = Literal["committed", "failed", "rolled_back", "not_attempted"]


# ---------------------------------------------------------------------------
# Manifest
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BalanceDelta:
    """A signed change (in cents) applied to one party or staff balance."""

    account: Account
    account_id: str
    amount_cents: int

    def inverse(self) -> BalanceDelta:
        return BalanceDelta(self.account, self.account_id, -self.amount_cents)

    @property
    def amount(self) -> Decimal:
        return cents_to_amount(self.amount_cents)


@dataclass(frozen=True)
class ManifestItem:
    """One inserted row and the balance deltas applied for it."""

    row_id: str
    deltas: tuple[BalanceDelta, ...] = ()


@dataclass(frozen=True)
class BatchManifest:
    """
    Record of one applied batch, in insertion order. Drives ``undo_batch``.

    The manifest is held in memory by the session; ``to_dict`` / ``from_dict``
    allow persisting it as JSON when undo must work across processes.
    """

    batch_id: int
    created_at: datetime
    items: tuple[ManifestItem, ...]

    @property
    def row_ids(self) -> list[str]:
        return [item.row_id for item in self.items]

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "created_at": self.created_at.isoformat(),
            "items": [
                {
                    "row_id": item.row_id,
                    "deltas": [
                        {
                            "account": delta.account,
                            "account_id": delta.account_id,
                            "amount_cents": delta.amount_cents,
                        }
                        for delta in item.deltas
                    ],
                }
                for item in self.items
            ],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BatchManifest:
        """
        Rebuild a manifest from ``to_dict`` output.

        Raises
        ------
        ValueError
            If the mapping is malformed.
        """
        try:
            items = []
            for raw_item in data["items"]:
                deltas = []
                for raw in raw_item.get("deltas", []):
                    account = raw["account"]
                    if account not in ("party", "staff"):
                        raise ValueError(f"Unknown balance account: {account!r}")
                    deltas.append(
                        BalanceDelta(
                            account=account,
                            account_id=str(raw["account_id"]),
                            amount_cents=int(raw["amount_cents"]),
                        )
                    )
                items.append(
                    ManifestItem(row_id=str(raw_item["row_id"]), deltas=tuple(deltas))
                )
            return cls(
                batch_id=int(data["batch_id"]),
                created_at=datetime.fromisoformat(data["created_at"]),
                items=tuple(items),
            )
        except (KeyError, TypeError, AttributeError) as exc:
            raise ValueError(f"Malformed batch manifest: {exc}") from exc


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EntryOutcome:
    """Per-entry summary of an apply attempt."""

    entry_id: str
    line: int
    status: OutcomeStatus
    row_id: Optional[str] = None
    message: Optional[str] = None


class _Result:
    error: Optional[LedgerError]

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


@dataclass(frozen=True)
class ApplyResult(_Result):
    committed_rows: tuple[LedgerRow, ...] = ()
    outcomes: tuple[EntryOutcome, ...] = ()
    manifest: Optional[BatchManifest] = None
    error: Optional[LedgerError] = None

    @property
    def failures(self) -> list[EntryOutcome]:
        return [outcome for outcome in self.outcomes if outcome.status != "committed"]


@dataclass(frozen=True)
class UndoResult(_Result):
    batch_id: Optional[int] = None
    rows_deleted: int = 0
    error: Optional[LedgerError] = None


@dataclass(frozen=True)
class DeleteResult(_Result):
    deleted_row_ids: tuple[str, ...] = ()
    error: Optional[LedgerError] = None


@dataclass(frozen=True)
class BalanceDrift:
    """Stored balance that differs from the value recomputed from rows."""

    account: Account
    account_id: str
    name: str
    stored: Decimal
    expected: Decimal


@dataclass(frozen=True)
class BalanceCheck:
    drifts: tuple[BalanceDrift, ...] = field(default_factory=tuple)
    repaired: bool = False

    @property
    def consistent(self) -> bool:
        return not self.drifts


# ---------------------------------------------------------------------------
# Balance rules
# ---------------------------------------------------------------------------


def balance_deltas(row: LedgerRow) -> tuple[BalanceDelta, ...]:
    """Return the balance deltas implied by a committed row."""
    cents = amount_to_cents(row.amount)
    if row.type == "sale":
        if row.payment_mode == "credit" and row.party_id:
            return (BalanceDelta("party", row.party_id, cents),)
        return ()
    if row.type == "bill":
        return (BalanceDelta("party", row.party_id, cents),) if row.party_id else ()
    if row.type == "payment":
        return (BalanceDelta("party", row.party_id, -cents),) if row.party_id else ()
    if row.type == "expense":
        if row.expense_category == "advance" and row.staff_id:
            return (BalanceDelta("staff", row.staff_id, cents),)
        return ()
    raise ValueError(f"Unknown row type: {row.type!r}")


def _apply_delta(conn: sqlite3.Connection, delta: BalanceDelta) -> None:
    if delta.account == "party":
        adjust_party_balance(conn, delta.account_id, delta.amount_cents)
    else:
        adjust_staff_advance(conn, delta.account_id, delta.amount_cents)


# ---------------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------------


def _to_new_row(
    entry: Entry,
    batch_id: int,
    party_id: Optional[str],
    staff_id: Optional[str],
) -> NewRow:
    common = dict(
        id=entry.id,
        date=entry.date,
        type=entry.kind,
        amount=entry.amount,
        description=entry.description,
        party_id=party_id,
        staff_id=staff_id,
        batch_id=batch_id,
    )
    if isinstance(entry, Sale):
        return NewRow(payment_mode=entry.payment_mode, **common)
    if isinstance(entry, Expense):
        return NewRow(
            expense_category=entry.category, has_gst=entry.has_gst, **common
        )
    if isinstance(entry, Bill):
        return NewRow(
            has_gst=entry.has_gst,
            bill_number=entry.bill_number,
            return_amount=entry.gr_amount,
            **common,
        )
    if isinstance(entry, Payment):
        return NewRow(
            expense_category="party_payment", has_gst=entry.has_gst, **common
        )
    unknown_entry(entry)


def _apply_entry(
    conn: sqlite3.Connection,
    registry: Registry,
    entry: Entry,
    batch_id: int,
) -> tuple[LedgerRow, tuple[BalanceDelta, ...]]:
    """Insert one entry and apply its balance deltas. Raises on failure."""
    party_id = None
    staff_id = None

    party_name = party_name_of(entry)
    if party_name:
        party, created = registry.get_or_create_party(party_name)
        party_id = party.id
        if created:
            logger.debug("Created party %r (%s)", party.name, party.id)

    if isinstance(entry, Expense) and entry.staff_name:
        staff = registry.find_staff(entry.staff_name)
        if staff is not None:
            staff_id = staff.id
        elif entry.category in STAFF_CATEGORIES:
            raise UnknownStaffError(entry, entry.staff_name)

    row = insert_ledger_row(conn, _to_new_row(entry, batch_id, party_id, staff_id))
    deltas = balance_deltas(row)
    for delta in deltas:
        _apply_delta(conn, delta)
    return row, deltas


def _not_attempted(entries: Sequence[Entry], message: str) -> tuple[EntryOutcome, ...]:
    return tuple(
        EntryOutcome(
            entry_id=entry.id,
            line=line_label(entry, index),
            status="not_attempted",
            message=message,
        )
        for index, entry in enumerate(entries)
    )


def _outcomes_after_failure(
    entries: Sequence[Entry],
    failed_index: int,
    error: LedgerError,
) -> tuple[EntryOutcome, ...]:
    outcomes = []
    for index, entry in enumerate(entries):
        line = line_label(entry, index)
        if index < failed_index:
            status: OutcomeStatus = "rolled_back"
            message = "rolled back"
        elif index == failed_index:
            status = "failed"
            message = error.message
        else:
            status = "not_attempted"
            message = "not attempted after an earlier failure"
        outcomes.append(
            EntryOutcome(entry_id=entry.id, line=line, status=status, message=message)
        )
    return tuple(outcomes)


def _apply_in_transaction(
    conn: sqlite3.Connection,
    entries: Sequence[Entry],
    payment_overrides: Collection[str],
    source_type: SourceType,
    source_label: str,
    registry_factory: RegistryFactory,
) -> ApplyResult:
    blocked = blocking_reports(scan_entries(conn, entries, payment_overrides))
    if blocked:
        conn.rollback()
        for report in blocked:
            logger.info("Duplicate %s: %s", report.status, report.message)
        error = blocked[0].to_error()
        return ApplyResult(
            outcomes=_not_attempted(entries, error.message),
            error=error,
        )

    registry = registry_factory(conn)
    batch_id, created_at = insert_batch(
        conn, source_type=source_type, source_label=source_label
    )

    committed: list[LedgerRow] = []
    items: list[ManifestItem] = []
    for index, entry in enumerate(entries):
        failure: LedgerError
        try:
            row, deltas = _apply_entry(conn, registry, entry, batch_id)
        except LedgerError as exc:
            failure = exc
        except (sqlite3.Error, ValueError, OverflowError) as exc:
            failure = StorageError(
                f"Could not store {describe_entry(entry)}: {exc}",
                entry_id=entry.id,
            )
        else:
            committed.append(row)
            items.append(ManifestItem(row_id=row.id, deltas=deltas))
            continue

        conn.rollback()
        logger.warning(
            "Batch rolled back at line %s (%s): %s",
            line_label(entry, index),
            failure.code,
            failure.message,
        )
        return ApplyResult(
            outcomes=_outcomes_after_failure(entries, index, failure),
            error=failure,
        )

    set_batch_rows_inserted(conn, batch_id, len(committed))
    conn.commit()

    manifest = BatchManifest(
        batch_id=batch_id, created_at=created_at, items=tuple(items)
    )
    logger.info("Applied batch %s (%d rows)", batch_id, len(committed))
    return ApplyResult(
        committed_rows=tuple(committed),
        outcomes=tuple(
            EntryOutcome(
                entry_id=entry.id,
                line=line_label(entry, index),
                status="committed",
                row_id=entry.id,
            )
            for index, entry in enumerate(entries)
        ),
        manifest=manifest,
    )


def apply_batch(
    cfg: DatabaseConfig,
    entries: Iterable[Entry],
    *,
    payment_overrides: Collection[str] = (),
    party_overrides: Collection[str] = (),
    source_type: SourceType = "manual",
    source_label: str = "manual entry",
    registry_factory: Optional[RegistryFactory] = None,
    default_credit_limit: Decimal = Decimal("0"),
) -> ApplyResult:
    """
    Apply a batch of entries atomically.

    Steps
    -----
    1) Validate the batch (no transaction is opened when it is invalid).
    2) Open one write transaction and re-run the duplicate check inside it.
    3) For each entry: resolve or create its party, resolve its staff member
       (never created), insert the row and apply its balance deltas.
    4) Commit and return the manifest, or roll back on the first failure.

    Parameters
    ----------
    cfg:
        Database configuration.
    entries:
        Parsed entries, in batch order.
    payment_overrides:
        Ids of payment entries allowed despite a duplicate.
    party_overrides:
        Ids of entries whose party-name warning is accepted.
    source_type, source_label:
        Origin recorded on the batch row.
    registry_factory:
        Builds the name resolver from the transaction connection. Defaults to
        the SQLite registry creating parties with ``default_credit_limit``.

    Returns
    -------
    ApplyResult
        ``error`` is None when the batch was committed.
    """
    entries = list(entries)
    if not entries:
        error = ValidationError(["Nothing to apply: the batch is empty"])
        return ApplyResult(error=error)

    errors = validate(entries, party_overrides)
    if errors:
        error = ValidationError(errors)
        return ApplyResult(outcomes=_not_attempted(entries, error.message), error=error)

    factory = registry_factory or sqlite_registry_factory(default_credit_limit)

    try:
        with transaction(cfg) as conn:
            return _apply_in_transaction(
                conn,
                entries,
                payment_overrides,
                source_type,
                source_label,
                factory,
            )
    except (sqlite3.Error, OverflowError) as exc:
        error = StorageError(f"Batch could not be applied: {exc}")
        logger.warning("Batch rolled back: %s", exc)
        return ApplyResult(outcomes=_not_attempted(entries, error.message), error=error)


# ---------------------------------------------------------------------------
# Undo
# ---------------------------------------------------------------------------


def undo_batch(cfg: DatabaseConfig, manifest: BatchManifest) -> UndoResult:
    """
    Reverse a batch described by its manifest.

    Deletes every row named by the manifest and applies the inverse of every
    recorded delta, in one transaction. Fails closed: if the batch is unknown
    or already undone, if the manifest rows differ from the rows stored for
    the batch, or if a recorded delta differs from the effect of its row,
    nothing is changed and an ``UndoError`` is returned.
    """
    batch_id = manifest.batch_id

    def refuse(conn: sqlite3.Connection, error: UndoError) -> UndoResult:
        conn.rollback()
        logger.warning("Undo of batch %s refused: %s", batch_id, error.message)
        return UndoResult(batch_id=batch_id, error=error)

    try:
        with transaction(cfg) as conn:
            batch = fetch_batch(conn, batch_id)
            if batch is None:
                return refuse(
                    conn, UndoError(f"Batch {batch_id} does not exist.", batch_id=batch_id)
                )
            if batch.undone_at is not None:
                return refuse(
                    conn,
                    UndoError(
                        f"Batch {batch_id} was already undone at "
                        f"{batch.undone_at.isoformat()}.",
                        batch_id=batch_id,
                    ),
                )

            batch_rows = {row.id: row for row in fetch_batch_rows(conn, batch_id)}
            missing = [
                row_id for row_id in manifest.row_ids if row_id not in batch_rows
            ]
            if missing:
                return refuse(
                    conn,
                    UndoError(
                        f"Batch {batch_id} cannot be undone: {len(missing)} row(s) "
                        "no longer exist in this batch.",
                        batch_id=batch_id,
                        missing_row_ids=missing,
                    ),
                )

            unlisted = set(batch_rows) - set(manifest.row_ids)
            if unlisted:
                return refuse(
                    conn,
                    UndoError(
                        f"Batch {batch_id} cannot be undone: the manifest does not "
                        f"list {len(unlisted)} of its row(s).",
                        batch_id=batch_id,
                    ),
                )

            for item in manifest.items:
                if tuple(item.deltas) != balance_deltas(batch_rows[item.row_id]):
                    return refuse(
                        conn,
                        UndoError(
                            f"Batch {batch_id} cannot be undone: recorded balance "
                            f"changes of row {item.row_id} do not match the row.",
                            batch_id=batch_id,
                        ),
                    )

            try:
                for item in manifest.items:
                    for delta in item.deltas:
                        _apply_delta(conn, delta.inverse())
                    delete_ledger_row(conn, item.row_id)
                mark_batch_undone(conn, batch_id)
            except (sqlite3.Error, ValueError, OverflowError) as exc:
                conn.rollback()
                logger.warning("Undo of batch %s rolled back: %s", batch_id, exc)
                return UndoResult(
                    batch_id=batch_id,
                    error=StorageError(f"Undo of batch {batch_id} failed: {exc}"),
                )

            conn.commit()
    except sqlite3.Error as exc:
        return UndoResult(
            batch_id=batch_id,
            error=StorageError(f"Undo of batch {batch_id} failed: {exc}"),
        )

    logger.info("Undid batch %s (%d rows)", batch_id, len(manifest.items))
    return UndoResult(batch_id=batch_id, rows_deleted=len(manifest.items))


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------


def delete_rows(cfg: DatabaseConfig, row_ids: Iterable[str]) -> DeleteResult:
    """
    Delete committed rows and reverse their balance effects atomically.

    Fails closed when any id does not exist: nothing is deleted.
    """
    ids = list(dict.fromkeys(row_ids))
    if not ids:
        return DeleteResult()

    try:
        with transaction(cfg) as conn:
            rows = []
            for row_id in ids:
                row = fetch_row(conn, row_id)
                if row is None:
                    conn.rollback()
                    return DeleteResult(
                        error=StorageError(
                            f"Row {row_id} does not exist; nothing was deleted.",
                            entry_id=row_id,
                        )
                    )
                rows.append(row)

            try:
                for row in rows:
                    for delta in balance_deltas(row):
                        _apply_delta(conn, delta.inverse())
                    delete_ledger_row(conn, row.id)
            except (sqlite3.Error, ValueError, OverflowError) as exc:
                conn.rollback()
                logger.warning("Delete rolled back: %s", exc)
                return DeleteResult(error=StorageError(f"Delete failed: {exc}"))

            conn.commit()
    except sqlite3.Error as exc:
        return DeleteResult(error=StorageError(f"Delete failed: {exc}"))

    logger.info("Deleted %d row(s)", len(ids))
    return DeleteResult(deleted_row_ids=tuple(ids))


# ---------------------------------------------------------------------------
# Balance recalculation
# ---------------------------------------------------------------------------


def recalculate_balances(cfg: DatabaseConfig, *, repair: bool = False) -> BalanceCheck:
    """
    Recompute party balances and staff advances from committed rows.

    Returns the drifts found. With ``repair=True`` stored values are replaced
    by the recomputed ones in the same transaction.

    Raises
    ------
    sqlite3.Error
        If the store cannot be read or updated.
    """
    drifts: list[BalanceDrift] = []
    with transaction(cfg) as conn:
        for party_id, expected_cents in compute_party_balances(conn).items():
            party = fetch_party(conn, party_id)
            if party is None:
                continue
            expected = cents_to_amount(expected_cents)
            if party.current_balance != expected:
                drifts.append(
                    BalanceDrift(
                        "party", party_id, party.name, party.current_balance, expected
                    )
                )
                if repair:
                    set_party_balance(conn, party_id, expected_cents)

        for staff_id, expected_cents in compute_staff_advances(conn).items():
            staff = fetch_staff(conn, staff_id)
            if staff is None:
                continue
            expected = cents_to_amount(expected_cents)
            if staff.current_advance != expected:
                drifts.append(
                    BalanceDrift(
                        "staff", staff_id, staff.name, staff.current_advance, expected
                    )
                )
                if repair:
                    set_staff_advance(conn, staff_id, expected_cents)

        if repair and drifts:
            conn.commit()
            for drift in drifts:
                logger.warning(
                    "Repaired %s %r balance: %s -> %s",
                    drift.account,
                    drift.name,
                    drift.stored,
                    drift.expected,
                )
        else:
            conn.rollback()

    return BalanceCheck(drifts=tuple(drifts), repaired=repair and bool(drifts))
