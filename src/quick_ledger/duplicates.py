# Quick Ledger - Shorthand bulk entry & ledger engine for small shops
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Duplicate detection.

Two independent duties:

1) Pre-commit check (``check_duplicates`` / ``scan_entries``)
   Bills and payments of a new batch are compared with committed rows of the
   same party sharing type, date and amount (and bill number for bills). An
   entry repeating an earlier entry of the same batch is reported too.

   Policy:
   - Bill duplicates are *blocked*: the entry must be removed or corrected.
   - Payment duplicates are *pending* until the operator sets an explicit
     per-entry override, then *overridden* (allowed to commit).
   - Sales and expenses are not checked here; retroactive clustering covers
     them.

2) Retroactive clustering (``find_duplicate_clusters``)
   Committed rows are grouped by calendar date, then by amount. Any
   (date, amount) group with more than one row is a duplicate cluster.
   Dates ignored by the operator for the session are skipped.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Collection, Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Literal, Optional

import pandas as pd

from .db import (
    DatabaseConfig,
    LedgerRow,
    RowsFilter,
    fetch_party_by_name,
    find_matching_row,
    load_rows,
    read_connection,
)
from .entries import (
    Bill,
    Entry,
    Expense,
    Payment,
    Sale,
    amount_to_cents,
    cents_to_amount,
    describe_entry,
    line_label,
    unknown_entry,
)
from .exceptions import DuplicateBlocked, DuplicateError, DuplicatePending

logger = logging.getLogger(__name__)

DuplicateStatus = Literal["blocked", "pending", "overridden"]


@dataclass(frozen=True)
class DuplicateReport:
    """
    One duplicate found for a new entry.

    Exactly one of ``existing`` (a committed row) or ``batch_peer`` (an
    earlier entry of the same batch) is set.
    """

    entry: Entry
    status: DuplicateStatus
    existing: Optional[LedgerRow] = None
    batch_peer: Optional[Entry] = None
    line: Optional[int] = None

    @property
    def blocks_submission(self) -> bool:
        return self.status != "overridden"

    @property
    def message(self) -> str:
        where = f"Line {self.line}: " if self.line is not None else ""
        if self.existing is not None:
            origin = (
                f"existing row {self.existing.id} created "
                f"{self.existing.created_at.isoformat()}"
            )
        else:
            peer_line = (
                self.batch_peer.line_number if self.batch_peer is not None else None
            )
            origin = f"line {peer_line} of this batch"
        if self.status == "blocked":
            advice = "remove it or correct the date/amount"
        elif self.status == "pending":
            advice = "set an override to submit it anyway"
        else:
            advice = "override accepted"
        return f"{where}{describe_entry(self.entry)} duplicates {origin} ({advice})"

    def to_error(self) -> DuplicateError:
        if isinstance(self.entry, Bill):
            return DuplicateBlocked(self.entry, self.existing, self.message)
        return DuplicatePending(self.entry, self.existing, self.message)


@dataclass(frozen=True)
class AmountGroup:
    """Committed rows sharing one date and one amount."""

    date: date
    amount: Decimal
    rows: tuple[LedgerRow, ...]

    @property
    def size(self) -> int:
        return len(self.rows)


# ---------------------------------------------------------------------------
# Pre-commit check
# ---------------------------------------------------------------------------


def _batch_key(entry: Entry) -> Optional[tuple]:
    """Key identifying same-party duplicates, or None for unchecked kinds."""
    if isinstance(entry, Bill):
        return (
            "bill",
            entry.date,
            amount_to_cents(entry.amount),
            entry.party_name.strip().lower(),
            (entry.bill_number or "").strip().lower(),
        )
    if isinstance(entry, Payment):
        return (
            "payment",
            entry.date,
            amount_to_cents(entry.amount),
            entry.party_name.strip().lower(),
        )
    if isinstance(entry, (Sale, Expense)):
        return None
    unknown_entry(entry)


def _status_for(entry: Entry, payment_overrides: Collection[str]) -> DuplicateStatus:
    if isinstance(entry, Bill):
        return "blocked"
    return "overridden" if entry.id in payment_overrides else "pending"


def scan_entries(
    conn: sqlite3.Connection,
    entries: Sequence[Entry],
    payment_overrides: Collection[str] = (),
) -> list[DuplicateReport]:
    """
    Run the pre-commit duplicate check on an open connection.

    The apply engine calls this inside its write transaction so that no other
    batch can commit between the check and the inserts.
    """
    reports: list[DuplicateReport] = []
    seen: dict[tuple, Entry] = {}

    for index, entry in enumerate(entries):
        key = _batch_key(entry)
        if key is None:
            continue
        line = line_label(entry, index)

        peer = seen.get(key)
        if peer is not None:
            reports.append(
                DuplicateReport(
                    entry=entry,
                    status=_status_for(entry, payment_overrides),
                    batch_peer=peer,
                    line=line,
                )
            )
        else:
            seen[key] = entry

        party = fetch_party_by_name(conn, entry.party_name)
        if party is None:
            continue

        existing = find_matching_row(
            conn,
            row_type=entry.kind,
            row_date=entry.date,
            amount=entry.amount,
            party_id=party.id,
            bill_number=entry.bill_number if isinstance(entry, Bill) else None,
            match_bill_number=isinstance(entry, Bill),
        )
        if existing is not None:
            reports.append(
                DuplicateReport(
                    entry=entry,
                    status=_status_for(entry, payment_overrides),
                    existing=existing,
                    line=line,
                )
            )

    return reports


def check_duplicates(
    cfg: DatabaseConfig,
    entries: Sequence[Entry],
    payment_overrides: Collection[str] = (),
) -> list[DuplicateReport]:
    """
    Check new entries against the committed ledger and against each other.

    Parameters
    ----------
    cfg:
        Database configuration.
    entries:
        Parsed (ideally validated) entries.
    payment_overrides:
        Ids of payment entries the operator explicitly allowed despite a
        duplicate.

    Returns
    -------
    list[DuplicateReport]
        Empty when nothing matched. Reports with ``blocks_submission`` prevent
        the batch from being applied.
    """
    with read_connection(cfg) as conn:
        return scan_entries(conn, entries, payment_overrides)


def blocking_reports(reports: Iterable[DuplicateReport]) -> list[DuplicateReport]:
    return [report for report in reports if report.blocks_submission]


# ---------------------------------------------------------------------------
# Retroactive clustering
# ---------------------------------------------------------------------------


def find_duplicate_clusters(
    rows: Iterable[LedgerRow],
    ignored_dates: Collection[date] = frozenset(),
) -> dict[date, list[AmountGroup]]:
    """
    Group committed rows by date then amount and keep groups of 2+ rows.

    Parameters
    ----------
    rows:
        Rows of the current view (typically the sales of a period).
    ignored_dates:
        Dates the operator chose to ignore for the session.

    Returns
    -------
    dict[date, list[AmountGroup]]
        Keys in ascending date order; groups in ascending amount order; rows
        inside a group keep their input order.
    """
    rows = list(rows)
    if not rows:
        return {}

    frame = pd.DataFrame(
        {
            "date": [row.date for row in rows],
            "cents": [amount_to_cents(row.amount) for row in rows],
        }
    )
    if ignored_dates:
        frame = frame[~frame["date"].isin(list(ignored_dates))]

    clusters: dict[date, list[AmountGroup]] = {}
    for (day, cents), group in frame.groupby(["date", "cents"], sort=True):
        if len(group) < 2:
            continue
        clusters.setdefault(day, []).append(
            AmountGroup(
                date=day,
                amount=cents_to_amount(int(cents)),
                rows=tuple(rows[position] for position in group.index),
            )
        )
    return clusters


def scan_ledger_clusters(
    cfg: DatabaseConfig,
    filters: Optional[RowsFilter] = None,
    *,
    ignored_dates: Collection[date] = frozenset(),
    limit: Optional[int] = None,
) -> dict[date, list[AmountGroup]]:
    """Load the rows of a view from the ledger and cluster them."""
    rows = load_rows(cfg, filters, limit=limit)
    if limit is not None and len(rows) >= limit:
        logger.warning(
            "Duplicate scan truncated to %d rows; narrow the period to scan all rows.",
            limit,
        )
    return find_duplicate_clusters(rows, ignored_dates)
