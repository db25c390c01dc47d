# Quick Ledger - Shorthand bulk entry & ledger engine for small shops
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.


"""
High-level services for bulk entry, undo and duplicate resolution.

This module sits between:
- the pipeline modules (parser, validator, duplicates, ledger, io), and
- user-facing layers such as the CLI or a future UI.

Responsibilities
----------------
1) Preview
   - Parse shorthand text against a contextual date.
   - Validate the batch and run the pre-commit duplicate check.
   - Report everything at once (``BatchPreview``) with a ``can_submit``
     verdict, so the operator can fix all problems in one go.

2) Session (``LedgerSession``)
   - Submit a previewed batch (or imported entries) atomically.
   - Hold the manifest of the most recent batch: a new batch supersedes it,
     a successful undo discards it.
   - Scan the current view for duplicate clusters, ignore cluster dates for
     the rest of the session, and resolve a cluster by keeping one row.

3) Listing & maintenance
   - List ledger rows, parties and staff as DataFrames.
   - Check (and optionally repair) running balances.

Overrides are expressed with *line numbers* at this level because entry ids
are regenerated by every preview; they are translated to entry ids before
reaching the engines.
"""

import logging
from collections.abc import Collection, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Union

import pandas as pd

from .config import AppConfig
from .db import DatabaseConfig, RowsFilter, party_names
from .db import list_parties as _db_list_parties
from .db import list_staff as _db_list_staff
from .db import search_rows as _db_search_rows
from .duplicates import (
    AmountGroup,
    DuplicateReport,
    blocking_reports,
    check_duplicates,
    scan_ledger_clusters,
)
from .entries import Entry, ParseError, split_parsed
from .exceptions import UndoError, ValidationError
from .io import ColumnMapping, read_raw_rows, rows_to_entries
from .ledger import (
    ApplyResult,
    BalanceCheck,
    BatchManifest,
    DeleteResult,
    UndoResult,
    apply_batch,
    delete_rows,
    recalculate_balances,
    undo_batch,
)
from .parser import parse
from .periods import Period
from .validator import validate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchPreview:
    """
    Everything the operator needs to see before submitting a batch.

    ``payment_overrides`` and ``party_overrides`` hold the entry ids derived
    from the line numbers given to ``preview_batch``.
    """

    entries: tuple[Entry, ...]
    parse_errors: tuple[ParseError, ...]
    validation_errors: tuple[str, ...]
    duplicates: tuple[DuplicateReport, ...]
    payment_overrides: frozenset[str] = field(default_factory=frozenset)
    party_overrides: frozenset[str] = field(default_factory=frozenset)
    source_type: str = "manual"
    source_label: str = "manual entry"

    @property
    def blocking_duplicates(self) -> list[DuplicateReport]:
        return blocking_reports(self.duplicates)

    @property
    def can_submit(self) -> bool:
        return (
            bool(self.entries)
            and not self.parse_errors
            and not self.validation_errors
            and not self.blocking_duplicates
        )

    def problems(self) -> list[str]:
        """All blocking problems as display strings, in pipeline order."""
        messages = [str(error) for error in self.parse_errors]
        messages.extend(self.validation_errors)
        messages.extend(report.message for report in self.blocking_duplicates)
        return messages


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _get_db_config(app_config: AppConfig) -> DatabaseConfig:
    """Convenience helper to access the database configuration."""
    return app_config.database


def _ids_for_lines(entries: Iterable[Entry], lines: Collection[int]) -> frozenset[str]:
    wanted = set(lines)
    return frozenset(entry.id for entry in entries if entry.line_number in wanted)


def _build_preview(
    app_config: AppConfig,
    items: Sequence[Union[Entry, ParseError]],
    payment_overrides: Collection[int],
    party_overrides: Collection[int],
    source_type: str,
    source_label: str,
) -> BatchPreview:
    entries, parse_errors = split_parsed(items)
    payment_ids = _ids_for_lines(entries, payment_overrides)
    party_ids = _ids_for_lines(entries, party_overrides)

    validation_errors = validate(entries, party_ids)
    duplicates = (
        check_duplicates(_get_db_config(app_config), entries, payment_ids)
        if entries
        else []
    )
    return BatchPreview(
        entries=tuple(entries),
        parse_errors=tuple(parse_errors),
        validation_errors=tuple(validation_errors),
        duplicates=tuple(duplicates),
        payment_overrides=payment_ids,
        party_overrides=party_ids,
        source_type=source_type,
        source_label=source_label,
    )


# ---------------------------------------------------------------------------
# Preview
# ---------------------------------------------------------------------------


def preview_batch(
    app_config: AppConfig,
    text: str,
    context_date: date,
    known_parties: Optional[Iterable[str]] = None,
    payment_overrides: Collection[int] = (),
    party_overrides: Collection[int] = (),
) -> BatchPreview:
    """
    Parse, validate and duplicate-check shorthand text without writing.

    Parameters
    ----------
    app_config:
        Global application configuration.
    text:
        Multi-line shorthand text.
    context_date:
        Date of lines without an explicit date.
    known_parties:
        Party names recognized as payment labels. Defaults to the parties
        registered in the ledger.
    payment_overrides:
        Line numbers of payments allowed despite a duplicate.
    party_overrides:
        Line numbers whose party-name warning is accepted.
    """
    if known_parties is None:
        known_parties = party_names(_get_db_config(app_config))
    items = parse(text, context_date, known_parties)
    return _build_preview(
        app_config,
        items,
        payment_overrides,
        party_overrides,
        source_type="manual",
        source_label="manual entry",
    )


def preview_csv_import(
    app_config: AppConfig,
    path: str,
    mapping: ColumnMapping,
    payment_overrides: Collection[int] = (),
    party_overrides: Collection[int] = (),
) -> BatchPreview:
    """Read a CSV file of sales and preview it like shorthand text."""
    items = rows_to_entries(read_raw_rows(path), mapping)
    return _build_preview(
        app_config,
        items,
        payment_overrides,
        party_overrides,
        source_type="csv",
        source_label=str(path),
    )


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class LedgerSession:
    """
    One operator session over the ledger.

    Holds the manifest of the most recent batch (for undo) and the set of
    cluster dates ignored during the session. Nothing here survives the
    process; persist ``last_manifest.to_dict()`` when that is needed.
    """

    def __init__(self, app_config: AppConfig):
        self.app_config = app_config
        self.last_manifest: Optional[BatchManifest] = None
        self.ignored_dates: set[date] = set()

    @property
    def db(self) -> DatabaseConfig:
        return _get_db_config(self.app_config)

    # -- batches ------------------------------------------------------------

    def submit(self, preview: BatchPreview) -> ApplyResult:
        """
        Apply a previewed batch.

        Parse errors block the batch (every line must be understood); the
        engine re-runs validation and the duplicate check itself.
        """
        if preview.parse_errors:
            return ApplyResult(
                error=ValidationError([str(e) for e in preview.parse_errors])
            )

        result = apply_batch(
            self.db,
            preview.entries,
            payment_overrides=preview.payment_overrides,
            party_overrides=preview.party_overrides,
            source_type=preview.source_type,  # type: ignore[arg-type]
            source_label=preview.source_label,
            default_credit_limit=self.app_config.default_credit_limit,
        )
        if result.manifest is not None:
            self.last_manifest = result.manifest
        return result

    def undo_last(self) -> UndoResult:
        """Undo the most recent batch of this session (at most once)."""
        if self.last_manifest is None:
            return UndoResult(error=UndoError("There is no batch to undo."))

        result = undo_batch(self.db, self.last_manifest)
        if result.ok:
            self.last_manifest = None
        return result

    # -- duplicate clusters -------------------------------------------------

    def scan_clusters(
        self,
        period: Optional[Period] = None,
        row_type: Optional[str] = "sale",
    ) -> dict[date, list[AmountGroup]]:
        """Cluster the rows of the current view, skipping ignored dates."""
        if period is not None:
            filters = period.to_filter(row_type)
        else:
            filters = RowsFilter(type=row_type)  # type: ignore[arg-type]
        return scan_ledger_clusters(
            self.db,
            filters,
            ignored_dates=self.ignored_dates,
            limit=self.app_config.duplicate_scan_limit,
        )

    def ignore_cluster(self, day: date) -> None:
        """Stop flagging clusters on ``day`` for the rest of the session."""
        self.ignored_dates.add(day)

    def keep_one(self, group: AmountGroup, keep_row_id: str) -> DeleteResult:
        """
        Resolve a cluster: keep ``keep_row_id`` and delete the other rows.

        Raises
        ------
        ValueError
            If ``keep_row_id`` is not part of the group.
        """
        ids = [row.id for row in group.rows]
        if keep_row_id not in ids:
            raise ValueError(f"Row {keep_row_id} is not part of this cluster.")

        result = delete_rows(self.db, [row_id for row_id in ids if row_id != keep_row_id])
        if result.ok:
            logger.info(
                "Cluster %s / %s resolved: kept %s, deleted %d row(s)",
                group.date,
                group.amount,
                keep_row_id,
                len(result.deleted_row_ids),
            )
        return result


# ---------------------------------------------------------------------------
# Listing & maintenance
# ---------------------------------------------------------------------------


def list_rows_for_period(
    app_config: AppConfig,
    period: Period,
    row_type: Optional[str] = None,
    *,
    limit: Optional[int] = None,
    offset: int = 0,
    order_by: tuple[str, str] = ("date", "ASC"),
) -> pd.DataFrame:
    """List ledger rows of a period (optionally one type) as a DataFrame."""
    return _db_search_rows(
        _get_db_config(app_config),
        period.to_filter(row_type),
        limit=limit,
        offset=offset,
        order_by=order_by,
    )


def list_parties(app_config: AppConfig) -> pd.DataFrame:
    return _db_list_parties(_get_db_config(app_config))


def list_staff(app_config: AppConfig) -> pd.DataFrame:
    return _db_list_staff(_get_db_config(app_config))


def check_balances(app_config: AppConfig, *, repair: bool = False) -> BalanceCheck:
    """Compare stored balances with the committed rows (optionally repair)."""
    return recalculate_balances(_get_db_config(app_config), repair=repair)
