# Quick Ledger - Shorthand bulk entry & ledger engine for small shops
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Command-Line Interface (CLI) for Quick Ledger.

The CLI is intentionally thin: it does not parse shorthand or touch balances
itself. It loads the configuration, then orchestrates the service layer
based on command-line arguments.

Subcommands
-----------
init
    Create the database file and schema.

preview FILE
    Parse, validate and duplicate-check a shorthand file ("-" = stdin)
    without writing anything.

apply FILE
    Same as preview, then apply the batch atomically when nothing blocks it.
    ``--manifest-out`` writes the batch manifest as JSON for a later undo.

undo --manifest PATH
    Reverse a batch from its JSON manifest (at most once).

import-csv FILE
    Preview and apply a CSV file of sales (column mapping given as options).

duplicates scan / duplicates keep
    Show date+amount clusters of the current view / keep one row of a
    cluster and delete the others.

rows list
    List committed rows of a period.

parties list|add, staff list|add
    Registry maintenance.

balances check [--repair]
    Compare stored balances with the committed rows.

Configuration
-------------
``--config`` points at a TOML file (``quick_ledger_config.toml`` in the
current directory is used when present). ``--db`` bypasses the file and uses
the given SQLite path with default settings.

Errors raised by the pipeline are printed with their code and the process
exits with a non-zero status.
"""

import argparse
import json
import sys
from datetime import date
from pathlib import Path
from typing import Optional, Sequence

import pandas as pd

from . import __version__
from .config import DEFAULT_CONFIG_FILE, AppConfig, load_app_config
from .db import RowsFilter, get_row, init_database, load_rows
from .duplicates import AmountGroup
from .entries import Bill, Entry, Expense, Payment, Sale, to_amount, unknown_entry
from .io import ColumnMapping
from .ledger import ApplyResult, BatchManifest, undo_batch
from .logging_config import configure_logging
from .parser import parse_date_text
from .periods import determine_period_from_args
from .registry import add_party, add_staff
from .service import (
    BatchPreview,
    LedgerSession,
    check_balances,
    list_parties,
    list_rows_for_period,
    list_staff,
    preview_batch,
    preview_csv_import,
)


def _build_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the CLI."""
    ap = argparse.ArgumentParser(
        prog="quick-ledger",
        description=(
            "Quick Ledger - Shorthand bulk entry & ledger engine for small shops. "
            "Parses terse transaction lines, checks them for duplicates and "
            "commits them atomically with an undo."
        ),
    )

    # Generic options
    ap.add_argument(
        "--version",
        action="store_true",
        help="Show the installed version of quick_ledger and exit.",
    )
    ap.add_argument(
        "--config",
        dest="config_path",
        help=(
            "Path to the TOML configuration file. "
            f"If omitted, '{DEFAULT_CONFIG_FILE}' in the current directory is "
            "used when it exists."
        ),
    )
    ap.add_argument(
        "--db",
        dest="db_path",
        help="Path to the SQLite database (overrides the configuration file).",
    )
    ap.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override the logging level from the configuration.",
    )

    subparsers = ap.add_subparsers(dest="command", metavar="command")

    # init
    subparsers.add_parser("init", help="Create the database and its schema.")

    # preview / apply
    for name, help_text in (
        ("preview", "Parse and check a shorthand file without writing."),
        ("apply", "Parse, check and apply a shorthand file atomically."),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("file", help="Shorthand text file ('-' reads stdin).")
        sub.add_argument(
            "--date",
            dest="context_date",
            help="Date of lines without an explicit date (YYYY-MM-DD or DD/MM/YY). "
            "Defaults to today.",
        )
        _add_override_arguments(sub)
        if name == "apply":
            sub.add_argument(
                "--manifest-out",
                help="Write the batch manifest to this JSON file (for 'undo').",
            )

    # undo
    undo = subparsers.add_parser("undo", help="Undo a batch from its manifest.")
    undo.add_argument("--manifest", required=True, help="JSON manifest file.")

    # import-csv
    imp = subparsers.add_parser("import-csv", help="Import a CSV file of sales.")
    imp.add_argument("file", help="CSV file.")
    imp.add_argument("--date-column", required=True)
    imp.add_argument("--amount-column", required=True)
    imp.add_argument("--mode-column", help="Column holding the payment mode.")
    imp.add_argument("--party-column", help="Column holding the party name.")
    imp.add_argument("--description-column")
    imp.add_argument(
        "--default-mode",
        choices=["cash", "digital", "credit"],
        default="cash",
        help="Payment mode used when the mode column is missing or unknown.",
    )
    imp.add_argument(
        "--date-format",
        help="strptime format of the date column (default: ISO or DD/MM/YY[YY]).",
    )
    imp.add_argument(
        "--dry-run",
        action="store_true",
        help="Only preview the import.",
    )
    imp.add_argument("--manifest-out", help="Write the batch manifest to this file.")
    _add_override_arguments(imp)

    # duplicates
    dup = subparsers.add_parser("duplicates", help="Retroactive duplicate clusters.")
    dup_sub = dup.add_subparsers(dest="duplicates_command", metavar="duplicates-command")
    scan = dup_sub.add_parser("scan", help="Show date+amount clusters.")
    _add_period_arguments(scan)
    scan.add_argument(
        "--type",
        dest="row_type",
        choices=["sale", "expense", "bill", "payment", "all"],
        default="sale",
        help="Row type to scan (default: sale).",
    )
    scan.add_argument(
        "--ignore-date",
        action="append",
        default=[],
        help="Skip clusters on this date (YYYY-MM-DD). Can be repeated.",
    )
    keep = dup_sub.add_parser(
        "keep", help="Keep one row of a cluster and delete the other rows."
    )
    keep.add_argument("--row-id", required=True, help="Id of the row to keep.")

    # rows
    rows = subparsers.add_parser("rows", help="Committed ledger rows.")
    rows_sub = rows.add_subparsers(dest="rows_command", metavar="rows-command")
    rows_list = rows_sub.add_parser("list", help="List rows of a period.")
    _add_period_arguments(rows_list)
    rows_list.add_argument(
        "--type",
        dest="row_type",
        choices=["sale", "expense", "bill", "payment"],
    )
    rows_list.add_argument("--limit", type=int)

    # parties
    parties = subparsers.add_parser("parties", help="Party registry.")
    parties_sub = parties.add_subparsers(dest="parties_command", metavar="parties-command")
    parties_sub.add_parser("list", help="List parties and balances.")
    parties_add = parties_sub.add_parser("add", help="Register a party.")
    parties_add.add_argument("name")
    parties_add.add_argument("--credit-limit", default="0")

    # staff
    staff = subparsers.add_parser("staff", help="Staff registry.")
    staff_sub = staff.add_subparsers(dest="staff_command", metavar="staff-command")
    staff_sub.add_parser("list", help="List staff and outstanding advances.")
    staff_add = staff_sub.add_parser("add", help="Register a staff member.")
    staff_add.add_argument("name")

    # balances
    balances = subparsers.add_parser("balances", help="Running balance checks.")
    balances_sub = balances.add_subparsers(
        dest="balances_command", metavar="balances-command"
    )
    check = balances_sub.add_parser("check", help="Compare balances with rows.")
    check.add_argument(
        "--repair",
        action="store_true",
        help="Overwrite drifted balances with the recomputed values.",
    )

    return ap


def _add_override_arguments(sub: argparse.ArgumentParser) -> None:
    sub.add_argument(
        "--override-payment",
        dest="payment_overrides",
        type=int,
        action="append",
        default=[],
        metavar="LINE",
        help="Allow the duplicate payment on this line. Can be repeated.",
    )
    sub.add_argument(
        "--override-party",
        dest="party_overrides",
        type=int,
        action="append",
        default=[],
        metavar="LINE",
        help="Accept the party-name warning on this line. Can be repeated.",
    )


def _add_period_arguments(sub: argparse.ArgumentParser) -> None:
    sub.add_argument(
        "--period",
        choices=["today", "mtd", "last-month", "ytd"],
        help="Named period (default: month to date).",
    )
    sub.add_argument("--from-date", help="Custom period start (YYYY-MM-DD).")
    sub.add_argument("--to-date", help="Custom period end (YYYY-MM-DD).")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_config(args: argparse.Namespace) -> AppConfig:
    if args.db_path:
        return AppConfig.default(Path(args.db_path))
    if args.config_path:
        return load_app_config(args.config_path)
    if Path(DEFAULT_CONFIG_FILE).is_file():
        return load_app_config()
    return AppConfig.default()


def _parse_context_date(value: Optional[str]) -> date:
    """
    Parse the --date argument (defaults to today).

    Raises
    ------
    SystemExit
        If the date format is invalid.
    """
    if value is None:
        return date.today()
    try:
        return parse_date_text(value)
    except ValueError as exc:
        msg = f"Invalid date format: {value!r}. Expected YYYY-MM-DD or DD/MM/YY."
        raise SystemExit(msg) from exc


def _read_text(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    file_path = Path(path)
    if not file_path.is_file():
        raise SystemExit(f"File not found: {file_path}")
    return file_path.read_text(encoding="utf-8")


def _entry_details(entry: Entry) -> tuple[str, str, str]:
    """Return (mode/category, party/staff, extra details) for display."""
    if isinstance(entry, Sale):
        return entry.payment_mode, entry.party_name or "", entry.description or ""
    if isinstance(entry, Expense):
        extra = "GST" if entry.has_gst else ""
        return entry.category, entry.staff_name or "", extra
    if isinstance(entry, Bill):
        parts = []
        if entry.bill_number:
            parts.append(f"#{entry.bill_number}")
        if entry.gr_amount is not None:
            parts.append(f"GR {entry.gr_amount}")
        if entry.has_gst:
            parts.append("GST")
        return "", entry.party_name, " ".join(parts)
    if isinstance(entry, Payment):
        return "party_payment", entry.party_name, "GST" if entry.has_gst else ""
    unknown_entry(entry)


def _entries_frame(entries: Sequence[Entry]) -> pd.DataFrame:
    records = []
    for entry in entries:
        mode, who, extra = _entry_details(entry)
        records.append(
            {
                "line": entry.line_number,
                "kind": entry.kind,
                "date": entry.date.isoformat(),
                "amount": f"{entry.amount:.2f}",
                "mode/category": mode,
                "party/staff": who,
                "details": extra,
            }
        )
    return pd.DataFrame(records)


def _print_preview(preview: BatchPreview) -> None:
    if preview.entries:
        print()
        print(_entries_frame(preview.entries).to_string(index=False))

    if preview.duplicates:
        print()
        print("Duplicates:")
        for report in preview.duplicates:
            print(f"  [{report.status}] {report.message}")

    problems = preview.problems()
    if problems:
        print()
        print("Problems:")
        for message in problems:
            print(f"  - {message}")

    print()
    if preview.can_submit:
        print(f"Ready to submit: {len(preview.entries)} entries.")
    else:
        print("The batch cannot be submitted until the problems above are fixed.")


def _write_manifest(manifest: BatchManifest, path: str) -> None:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(manifest.to_dict(), indent=2), encoding="utf-8")
    print(f"Wrote manifest {out}")


def _report_apply(result: ApplyResult, manifest_out: Optional[str]) -> None:
    if not result.ok:
        assert result.error is not None
        for outcome in result.failures:
            if outcome.status == "failed":
                print(f"  line {outcome.line}: {outcome.message}")
        raise SystemExit(f"Error [{result.error.code}]: {result.error.message}")

    assert result.manifest is not None
    print(
        f"Applied batch #{result.manifest.batch_id}: "
        f"{len(result.committed_rows)} rows committed."
    )
    if manifest_out:
        _write_manifest(result.manifest, manifest_out)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _handle_preview(args: argparse.Namespace, config: AppConfig) -> None:
    preview = preview_batch(
        config,
        _read_text(args.file),
        _parse_context_date(args.context_date),
        payment_overrides=args.payment_overrides,
        party_overrides=args.party_overrides,
    )
    _print_preview(preview)


def _handle_apply(args: argparse.Namespace, config: AppConfig) -> None:
    preview = preview_batch(
        config,
        _read_text(args.file),
        _parse_context_date(args.context_date),
        payment_overrides=args.payment_overrides,
        party_overrides=args.party_overrides,
    )
    _print_preview(preview)
    if not preview.can_submit:
        raise SystemExit(1)

    _report_apply(LedgerSession(config).submit(preview), args.manifest_out)


def _handle_undo(args: argparse.Namespace, config: AppConfig) -> None:
    path = Path(args.manifest)
    if not path.is_file():
        raise SystemExit(f"Manifest not found: {path}")
    try:
        manifest = BatchManifest.from_dict(json.loads(path.read_text(encoding="utf-8")))
    except (json.JSONDecodeError, ValueError) as exc:
        raise SystemExit(f"Invalid manifest {path}: {exc}") from exc

    result = undo_batch(config.database, manifest)
    if not result.ok:
        assert result.error is not None
        raise SystemExit(f"Error [{result.error.code}]: {result.error.message}")
    print(f"Undid batch #{result.batch_id}: {result.rows_deleted} rows removed.")


def _handle_import_csv(args: argparse.Namespace, config: AppConfig) -> None:
    path = Path(args.file)
    if not path.is_file():
        raise SystemExit(f"CSV file not found: {path}")

    mapping = ColumnMapping(
        date=args.date_column,
        amount=args.amount_column,
        payment_mode=args.mode_column,
        party=args.party_column,
        description=args.description_column,
        default_payment_mode=args.default_mode,
        date_format=args.date_format,
    )
    try:
        preview = preview_csv_import(
            config,
            str(path),
            mapping,
            payment_overrides=args.payment_overrides,
            party_overrides=args.party_overrides,
        )
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc

    _print_preview(preview)
    if args.dry_run:
        return
    if not preview.can_submit:
        raise SystemExit(1)

    _report_apply(LedgerSession(config).submit(preview), args.manifest_out)


def _print_clusters(clusters: dict[date, list[AmountGroup]]) -> None:
    if not clusters:
        print("No duplicate clusters found.")
        return

    for day, groups in clusters.items():
        print()
        print(f"=== {day.isoformat()} ===")
        for group in groups:
            print(f"  amount {group.amount:.2f} ({group.size} rows)")
            for row in group.rows:
                label = row.payment_mode or row.expense_category or ""
                print(
                    f"    {row.id}  {row.type:<8} {label:<14} "
                    f"created {row.created_at.isoformat()}"
                )


def _handle_duplicates(args: argparse.Namespace, config: AppConfig) -> None:
    sub = args.duplicates_command
    if sub == "scan":
        try:
            period = determine_period_from_args(args)
            ignored = [date.fromisoformat(d) for d in args.ignore_date]
        except ValueError as exc:
            raise SystemExit(str(exc)) from exc

        session = LedgerSession(config)
        for day in ignored:
            session.ignore_cluster(day)
        row_type = None if args.row_type == "all" else args.row_type
        print(f"Scanning {period.label}: {period.start} → {period.end}")
        _print_clusters(session.scan_clusters(period, row_type))
        return

    if sub == "keep":
        row = get_row(config.database, args.row_id)
        if row is None:
            raise SystemExit(f"Row {args.row_id} not found.")
        same_day = load_rows(
            config.database,
            RowsFilter(start=row.date, end=row.date, type=row.type),
        )
        group = AmountGroup(
            date=row.date,
            amount=row.amount,
            rows=tuple(r for r in same_day if r.amount == row.amount),
        )
        if group.size < 2:
            print("Row is not part of a duplicate cluster; nothing to delete.")
            return
        result = LedgerSession(config).keep_one(group, row.id)
        if not result.ok:
            assert result.error is not None
            raise SystemExit(f"Error [{result.error.code}]: {result.error.message}")
        print(f"Kept {row.id}; deleted {len(result.deleted_row_ids)} row(s).")
        return

    raise SystemExit("Please specify a duplicates subcommand: scan or keep.")


def _handle_rows(args: argparse.Namespace, config: AppConfig) -> None:
    if args.rows_command != "list":
        raise SystemExit("Please specify a rows subcommand: list.")
    try:
        period = determine_period_from_args(args)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc

    df = list_rows_for_period(config, period, args.row_type, limit=args.limit)
    print(f"{period.label}: {period.start} → {period.end}")
    if df.empty:
        print("No rows found for the given criteria.")
        return
    print()
    print(df.drop(columns=["created_at"]).to_string(index=False))
    print()
    print(f"Total rows: {len(df)} | Total amount: {df['amount'].sum():.2f}")


def _handle_parties(args: argparse.Namespace, config: AppConfig) -> None:
    if args.parties_command == "add":
        try:
            party = add_party(
                config.database, args.name, credit_limit=to_amount(args.credit_limit)
            )
        except ValueError as exc:
            raise SystemExit(str(exc)) from exc
        print(f"Added party {party.name} ({party.id}).")
        return

    if args.parties_command == "list":
        df = list_parties(config)
        if df.empty:
            print("No parties registered.")
            return
        print(df.to_string(index=False))
        return

    raise SystemExit("Please specify a parties subcommand: list or add.")


def _handle_staff(args: argparse.Namespace, config: AppConfig) -> None:
    if args.staff_command == "add":
        try:
            staff = add_staff(config.database, args.name)
        except ValueError as exc:
            raise SystemExit(str(exc)) from exc
        print(f"Added staff member {staff.name} ({staff.id}).")
        return

    if args.staff_command == "list":
        df = list_staff(config)
        if df.empty:
            print("No staff registered.")
            return
        print(df.to_string(index=False))
        return

    raise SystemExit("Please specify a staff subcommand: list or add.")


def _handle_balances(args: argparse.Namespace, config: AppConfig) -> None:
    if args.balances_command != "check":
        raise SystemExit("Please specify a balances subcommand: check.")

    report = check_balances(config, repair=args.repair)
    if report.consistent:
        print("All balances match the committed rows.")
        return

    for drift in report.drifts:
        print(
            f"  {drift.account} {drift.name}: stored {drift.stored} "
            f"expected {drift.expected} (diff {drift.expected - drift.stored})"
        )
    if report.repaired:
        print(f"Repaired {len(report.drifts)} balance(s).")
    else:
        raise SystemExit(
            f"{len(report.drifts)} balance(s) drifted; run with --repair to fix them."
        )


_HANDLERS = {
    "preview": _handle_preview,
    "apply": _handle_apply,
    "undo": _handle_undo,
    "import-csv": _handle_import_csv,
    "duplicates": _handle_duplicates,
    "rows": _handle_rows,
    "parties": _handle_parties,
    "staff": _handle_staff,
    "balances": _handle_balances,
}


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Entry point for the Quick Ledger CLI."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    # --version: short-circuit and exit early.
    if args.version:
        print(f"quick_ledger version {__version__}")
        return

    try:
        config = _load_config(args)
    except (FileNotFoundError, ValueError) as exc:
        raise SystemExit(f"Configuration error: {exc}") from exc

    configure_logging(args.log_level or config.log_level)

    if args.command is None:
        parser.print_help()
        return

    init_database(config.database)

    if args.command == "init":
        print(f"Database ready at {config.database.path}")
        return

    _HANDLERS[args.command](args, config)


if __name__ == "__main__":
    main()
