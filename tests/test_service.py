from datetime import date
from decimal import Decimal

from quick_ledger.config import AppConfig
from quick_ledger.db import count_rows, get_party_by_name
from quick_ledger.exceptions import UndoError, ValidationError
from quick_ledger.io import ColumnMapping
from quick_ledger.periods import Period
from quick_ledger.service import (
    LedgerSession,
    check_balances,
    list_parties,
    list_rows_for_period,
    preview_batch,
    preview_csv_import,
)

CONTEXT = date(2024, 12, 15)

SHORTHAND = """\
7. 21506 net
20. 9300 (Maa)
SAJ (date: 13/12/24) 33201
GP 94100 GST
"""


def make_app_config(tmp_path) -> AppConfig:
    return AppConfig.default(tmp_path / "service.sqlite")


def test_preview_reports_entries_without_writing(tmp_path):
    app_config = make_app_config(tmp_path)

    preview = preview_batch(app_config, SHORTHAND, CONTEXT)

    assert preview.can_submit
    assert [e.kind for e in preview.entries] == ["sale", "sale", "bill", "expense"]
    assert preview.problems() == []
    assert count_rows(app_config.database) == 0


def test_preview_collects_every_problem(tmp_path):
    app_config = make_app_config(tmp_path)
    text = "hello there\nRavi Sal 1000\n5. 100 (Bad#Name)\n"

    preview = preview_batch(app_config, text, CONTEXT)

    assert not preview.can_submit
    assert len(preview.parse_errors) == 1
    assert len(preview.validation_errors) == 1
    assert len(preview.problems()) == 2

    accepted = preview_batch(app_config, text, CONTEXT, party_overrides=[3])
    assert accepted.validation_errors == ()


def test_submit_and_undo_last(tmp_path):
    app_config = make_app_config(tmp_path)
    session = LedgerSession(app_config)

    result = session.submit(preview_batch(app_config, SHORTHAND, CONTEXT))

    assert result.ok
    assert count_rows(session.db) == 4
    assert session.last_manifest is not None

    undo = session.undo_last()
    assert undo.ok
    assert count_rows(session.db) == 0
    assert session.last_manifest is None

    nothing = session.undo_last()
    assert isinstance(nothing.error, UndoError)


def test_submit_refuses_parse_errors(tmp_path):
    app_config = make_app_config(tmp_path)
    session = LedgerSession(app_config)

    result = session.submit(preview_batch(app_config, "7. 100\nnonsense\n", CONTEXT))

    assert isinstance(result.error, ValidationError)
    assert count_rows(session.db) == 0


def test_payment_override_by_line_number(tmp_path):
    app_config = make_app_config(tmp_path)
    session = LedgerSession(app_config)
    assert session.submit(preview_batch(app_config, "PBK 2000 party\n", CONTEXT)).ok

    text = "7. 100\nPBK 2000 party\n"
    blocked = preview_batch(app_config, text, CONTEXT)
    allowed = preview_batch(app_config, text, CONTEXT, payment_overrides=[2])

    assert [r.status for r in blocked.duplicates] == ["pending"]
    assert not blocked.can_submit
    assert [r.status for r in allowed.duplicates] == ["overridden"]
    assert session.submit(allowed).ok
    assert get_party_by_name(session.db, "PBK").current_balance == Decimal("-4000.00")


def test_registered_party_is_recognized_as_payment(tmp_path):
    app_config = make_app_config(tmp_path)
    session = LedgerSession(app_config)
    assert session.submit(preview_batch(app_config, "20. 500 (Maa)\n", CONTEXT)).ok

    preview = preview_batch(app_config, "Maa 500\n", CONTEXT)

    assert preview.entries[0].kind == "payment"


def test_csv_import_preview_and_submit(tmp_path):
    app_config = make_app_config(tmp_path)
    csv_path = tmp_path / "till.csv"
    csv_path.write_text(
        "date,amount,mode,customer\n"
        "2024-12-14,150,cash,\n"
        "2024-12-14,90,due,Maa\n",
        encoding="utf-8",
    )
    mapping = ColumnMapping(
        date="date", amount="amount", payment_mode="mode", party="customer"
    )

    preview = preview_csv_import(app_config, str(csv_path), mapping)
    result = LedgerSession(app_config).submit(preview)

    assert preview.source_type == "csv"
    assert result.ok
    assert get_party_by_name(app_config.database, "Maa").current_balance == Decimal(
        "90.00"
    )


def test_listing_helpers(tmp_path):
    app_config = make_app_config(tmp_path)
    LedgerSession(app_config).submit(preview_batch(app_config, SHORTHAND, CONTEXT))
    december = Period(start=date(2024, 12, 1), end=date(2024, 12, 31), label="Dec")

    rows = list_rows_for_period(app_config, december)
    sales = list_rows_for_period(app_config, december, "sale")
    parties = list_parties(app_config)

    assert len(rows) == 4
    assert len(sales) == 2
    assert sorted(parties["name"]) == ["Maa", "SAJ"]
    assert check_balances(app_config).consistent
