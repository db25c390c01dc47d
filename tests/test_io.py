from datetime import date
from decimal import Decimal

import pytest

from quick_ledger.entries import ParseError, Sale
from quick_ledger.io import (
    ColumnMapping,
    normalize_payment_mode,
    read_raw_rows,
    rows_to_entries,
)


def write_csv(tmp_path, text: str):
    path = tmp_path / "sales.csv"
    path.write_text(text, encoding="utf-8")
    return path


def test_read_raw_rows_normalizes_headers_and_keeps_strings(tmp_path):
    path = write_csv(
        tmp_path,
        " Date ,Amount,Mode\n2024-12-13,\"1,250.00\",UPI\n2024-12-14,80,\n",
    )

    rows = read_raw_rows(path)

    assert rows == [
        {"date": "2024-12-13", "amount": "1,250.00", "mode": "UPI"},
        {"date": "2024-12-14", "amount": "80", "mode": ""},
    ]


def test_read_raw_rows_rejects_empty_file(tmp_path):
    path = write_csv(tmp_path, "")

    with pytest.raises(ValueError):
        read_raw_rows(path)


def test_normalize_payment_mode_keywords():
    assert normalize_payment_mode("UPI", "cash") == "digital"
    assert normalize_payment_mode("Card payment", "cash") == "digital"
    assert normalize_payment_mode("due", "cash") == "credit"
    assert normalize_payment_mode("Cash", "digital") == "cash"
    assert normalize_payment_mode("cheque", "digital") == "digital"
    assert normalize_payment_mode("", "cash") == "cash"


def test_rows_to_entries_builds_sales():
    mapping = ColumnMapping(
        date="Date", amount="Amount", payment_mode="Mode", party="Customer"
    )
    rows = [
        {"date": "13/12/24", "amount": "₹ 1,250", "mode": "upi", "customer": ""},
        {"date": "2024-12-13", "amount": "400", "mode": "credit", "customer": "Maa"},
    ]

    entries = rows_to_entries(rows, mapping)

    assert all(isinstance(e, Sale) for e in entries)
    first, second = entries
    assert first.date == date(2024, 12, 13)
    assert first.amount == Decimal("1250.00")
    assert first.payment_mode == "digital"
    assert first.party_name is None
    assert first.line_number == 1
    assert second.payment_mode == "credit"
    assert second.party_name == "Maa"
    assert second.line_number == 2


def test_rows_to_entries_reports_bad_rows():
    mapping = ColumnMapping(date="date", amount="amount", payment_mode="mode")
    rows = [
        {"date": "", "amount": "10", "mode": ""},
        {"date": "2024-12-13", "amount": "abc", "mode": ""},
        {"date": "2024-13-45", "amount": "10", "mode": ""},
        {"date": "2024-12-13", "amount": "10", "mode": "credit"},
    ]

    results = rows_to_entries(rows, mapping)

    assert all(isinstance(r, ParseError) for r in results)
    assert [r.reason for r in results] == [
        "Missing required data: date",
        "Invalid amount: abc",
        "Invalid date: 2024-13-45",
        "Credit sale requires a party name",
    ]
    assert [r.line_number for r in results] == [1, 2, 3, 4]


def test_explicit_date_format_and_default_mode():
    mapping = ColumnMapping(
        date="day", amount="total", default_payment_mode="digital", date_format="%m-%d-%Y"
    )

    (entry,) = rows_to_entries([{"day": "12-13-2024", "total": "99.5"}], mapping)

    assert isinstance(entry, Sale)
    assert entry.date == date(2024, 12, 13)
    assert entry.payment_mode == "digital"


def test_invalid_default_mode_is_rejected():
    with pytest.raises(ValueError):
        ColumnMapping(date="d", amount="a", default_payment_mode="cheque")


def test_oversized_amount_is_reported_not_raised():
    mapping = ColumnMapping(date="date", amount="amount")

    (result,) = rows_to_entries([{"date": "2024-12-13", "amount": "9" * 30}], mapping)

    assert isinstance(result, ParseError)
    assert result.reason.startswith("Invalid amount")
