# Quick Ledger - Shorthand bulk entry & ledger engine for small shops
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
I/O module for Quick Ledger.

This module adapts bulk files (CSV exports from a till, a bank statement,
etc.) to the entry pipeline. It works in two steps:

1) ``read_raw_rows`` reads a CSV file into *raw rows*: one mapping of
   column name -> string per line, with column names normalized to
   lowercase and surrounding spaces removed. No type conversion happens.

2) ``rows_to_entries`` turns raw rows into ``Sale`` entries (or
   ``ParseError`` values) according to a ``ColumnMapping``:

   - ``date`` column (required): ISO ``YYYY-MM-DD`` or day-first
     ``DD/MM/YY[YY]``, or any explicit ``date_format`` (strptime syntax);
   - ``amount`` column (required): currency symbols and thousands
     separators are ignored;
   - ``payment_mode`` column (optional): matched by keyword
       cash                          -> cash
       digital, online, upi, card    -> digital
       credit, loan, due             -> credit
     anything else (or no column) -> ``default_payment_mode``;
   - ``party`` column (optional): required when the mode is credit.

The resulting entries go through the same validator, duplicate detector
and apply engine as shorthand text.
"""

import os
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Union

import pandas as pd

from .entries import (
    PAYMENT_MODES,
    Entry,
    ParseError,
    PaymentMode,
    Sale,
    new_entry_id,
    to_amount,
)
from .parser import parse_date_text
from .registry import party_name_error

RawRow = Mapping[str, str]

_AMOUNT_NOISE_RE = re.compile(r"[^0-9.,\-]")

_MODE_KEYWORDS: tuple[tuple[PaymentMode, tuple[str, ...]], ...] = (
    ("cash", ("cash",)),
    ("digital", ("digital", "online", "upi", "card")),
    ("credit", ("credit", "loan", "due")),
)


@dataclass(frozen=True)
class ColumnMapping:
    """
    Which raw-row columns hold which sale fields.

    Column names are matched case-insensitively.
    """

    date: str
    amount: str
    payment_mode: Optional[str] = None
    party: Optional[str] = None
    description: Optional[str] = None
    default_payment_mode: PaymentMode = "cash"
    date_format: Optional[str] = None

    def __post_init__(self) -> None:
        if self.default_payment_mode not in PAYMENT_MODES:
            raise ValueError(
                f"Invalid default payment mode: {self.default_payment_mode!r}"
            )


def read_raw_rows(path: Union[str, "os.PathLike[str]"]) -> list[dict[str, str]]:
    """
    Read a CSV file into raw rows.

    Every cell is kept as a string; empty cells become "". Column names are
    lowercased and stripped.

    Raises
    ------
    ValueError
        If the file has no header row.
    """
    try:
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
    except pd.errors.EmptyDataError as exc:
        raise ValueError(f"CSV file is empty: {path}") from exc

    df.columns = [str(c).lower().strip() for c in df.columns]
    return [
        {column: str(value).strip() for column, value in record.items()}
        for record in df.to_dict(orient="records")
    ]


def normalize_payment_mode(raw: Optional[str], default: PaymentMode) -> PaymentMode:
    """Map a free-text payment mode to cash / digital / credit."""
    if not raw:
        return default
    text = raw.lower()
    for mode, keywords in _MODE_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return mode
    return default


def _cell(row: RawRow, column: Optional[str]) -> str:
    if column is None:
        return ""
    return str(row.get(column.lower().strip(), "") or "").strip()


def _row_text(row: RawRow) -> str:
    return ", ".join(f"{key}={value}" for key, value in row.items())


def rows_to_entries(
    rows: Iterable[RawRow],
    mapping: ColumnMapping,
    *,
    id_factory: Callable[[], str] = new_entry_id,
) -> list[Union[Entry, ParseError]]:
    """
    Convert raw rows into sale entries.

    Row numbers start at 1 for the first data row and are used as the
    ``line_number`` of entries and errors.
    """
    results: list[Union[Entry, ParseError]] = []

    for row_number, raw in enumerate(rows, start=1):
        # Column names of hand-built rows may not be normalized yet.
        row = {str(k).lower().strip(): v for k, v in raw.items()}
        text = _row_text(raw)

        date_raw = _cell(row, mapping.date)
        amount_raw = _cell(row, mapping.amount)
        if not date_raw or not amount_raw:
            missing = "date" if not date_raw else "amount"
            results.append(
                ParseError(row_number, text, f"Missing required data: {missing}")
            )
            continue

        try:
            amount = to_amount(_AMOUNT_NOISE_RE.sub("", amount_raw))
        except ValueError:
            results.append(ParseError(row_number, text, f"Invalid amount: {amount_raw}"))
            continue

        try:
            if mapping.date_format:
                sale_date = datetime.strptime(date_raw, mapping.date_format).date()
            else:
                sale_date = parse_date_text(date_raw)
        except ValueError:
            results.append(ParseError(row_number, text, f"Invalid date: {date_raw}"))
            continue

        mode = normalize_payment_mode(
            _cell(row, mapping.payment_mode), mapping.default_payment_mode
        )
        party = _cell(row, mapping.party) or None
        if mode == "credit" and party is None:
            results.append(
                ParseError(row_number, text, "Credit sale requires a party name")
            )
            continue

        results.append(
            Sale(
                id=id_factory(),
                date=sale_date,
                amount=amount,
                payment_mode=mode,
                party_name=party if mode == "credit" else None,
                description=_cell(row, mapping.description) or None,
                party_error=party_name_error(party) if mode == "credit" else None,
                line_number=row_number,
            )
        )

    return results
