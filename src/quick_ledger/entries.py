# Quick Ledger - Shorthand bulk entry & ledger engine for small shops
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Entry data model for Quick Ledger.

An *entry* is one parsed, not-yet-committed transaction intent. Entries form
an explicit tagged union of four frozen dataclasses:

- ``Sale``     counter sale, paid in cash, digitally or on credit,
- ``Expense``  shop expense, salary or staff advance,
- ``Bill``     supplier bill received from a party,
- ``Payment``  payment made to a party (reduces its balance).

Each variant exposes a ``kind`` class attribute ("sale", "expense", "bill",
"payment") which is also the ``type`` stored on committed ledger rows.
Consumers dispatch with ``isinstance`` and end every dispatch with
``unknown_entry`` so that a new variant cannot be silently ignored.

Amounts are ``Decimal`` values quantized to two decimal places and are never
negative. The ledger stores them as integer cents.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import ClassVar, Iterable, Literal, NoReturn, Union

PaymentMode = Literal["cash", "digital", "credit"]
EntryKind = Literal["sale", "expense", "bill", "payment"]
ExpenseCategory = Literal[
    "goods_purchase",
    "salary",
    "advance",
    "home",
    "rent",
    "party_payment",
    "petty",
    "poly",
    "food",
]

PAYMENT_MODES: tuple[str, ...] = ("cash", "digital", "credit")
STAFF_CATEGORIES = frozenset({"salary", "advance"})

_CENT = Decimal("0.01")
# Largest amount the ledger can store (signed 64-bit integer cents).
MAX_CENTS = 2**63 - 1


# ---------------------------------------------------------------------------
# Amount helpers
# ---------------------------------------------------------------------------


def to_amount(value: object) -> Decimal:
    """
    Convert a number or numeric string to a 2-decimal, non-negative Decimal.

    Commas used as thousands separators are accepted in strings
    ("1,25,000.50" and "125,000.50" both give 125000.50).

    Raises
    ------
    ValueError
        If the value is not numeric, is negative or exceeds ``MAX_CENTS``.
    """
    if isinstance(value, Decimal):
        raw = value
    else:
        text = str(value).strip().replace(",", "")
        try:
            raw = Decimal(text)
        except InvalidOperation as exc:
            raise ValueError(f"Invalid amount: {value!r}") from exc

    if not raw.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    if raw < 0:
        raise ValueError(f"Amount cannot be negative: {value!r}")
    try:
        amount = raw.quantize(_CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"Amount is too large: {value!r}") from exc
    if amount_to_cents(amount) > MAX_CENTS:
        raise ValueError(f"Amount is too large: {value!r}")
    return amount


def amount_to_cents(amount: Decimal) -> int:
    """Return the integer number of cents for a quantized amount."""
    return int((amount * 100).to_integral_value(rounding=ROUND_HALF_UP))


def cents_to_amount(cents: int) -> Decimal:
    """Inverse of ``amount_to_cents`` (signed values allowed)."""
    return (Decimal(int(cents)) / 100).quantize(_CENT)


def new_entry_id() -> str:
    """Return a fresh opaque entry identifier."""
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Entry variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Sale:
    """
    Counter sale.

    ``party_name`` is required when ``payment_mode == "credit"`` (the party
    then owes the amount). ``party_error`` holds a non-fatal message when the
    party name contains characters outside the allowed set.
    """

    kind: ClassVar[EntryKind] = "sale"

    id: str
    date: date
    amount: Decimal
    payment_mode: PaymentMode = "cash"
    party_name: str | None = None
    description: str | None = None
    party_error: str | None = None
    line_number: int | None = None


@dataclass(frozen=True)
class Expense:
    """
    Shop expense. ``staff_name`` is required for salary and advance.
    """

    kind: ClassVar[EntryKind] = "expense"

    id: str
    date: date
    amount: Decimal
    category: ExpenseCategory = "petty"
    has_gst: bool = False
    staff_name: str | None = None
    description: str | None = None
    line_number: int | None = None


@dataclass(frozen=True)
class Bill:
    """Supplier bill. The date is always explicit on the shorthand line."""

    kind: ClassVar[EntryKind] = "bill"

    id: str
    date: date
    amount: Decimal
    party_name: str
    bill_number: str | None = None
    has_gst: bool = False
    gr_amount: Decimal | None = None
    description: str | None = None
    party_error: str | None = None
    line_number: int | None = None


@dataclass(frozen=True)
class Payment:
    """Payment made to a party. Reduces the party balance."""

    kind: ClassVar[EntryKind] = "payment"

    id: str
    date: date
    amount: Decimal
    party_name: str
    has_gst: bool = False
    description: str | None = None
    party_error: str | None = None
    line_number: int | None = None


Entry = Union[Sale, Expense, Bill, Payment]


@dataclass(frozen=True)
class ParseError:
    """A line that could not be classified. The original text is preserved."""

    line_number: int
    line: str
    reason: str

    def __str__(self) -> str:
        return f"Line {self.line_number}: {self.reason} ({self.line!r})"


# ---------------------------------------------------------------------------
# Helpers shared by the pipeline stages
# ---------------------------------------------------------------------------


def unknown_entry(entry: object) -> NoReturn:
    """Terminate an exhaustive dispatch over the Entry union."""
    raise TypeError(f"Unsupported entry type: {type(entry).__name__}")


def party_name_of(entry: Entry) -> str | None:
    """Return the party referenced by an entry, if any."""
    if isinstance(entry, (Sale, Bill, Payment)):
        return entry.party_name or None
    if isinstance(entry, Expense):
        return None
    unknown_entry(entry)


def party_error_of(entry: Entry) -> str | None:
    if isinstance(entry, (Sale, Bill, Payment)):
        return entry.party_error
    if isinstance(entry, Expense):
        return None
    unknown_entry(entry)


def split_parsed(
    items: Iterable[Entry | ParseError],
) -> tuple[list[Entry], list[ParseError]]:
    """Split parser output into (entries, parse_errors), keeping order."""
    entries: list[Entry] = []
    errors: list[ParseError] = []
    for item in items:
        if isinstance(item, ParseError):
            errors.append(item)
        else:
            entries.append(item)
    return entries, errors


def describe_entry(entry: Entry) -> str:
    """Short human-readable summary used in messages and logs."""
    amount = f"{entry.amount:.2f}"
    when = entry.date.isoformat()
    if isinstance(entry, Sale):
        if entry.payment_mode == "credit":
            return f"credit sale {amount} to {entry.party_name} on {when}"
        return f"{entry.payment_mode} sale {amount} on {when}"
    if isinstance(entry, Expense):
        who = f" for {entry.staff_name}" if entry.staff_name else ""
        return f"{entry.category} expense {amount}{who} on {when}"
    if isinstance(entry, Bill):
        number = f" #{entry.bill_number}" if entry.bill_number else ""
        return f"bill{number} {amount} from {entry.party_name} on {when}"
    if isinstance(entry, Payment):
        return f"payment {amount} to {entry.party_name} on {when}"
    unknown_entry(entry)


def line_label(entry: Entry, index: int) -> int:
    """Line number to show for an entry, falling back to its batch position."""
    return entry.line_number if entry.line_number is not None else index + 1
