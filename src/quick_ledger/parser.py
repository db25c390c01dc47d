# Quick Ledger - Shorthand bulk entry & ledger engine for small shops
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Shorthand line parser.

Turns free text typed by the operator into typed entries. Each non-blank line
is classified independently, in priority order:

1) Sale
   ``<n>. <amount> [net] [(<party>)]``
       7. 21506 net        -> digital sale
       20. 9300 (Maa)      -> credit sale to "Maa"
       5. 2000             -> cash sale
       5. 2000 (13/12/24)  -> cash sale dated 2024-12-13

2) Bill (a date token, a name before it and an amount after it)
   ``<Party> (<DD/MM/YY>) [<bill no>] <amount> [GR <n>] [GST]``
       SAJ (date: 13/12/24) 33201
       SAJ (13/12/24) A123 33201 GR 500 GST

3) Expense / staff expense / party payment
   ``<Label> [Sal|Adv] <amount> [Party] [GST] [(<DD/MM/YY>)]``
       GP 94100 GST        -> goods_purchase expense with GST
       Ravi Sal 12000      -> salary for staff member "Ravi"
       Ravi Adv 2000       -> advance for staff member "Ravi"
       PBK 20000 Party     -> payment to party "PBK"

4) Anything else is reported as a ``ParseError`` keeping the line text.

Amounts accept commas as thousands separators and one decimal point. Dates
are day-first; two-digit years are read as 20YY.

The parser is pure: it never consults the ledger. The set of known party
names (used to read ``<Party> <amount>`` as a payment) is passed in by the
caller.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from datetime import date
from typing import Optional

from .entries import (
    Bill,
    Entry,
    Expense,
    ExpenseCategory,
    ParseError,
    Payment,
    Sale,
    new_entry_id,
    to_amount,
)
from .registry import party_name_error

_AMOUNT = r"\d+(?:,\d{2,3})*(?:\.\d+)?"
_AMOUNT_RE = re.compile(rf"^{_AMOUNT}$")

_DATE_BODY = r"(?:date\s*:\s*)?(\d{1,2})/(\d{1,2})/(\d{4}|\d{2})"
_DATE_TOKEN_RE = re.compile(rf"\(\s*{_DATE_BODY}\s*\)", re.IGNORECASE)
_DATE_BODY_RE = re.compile(rf"^\s*{_DATE_BODY}\s*$", re.IGNORECASE)

_SALE_RE = re.compile(
    rf"^(\d+)\.\s*({_AMOUNT})(\s+net)?(?:\s*\((.*)\))?\s*$",
    re.IGNORECASE,
)
_SEQUENCE_PREFIX_RE = re.compile(r"^\d+\.(?:\s|$)")

_BILL_NUMBER_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9/\-]*$")
_GLUED_GR_RE = re.compile(rf"^GR({_AMOUNT})$", re.IGNORECASE)

_STAFF_MARKERS = {"sal": "salary", "adv": "advance"}

CATEGORY_LABELS: dict[str, ExpenseCategory] = {
    "gp": "goods_purchase",
    "goods": "goods_purchase",
    "goods purchase": "goods_purchase",
    "purchase": "goods_purchase",
    "home": "home",
    "rent": "rent",
    "petty": "petty",
    "poly": "poly",
    "food": "food",
    "salary": "salary",
    "advance": "advance",
    "repair": "petty",
    "labour": "petty",
    "transport": "petty",
}
"""Expense label -> category. Unmapped labels fall back to ``petty``."""

IdFactory = Callable[[], str]


# ---------------------------------------------------------------------------
# Token helpers
# ---------------------------------------------------------------------------


def _is_amount(token: str) -> bool:
    return bool(_AMOUNT_RE.match(token))


def _has_letter_and_digit(token: str) -> bool:
    return any(c.isdigit() for c in token) and any(c.isalpha() for c in token)


def _date_from_parts(day: str, month: str, year: str) -> date:
    """
    Build a date from day-first parts.

    Raises
    ------
    ValueError
        If the parts do not form a valid calendar date.
    """
    y = int(year)
    if len(year) == 2:
        y += 2000
    try:
        return date(y, int(month), int(day))
    except ValueError as exc:
        raise ValueError(f"Invalid date {day}/{month}/{year}") from exc


def parse_date_text(text: str) -> date:
    """
    Read a standalone date: ISO ``YYYY-MM-DD`` or day-first ``DD/MM/YY[YY]``.

    Raises
    ------
    ValueError
        If the text is not a valid date in either form.
    """
    value = text.strip()
    match = _DATE_BODY_RE.match(value)
    if match is not None:
        return _date_from_parts(*match.groups())
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(f"Invalid date: {text!r}") from exc


def _extract_date(text: str) -> tuple[Optional[date], str]:
    """
    Remove the first date token from ``text``.

    Returns (date or None, text without the token).
    """
    match = _DATE_TOKEN_RE.search(text)
    if match is None:
        return None, text
    found = _date_from_parts(*match.groups())
    remaining = (text[: match.start()] + " " + text[match.end() :]).strip()
    return found, remaining


def _join(words: Iterable[str]) -> Optional[str]:
    text = " ".join(words).strip()
    return text or None


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def _parse_sale(
    match: re.Match,
    context_date: date,
    line_number: int,
    new_id: IdFactory,
) -> Sale:
    _, amount_text, net, paren = match.groups()
    sale_date = context_date
    party: Optional[str] = None
    has_paren = paren is not None

    if has_paren:
        date_match = _DATE_BODY_RE.match(paren)
        if date_match is not None:
            sale_date = _date_from_parts(*date_match.groups())
            has_paren = False
        else:
            party = paren.strip() or None

    amount = to_amount(amount_text)

    if net:
        # A digital sale never carries a party; keep the text as a note.
        return Sale(
            id=new_id(),
            date=sale_date,
            amount=amount,
            payment_mode="digital",
            description=party,
            line_number=line_number,
        )

    if has_paren:
        return Sale(
            id=new_id(),
            date=sale_date,
            amount=amount,
            payment_mode="credit",
            party_name=party,
            party_error=party_name_error(party),
            line_number=line_number,
        )

    return Sale(
        id=new_id(),
        date=sale_date,
        amount=amount,
        payment_mode="cash",
        line_number=line_number,
    )


def _parse_bill(
    line: str,
    match: re.Match,
    line_number: int,
    new_id: IdFactory,
) -> Optional[Bill]:
    """
    Try to read ``line`` as a bill. Returns None when the shape does not fit
    (no name before the date, or no amount after it).
    """
    head = line[: match.start()].strip()
    tail = line[match.end() :].strip()
    if not head or _is_amount(head.split()[0]):
        return None

    tokens = tail.split()
    gr_amount = None
    has_gst = False
    bill_number: Optional[str] = None
    numbers: list[str] = []
    leftovers: list[str] = []

    i = 0
    while i < len(tokens):
        token = tokens[i]
        upper = token.upper()
        if upper == "GR" and i + 1 < len(tokens) and _is_amount(tokens[i + 1]):
            gr_amount = to_amount(tokens[i + 1])
            i += 2
            continue
        glued_gr = _GLUED_GR_RE.match(token)
        if glued_gr is not None:
            gr_amount = to_amount(glued_gr.group(1))
        elif upper == "GST":
            has_gst = True
        elif _is_amount(token):
            numbers.append(token)
        elif (
            bill_number is None
            and _BILL_NUMBER_RE.match(token)
            and _has_letter_and_digit(token)
        ):
            bill_number = token
        else:
            leftovers.append(token)
        i += 1

    if not numbers:
        return None

    amount_token = max(numbers, key=to_amount)
    numbers.remove(amount_token)
    if bill_number is None and numbers:
        # Purely numeric bill numbers ("SAJ (1/2/24) 1045 33201").
        bill_number = numbers.pop(0)
    leftovers.extend(numbers)

    return Bill(
        id=new_id(),
        date=_date_from_parts(*match.groups()),
        amount=to_amount(amount_token),
        party_name=head,
        bill_number=bill_number,
        has_gst=has_gst,
        gr_amount=gr_amount,
        description=_join(leftovers),
        party_error=party_name_error(head),
        line_number=line_number,
    )


def _parse_expense_or_payment(
    line: str,
    context_date: date,
    line_number: int,
    known_parties: frozenset[str],
    new_id: IdFactory,
) -> Entry | ParseError:
    explicit_date, text = _extract_date(line)
    entry_date = explicit_date or context_date
    tokens = text.split()
    if not tokens:
        return ParseError(line_number, line, "Nothing to parse besides a date")

    # <Staff> Sal|Adv <amount> ...
    if len(tokens) >= 3 and tokens[1].lower() in _STAFF_MARKERS:
        if not _is_amount(tokens[2]):
            return ParseError(
                line_number, line, f"Missing amount after {tokens[1]!r}"
            )
        rest = tokens[3:]
        return Expense(
            id=new_id(),
            date=entry_date,
            amount=to_amount(tokens[2]),
            category=_STAFF_MARKERS[tokens[1].lower()],
            has_gst=any(t.upper() == "GST" for t in rest),
            staff_name=tokens[0],
            description=_join(t for t in rest if t.upper() != "GST"),
            line_number=line_number,
        )

    amount_index = next(
        (i for i, token in enumerate(tokens) if _is_amount(token)), None
    )
    if amount_index is None:
        return ParseError(line_number, line, "Unrecognized line: no amount found")
    if amount_index == 0:
        return ParseError(line_number, line, "Missing label before the amount")

    label_tokens = tokens[:amount_index]
    label = " ".join(label_tokens)
    amount = to_amount(tokens[amount_index])
    rest = tokens[amount_index + 1 :]
    has_gst = any(t.upper() == "GST" for t in rest)
    extras = [t for t in rest if t.upper() != "GST"]

    is_party_keyword = bool(extras) and extras[0].lower() == "party"
    key = label.lower()
    category = CATEGORY_LABELS.get(key)

    if is_party_keyword or (category is None and key in known_parties):
        if is_party_keyword:
            extras = extras[1:]
        return Payment(
            id=new_id(),
            date=entry_date,
            amount=amount,
            party_name=label,
            has_gst=has_gst,
            description=_join(extras),
            party_error=party_name_error(label),
            line_number=line_number,
        )

    if category is None:
        category = CATEGORY_LABELS.get(label_tokens[0].lower(), "petty")

    return Expense(
        id=new_id(),
        date=entry_date,
        amount=amount,
        category=category,
        has_gst=has_gst,
        description=_join(label_tokens + extras),
        line_number=line_number,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_line(
    line: str,
    context_date: date,
    *,
    line_number: int = 1,
    known_parties: Optional[Iterable[str]] = None,
    id_factory: IdFactory = new_entry_id,
) -> Entry | ParseError:
    """
    Parse a single shorthand line.

    Parameters
    ----------
    line:
        Raw line text.
    context_date:
        Date used when the line carries no explicit date token.
    line_number:
        1-based position of the line in its text, reported in errors.
    known_parties:
        Party names (any case) for which ``<Name> <amount>`` means a payment.
    id_factory:
        Producer of entry ids.

    Returns
    -------
    Entry | ParseError
        Never raises for malformed input.
    """
    known = frozenset(name.strip().lower() for name in (known_parties or ()))
    stripped = line.strip()
    if not stripped:
        return ParseError(line_number, line, "Empty line")

    try:
        sale_match = _SALE_RE.match(stripped)
        if sale_match is not None:
            return _parse_sale(sale_match, context_date, line_number, id_factory)
        if _SEQUENCE_PREFIX_RE.match(stripped):
            return ParseError(line_number, line, "Unrecognized sale line")

        date_match = _DATE_TOKEN_RE.search(stripped)
        if date_match is not None:
            bill = _parse_bill(stripped, date_match, line_number, id_factory)
            if bill is not None:
                return bill

        return _parse_expense_or_payment(
            stripped, context_date, line_number, known, id_factory
        )
    except ValueError as exc:
        return ParseError(line_number, line, str(exc))


def parse(
    text: str,
    context_date: date,
    known_parties: Optional[Iterable[str]] = None,
    *,
    id_factory: IdFactory = new_entry_id,
) -> list[Entry | ParseError]:
    """
    Parse multi-line shorthand text.

    Blank lines are skipped; line numbers refer to the physical lines of
    ``text`` (1-based). Parsing continues after a bad line.
    """
    known = frozenset(name.strip().lower() for name in (known_parties or ()))
    results: list[Entry | ParseError] = []
    for line_number, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        results.append(
            parse_line(
                line,
                context_date,
                line_number=line_number,
                known_parties=known,
                id_factory=id_factory,
            )
        )
    return results
