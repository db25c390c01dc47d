# Quick Ledger - Shorthand bulk entry & ledger engine for small shops
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Batch validation of parsed entries.

``validate`` is a pure function: it inspects a batch and returns every
business-rule violation as a human-readable message carrying the line
number, so that all problems can be shown at once before submission. It
never consults the ledger (duplicates are checked elsewhere) and never
mutates anything.

Rules
-----
- credit sales, bills and payments need a non-empty party name;
- salary and advance expenses need a staff name;
- a party name flagged by the parser (forbidden characters) blocks the
  entry unless its id is listed in ``party_overrides``;
- entry ids must be unique within the batch.
"""

from __future__ import annotations

from collections.abc import Collection, Sequence

from .entries import (
    STAFF_CATEGORIES,
    Bill,
    Entry,
    Expense,
    Payment,
    Sale,
    line_label,
    party_error_of,
    unknown_entry,
)


def _missing(value: str | None) -> bool:
    return value is None or not value.strip()


def validate_entry(
    entry: Entry,
    index: int = 0,
    party_overrides: Collection[str] = (),
) -> list[str]:
    """Return the violations of a single entry (``index`` is its batch position)."""
    line = line_label(entry, index)
    errors: list[str] = []

    if isinstance(entry, Sale):
        if entry.payment_mode == "credit" and _missing(entry.party_name):
            errors.append(f"Credit sale at line {line} requires a party name")
    elif isinstance(entry, Bill):
        if _missing(entry.party_name):
            errors.append(f"Bill at line {line} requires a party name")
    elif isinstance(entry, Payment):
        if _missing(entry.party_name):
            errors.append(f"Payment at line {line} requires a party name")
    elif isinstance(entry, Expense):
        if entry.category in STAFF_CATEGORIES and _missing(entry.staff_name):
            errors.append(
                f"{entry.category.capitalize()} expense at line {line} "
                "requires a staff name"
            )
    else:
        unknown_entry(entry)

    party_error = party_error_of(entry)
    if party_error and entry.id not in party_overrides:
        errors.append(f"Line {line}: {party_error}")

    return errors


def validate(
    entries: Sequence[Entry],
    party_overrides: Collection[str] = (),
) -> list[str]:
    """
    Validate a batch and return all error messages (empty list = valid).

    Parameters
    ----------
    entries:
        Parsed entries in batch order.
    party_overrides:
        Ids of entries whose party-name character warning the operator has
        explicitly accepted.
    """
    errors: list[str] = []
    seen_ids: set[str] = set()

    for index, entry in enumerate(entries):
        errors.extend(validate_entry(entry, index, party_overrides))
        if entry.id in seen_ids:
            errors.append(
                f"Line {line_label(entry, index)}: duplicate entry id {entry.id}"
            )
        seen_ids.add(entry.id)

    return errors
