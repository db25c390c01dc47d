# Quick Ledger - Shorthand bulk entry & ledger engine for small shops
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Period helpers for Quick Ledger.

This module defines a Period value object and helpers to derive the date
range of the "current view" (today, month to date, last month, year to date
or a custom range) from CLI arguments. The range selects which ledger rows
are listed or scanned for duplicate clusters.
"""

from calendar import monthrange
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from .db import RowsFilter


@dataclass
class Period:
    """Represents a date range with a human-readable label."""

    start: date
    end: date
    label: str

    def to_filter(self, row_type: Optional[str] = None) -> RowsFilter:
        """Build the ledger filter selecting the rows of this period."""
        return RowsFilter(start=self.start, end=self.end, type=row_type)


def _today() -> date:
    """Return today's date as a date object (isolated for easier testing)."""
    return datetime.today().date()


def period_today() -> Period:
    today = _today()
    return Period(start=today, end=today, label="Today")


def period_mtd() -> Period:
    """Month to date."""
    today = _today()
    return Period(start=today.replace(day=1), end=today, label="Month to date")


def period_last_month() -> Period:
    """Full previous calendar month."""
    today = _today()

    if today.month == 1:
        year = today.year - 1
        month = 12
    else:
        year = today.year
        month = today.month - 1

    start = date(year, month, 1)
    end = date(year, month, monthrange(year, month)[1])
    return Period(start=start, end=end, label="Last month")


def period_ytd() -> Period:
    """Calendar year to date."""
    today = _today()
    return Period(start=date(today.year, 1, 1), end=today, label="Year to date")


def determine_period_from_args(args) -> Period:
    """
    Determine the period to use based on CLI args.

    Priority (highest to lowest):

        1. args.period (today, mtd, last-month, ytd)
        2. args.from_date / args.to_date (custom period)
        3. month to date by default
    """
    # 1) Predefined period wins over everything else
    if getattr(args, "period", None):
        p = args.period
        if p == "today":
            return period_today()
        if p == "mtd":
            return period_mtd()
        if p == "last-month":
            return period_last_month()
        if p == "ytd":
            return period_ytd()
        raise ValueError(f"Unknown period: {p!r}")

    # 2) Custom from/to dates
    from_raw: Optional[str] = getattr(args, "from_date", None)
    to_raw: Optional[str] = getattr(args, "to_date", None)

    if from_raw or to_raw:
        today = _today()
        start = date.fromisoformat(from_raw) if from_raw else today.replace(day=1)
        end = date.fromisoformat(to_raw) if to_raw else today

        if end < start:
            raise ValueError("Custom period end date cannot be before start date.")

        return Period(start=start, end=end, label=f"Custom period ({start} → {end})")

    # 3) Default
    return period_mtd()
