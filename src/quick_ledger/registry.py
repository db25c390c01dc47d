# Quick Ledger - Shorthand bulk entry & ledger engine for small shops
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Party and staff name resolution.

Two responsibilities live here:

- ``party_name_error`` checks the allowed character set of a party name. It
  is pure and is used by the parser to attach a non-fatal ``party_error`` to
  entries.
- ``SqliteRegistry`` resolves names to registry identifiers inside an open
  ledger transaction. Parties are created lazily (zero balance) on first
  reference; staff members are only looked up, never created.

The apply engine receives a registry *factory* so that tests (or another
store) can inject their own resolver.
"""

from __future__ import annotations

import re
import sqlite3
from decimal import Decimal
from typing import Callable, Optional, Protocol

from .db import (
    DatabaseConfig,
    Party,
    Staff,
    create_party,
    create_staff,
    fetch_party_by_name,
    fetch_staff_by_name,
    transaction,
)

# Letters and digits (any script), space, and & . ' ( ) -
_PARTY_NAME_RE = re.compile(r"^(?:[^\W_]|[ &.'()\-])+$")


def party_name_error(name: Optional[str]) -> Optional[str]:
    """
    Return a message if ``name`` contains characters outside the allowed set.

    An empty or missing name is not reported here: the validator reports
    missing parties separately.
    """
    if not name or not name.strip():
        return None
    if _PARTY_NAME_RE.match(name.strip()):
        return None
    return (
        f"Party name {name.strip()!r} may only contain letters, digits, "
        "spaces and & . ' ( ) -"
    )


class Registry(Protocol):
    """Name resolver used by the apply engine inside its transaction."""

    def find_party(self, name: str) -> Optional[Party]: ...

    def get_or_create_party(self, name: str) -> tuple[Party, bool]: ...

    def find_staff(self, name: str) -> Optional[Staff]: ...


RegistryFactory = Callable[[sqlite3.Connection], Registry]


class SqliteRegistry:
    """
    Registry backed by the ledger database connection.

    All lookups are case-insensitive and ignore surrounding spaces. The
    registry never commits: it shares the caller's transaction.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        default_credit_limit: Decimal = Decimal("0"),
    ):
        self.conn = conn
        self.default_credit_limit = default_credit_limit

    def find_party(self, name: str) -> Optional[Party]:
        return fetch_party_by_name(self.conn, name)

    def get_or_create_party(self, name: str) -> tuple[Party, bool]:
        """Return (party, created)."""
        party = fetch_party_by_name(self.conn, name)
        if party is not None:
            return party, False
        return (
            create_party(self.conn, name, credit_limit=self.default_credit_limit),
            True,
        )

    def find_staff(self, name: str) -> Optional[Staff]:
        return fetch_staff_by_name(self.conn, name)


def sqlite_registry_factory(
    default_credit_limit: Decimal = Decimal("0"),
) -> RegistryFactory:
    """Build a factory producing ``SqliteRegistry`` objects with a credit limit."""

    def factory(conn: sqlite3.Connection) -> Registry:
        return SqliteRegistry(conn, default_credit_limit=default_credit_limit)

    return factory


# ---------------------------------------------------------------------------
# Registry maintenance (outside of batch application)
# ---------------------------------------------------------------------------


def add_staff(cfg: DatabaseConfig, name: str) -> Staff:
    """
    Register a staff member.

    Raises
    ------
    ValueError
        If the name is empty or already registered (case-insensitively).
    """
    clean = name.strip()
    if not clean:
        raise ValueError("Staff name cannot be empty.")

    with transaction(cfg) as conn:
        if fetch_staff_by_name(conn, clean) is not None:
            raise ValueError(f"Staff member {clean!r} already exists.")
        staff = create_staff(conn, clean)
        conn.commit()
    return staff


def add_party(
    cfg: DatabaseConfig,
    name: str,
    *,
    credit_limit: Decimal = Decimal("0"),
) -> Party:
    """
    Register a party ahead of its first transaction.

    Raises
    ------
    ValueError
        If the name is empty, uses forbidden characters or already exists.
    """
    clean = name.strip()
    if not clean:
        raise ValueError("Party name cannot be empty.")
    error = party_name_error(clean)
    if error is not None:
        raise ValueError(error)

    with transaction(cfg) as conn:
        if fetch_party_by_name(conn, clean) is not None:
            raise ValueError(f"Party {clean!r} already exists.")
        party = create_party(conn, clean, credit_limit=credit_limit)
        conn.commit()
    return party
