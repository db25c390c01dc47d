# Quick Ledger - Shorthand bulk entry & ledger engine for small shops
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Typed errors for Quick Ledger.

Every error carries a machine-readable ``code`` so that user-facing layers
(CLI, future UI) can react by type instead of parsing messages.

Hierarchy
---------
    LedgerError
    +-- ValidationError      structurally invalid batch (blocks submission)
    +-- DuplicateError
    |   +-- DuplicateBlocked bill duplicate, no override path
    |   +-- DuplicatePending payment duplicate, needs an explicit override
    +-- UnknownStaffError    salary/advance for a staff member not registered
    +-- StorageError         unexpected sqlite failure during apply/delete
    +-- UndoError            manifest cannot be undone (fails closed)

Parse failures are not exceptions: they are reported per line as
``quick_ledger.entries.ParseError`` values.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Sequence

if TYPE_CHECKING:
    from .db import LedgerRow
    from .entries import Entry


class LedgerError(Exception):
    """Base class for all Quick Ledger errors."""

    code: str = "LEDGER_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class ValidationError(LedgerError):
    """One or more entries of a batch break a business rule."""

    code = "VALIDATION_ERROR"

    def __init__(self, errors: Sequence[str]):
        self.errors = list(errors)
        super().__init__(
            f"{len(self.errors)} validation error(s): " + "; ".join(self.errors)
        )


class DuplicateError(LedgerError):
    """An entry matches a row already present in the ledger (or in its batch)."""

    code = "DUPLICATE"

    def __init__(
        self,
        entry: Entry,
        existing: LedgerRow | None,
        message: str,
    ):
        self.entry = entry
        self.existing = existing
        super().__init__(message)


class DuplicateBlocked(DuplicateError):
    """Bill duplicate. The entry must be removed or corrected."""

    code = "DUPLICATE_BLOCKED"


class DuplicatePending(DuplicateError):
    """Payment duplicate waiting for an explicit per-entry override."""

    code = "DUPLICATE_PENDING"


class UnknownStaffError(LedgerError):
    """A salary/advance expense names a staff member missing from the registry."""

    code = "UNKNOWN_STAFF"

    def __init__(self, entry: Entry, staff_name: str):
        self.entry = entry
        self.staff_name = staff_name
        super().__init__(f"Unknown staff member: {staff_name!r}")


class StorageError(LedgerError):
    """Unexpected failure of the ledger store. The operation was rolled back."""

    code = "STORAGE_ERROR"

    def __init__(self, message: str, *, entry_id: str | None = None):
        self.entry_id = entry_id
        super().__init__(message)


class UndoError(LedgerError):
    """A batch manifest cannot be undone. The ledger was left untouched."""

    code = "UNDO_ERROR"

    def __init__(
        self,
        message: str,
        *,
        batch_id: int | None = None,
        missing_row_ids: Sequence[str] = (),
    ):
        self.batch_id = batch_id
        self.missing_row_ids = list(missing_row_ids)
        super().__init__(message)
