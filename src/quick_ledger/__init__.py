# Quick Ledger - Shorthand bulk entry & ledger engine for small shops
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Quick Ledger
------------

A Python ledger engine for small shops that record their day in terse
shorthand lines ("7. 21506 net", "SAJ (13/12/24) 33201", "GP 94100 GST").

Main capabilities:
- a shorthand grammar parser producing typed entries (sale, expense, bill,
  payment),
- batch-wide validation with line-numbered messages,
- duplicate detection before commit (bills blocked, payments overridable)
  and retroactive date+amount clustering of committed rows,
- atomic batch application to a SQLite ledger, maintaining party balances
  and staff advances, with a one-shot undo driven by a batch manifest,
- CSV import feeding the same pipeline,
- a command-line interface.


Version: 0.2.0

Usage:
    quick-ledger --help
"""

__all__ = ["parser", "validator", "duplicates", "ledger", "service", "io"]

__version__ = "0.2.0"
