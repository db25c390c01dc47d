# Quick Ledger - Shorthand bulk entry & ledger engine for small shops
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Configuration helpers for Quick Ledger.

This module is responsible for:
- loading the application configuration from a TOML file,
- exposing typed, immutable dataclasses used by the rest of the application.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover - fallback for older Python
    import tomli as tomllib  # type: ignore[import]

from .db import DatabaseConfig
from .entries import to_amount

DEFAULT_CONFIG_FILE = "quick_ledger_config.toml"
DEFAULT_DB_PATH = "data/db/quick_ledger.sqlite"
DEFAULT_SCAN_LIMIT = 5000
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class AppConfig:
    """
    Application-wide configuration for Quick Ledger.

    This aggregates:
    - the database configuration (where the ledger is stored),
    - the credit limit given to parties created on first reference,
    - the maximum number of rows loaded for one duplicate scan,
    - the logging level.
    """

    database: DatabaseConfig
    default_credit_limit: Decimal = Decimal("0")
    duplicate_scan_limit: int = DEFAULT_SCAN_LIMIT
    log_level: str = "WARNING"

    @classmethod
    def default(cls, db_path: Optional[Path] = None) -> "AppConfig":
        """Configuration used when no TOML file is given."""
        path = Path(db_path) if db_path is not None else Path(DEFAULT_DB_PATH)
        return cls(database=DatabaseConfig(engine="sqlite", path=path.resolve()))


def _load_toml(path: Path) -> dict[str, Any]:
    """
    Load a TOML file and return its content as a dictionary.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the TOML content cannot be parsed or is not a table.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Failed to parse TOML config file: {path}") from exc

    if not isinstance(data, dict):
        raise ValueError(f"Invalid TOML root type in {path}, expected a table.")

    return data


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = raw.get(name) or {}
    if not isinstance(section, Mapping):
        raise ValueError(f"Config section [{name}] must be a table.")
    return section


def load_app_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Load the Quick Ledger configuration from a TOML file.

    Expected sections in the TOML file
    ----------------------------------
    [database]
        engine : only "sqlite" is supported.
        path   : SQLite file, resolved relative to the TOML file.

    [parties]
        default_credit_limit : credit limit of parties created lazily.

    [duplicates]
        scan_limit : maximum rows loaded for one duplicate scan.

    [logging]
        level : DEBUG, INFO, WARNING, ERROR or CRITICAL.

    Every section is optional; missing values take their defaults.

    Parameters
    ----------
    config_path:
        Path to the TOML file. Defaults to ``quick_ledger_config.toml`` in
        the current working directory.

    Returns
    -------
    AppConfig
        Parsed and validated application configuration.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If the file cannot be parsed or holds invalid values.
    """
    if config_path is None:
        config_file = Path(DEFAULT_CONFIG_FILE).resolve()
    else:
        config_file = Path(config_path).resolve()

    raw = _load_toml(config_file)
    base_dir = config_file.parent

    # 1) Database section
    database_section = _section(raw, "database")
    db_engine = str(database_section.get("engine") or "sqlite")
    if db_engine.lower() != "sqlite":
        raise ValueError(
            f"Unsupported database engine: {db_engine!r}. Only 'sqlite' is supported."
        )
    db_path_raw = database_section.get("path") or DEFAULT_DB_PATH
    db_path = (base_dir / str(db_path_raw)).resolve()

    # 2) Parties section
    parties_section = _section(raw, "parties")
    try:
        default_credit_limit = to_amount(
            parties_section.get("default_credit_limit", 0)
        )
    except ValueError as exc:
        raise ValueError(
            "Invalid value for 'parties.default_credit_limit'. "
            "Expected a non-negative number."
        ) from exc

    # 3) Duplicates section
    duplicates_section = _section(raw, "duplicates")
    raw_limit = duplicates_section.get("scan_limit", DEFAULT_SCAN_LIMIT)
    try:
        scan_limit = int(raw_limit)
    except (TypeError, ValueError) as exc:
        raise ValueError(
            "Invalid value for 'duplicates.scan_limit'. Expected an integer."
        ) from exc
    if scan_limit <= 0:
        raise ValueError("'duplicates.scan_limit' must be a positive integer.")

    # 4) Logging section
    logging_section = _section(raw, "logging")
    log_level = str(logging_section.get("level", "WARNING")).upper()
    if log_level not in LOG_LEVELS:
        raise ValueError(
            f"Invalid value for 'logging.level': {log_level!r}. "
            f"Expected one of {', '.join(LOG_LEVELS)}."
        )

    return AppConfig(
        database=DatabaseConfig(engine=db_engine, path=db_path),
        default_credit_limit=default_credit_limit,
        duplicate_scan_limit=scan_limit,
        log_level=log_level,
    )
