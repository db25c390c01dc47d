# Quick Ledger - Shorthand bulk entry & ledger engine for small shops
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Logging setup for Quick Ledger.

Modules log through ``logging.getLogger(__name__)``; nothing is printed
until ``configure_logging`` attaches a handler to the package logger.
"""

import logging
from typing import Union

LOGGER_NAME = "quick_ledger"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: Union[int, str] = logging.WARNING) -> logging.Logger:
    """
    Configure the package logger with a single stream handler.

    Calling it again only updates the level. The package logger does not
    propagate to the root logger.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {level!r}")

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    if not any(getattr(h, "_quick_ledger", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._quick_ledger = True  # type: ignore[attr-defined]
        logger.addHandler(handler)

    return logger
