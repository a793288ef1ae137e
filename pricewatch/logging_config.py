"""Logging setup shared by every pricewatch module."""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler

PACKAGE_LOGGER = "pricewatch"
LOG_DIR = os.getenv("PRICEWATCH_LOG_DIR", "logs")
LOG_FILE = os.path.join(LOG_DIR, "pricewatch.log")
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DEFAULT_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def _package_logger() -> logging.Logger:
    package = logging.getLogger(PACKAGE_LOGGER)
    if package.handlers:
        return package

    os.makedirs(LOG_DIR, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = RotatingFileHandler(LOG_FILE, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    package.addHandler(file_handler)
    package.addHandler(console_handler)
    package.setLevel(DEFAULT_LEVEL)
    package.propagate = False
    return package


def get_logger(name: str) -> logging.Logger:
    """Return a logger in the ``pricewatch`` hierarchy.

    Only the package logger owns handlers, so all modules share one rotating
    file. Names outside the package are nested under it.
    """

    package = _package_logger()
    if name == PACKAGE_LOGGER or name.startswith(f"{PACKAGE_LOGGER}."):
        return logging.getLogger(name)
    return package.getChild(name)
