"""Logging setup shared by every dodone module."""

from __future__ import annotations

import logging
import sys

from dodone.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

_ROOT = "dodone"


def setup_logging(level: str | None = None) -> None:
    """Attach a single stream handler to the package logger.

    Safe to call more than once; the handler is only added the first time.
    """
    root = logging.getLogger(_ROOT)
    root.setLevel((level or settings.LOG_LEVEL).upper())
    if not any(getattr(h, "_dodone", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._dodone = True  # type: ignore[attr-defined]
        root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{_ROOT}.{name}")
