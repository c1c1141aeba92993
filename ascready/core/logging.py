# FILE: ascready/core/logging.py
from __future__ import annotations

import logging
import sys

from ascready.core.config import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str | None = None) -> logging.Logger:
    """
    Attach a single stdout handler to the package logger.
    Safe to call more than once (app factory + tests).
    """
    logger = logging.getLogger("ascready")
    logger.setLevel((level or settings.LOG_LEVEL).upper())

    if not any(getattr(h, "_ascready", False) for h in logger.handlers):
        ch = logging.StreamHandler(sys.stdout)
        ch.setFormatter(logging.Formatter(LOG_FORMAT))
        ch._ascready = True  # type: ignore[attr-defined]
        logger.addHandler(ch)

    return logger
