"""Process-wide logging setup for the scheduler."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from meeting_scheduler.utils.config import get_settings


_LOGGER_INITIALIZED = False
# Evaluation workers are named "evaluation_N"; the thread column tells them apart.
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Configure the root handler once.

    Search runs log from worker threads as well as the caller's thread, so a
    single stdout handler keeps their lines in one stream.
    """

    global _LOGGER_INITIALIZED
    if _LOGGER_INITIALIZED:
        return

    settings = get_settings()
    resolved_level = (level or settings.log_level).upper()

    logging.basicConfig(
        level=resolved_level,
        format=LOG_FORMAT,
        stream=sys.stdout,
    )
    _LOGGER_INITIALIZED = True


def get_logger(name: str) -> logging.Logger:
    """Return a module logger, configuring logging on first use."""
    configure_logging()
    return logging.getLogger(name)
