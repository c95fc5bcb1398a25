"""Logging setup for command-line use.

Library modules log through ``logging.getLogger(__name__)`` and never install
handlers themselves; entrypoints call :func:`configure_logging`.
"""

from __future__ import annotations

import logging
import sys

LOGGER_NAME = "aba_scheduler"


def configure_logging(level: int | str = logging.INFO) -> logging.Logger:
    """Attach a stdout handler to the package logger (idempotent)."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    # Prevent duplicate handlers if called multiple times
    if not logger.handlers:
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
        logger.addHandler(stream_handler)

    return logger
