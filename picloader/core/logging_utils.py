# picloader/core/logging_utils.py
"""
Logging setup for applications embedding picloader.

Library modules only call `logging.getLogger(__name__)`; handlers are installed
here, on demand, by the CLI or the host application.
"""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

_ROOT_LOGGER_NAME = "picloader"
_FMT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"

_CONFIGURED = False


def debug_enabled() -> bool:
    return os.getenv("PICLOADER_DEBUG", "").strip().lower() in {"1", "true", "yes", "on"}


def configure_logging(
    *,
    level: int | str = logging.INFO,
    log_file: str | Path | None = None,
    force: bool = False,
) -> logging.Logger:
    """
    Attach a stderr handler (and optionally a rotating file handler) to the
    package logger. Safe to call repeatedly; handlers are only replaced on `force`.
    """
    global _CONFIGURED

    logger = logging.getLogger(_ROOT_LOGGER_NAME)
    lvl = logging.DEBUG if debug_enabled() else level
    logger.setLevel(lvl)

    if _CONFIGURED and not force:
        return logger

    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()

    formatter = logging.Formatter(fmt=_FMT, datefmt=_DATEFMT)

    stream = logging.StreamHandler(stream=sys.stderr)
    stream.setFormatter(formatter)
    logger.addHandler(stream)

    if log_file is not None:
        path = Path(log_file)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            handler = RotatingFileHandler(path, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
        except OSError:
            # console logging keeps working without the file
            logger.warning("could not open log file %s", path)

    logger.propagate = False
    _CONFIGURED = True
    return logger


__all__ = ["configure_logging", "debug_enabled"]
