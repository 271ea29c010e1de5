"""Logging bootstrap shared by every LexDoc module."""

from __future__ import annotations

import logging
import os
import sys

_ROOT_LOGGER_NAME = "lexdoc"
_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_configured = False


def configure_logging(level: str | int | None = None) -> logging.Logger:
    """Attach a stream handler to the ``lexdoc`` logger and return it.

    Safe to call repeatedly; only the first call installs the handler. The
    level defaults to ``LOG_LEVEL`` from the environment, then ``INFO``.
    """

    global _configured
    logger = logging.getLogger(_ROOT_LOGGER_NAME)
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    if isinstance(level, str):
        level = logging.getLevelName(level.strip().upper())
        if not isinstance(level, int):
            level = logging.INFO

    if not _configured:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(handler)
        _configured = True
    logger.setLevel(level)
    return logger


__all__ = ["configure_logging"]
