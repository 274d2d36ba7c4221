"""Logging setup for the build.

Every module logs through a child of the ``tessera`` logger (``tessera.tasks``,
``tessera.watch``, ...). The CLI calls ``configure_logging`` once per command:
task start/finish lines at INFO, glob matches and external commands at DEBUG
with ``--verbose``.
"""

from __future__ import annotations

import logging
from pathlib import Path

_ROOT = "tessera"
_CONSOLE_FORMAT = "[tessera] %(levelname)s %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return ``tessera.<name>``, or the package logger when ``name`` is empty."""
    return logging.getLogger(f"{_ROOT}.{name}" if name else _ROOT)


def _handler(handler: logging.Handler, level: int, fmt: str) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Send build logs to stderr and, optionally, to ``log_file``.

    Args:
        verbose: Lower the threshold from INFO to DEBUG.
        log_file: Extra sink with timestamps and logger names.

    Returns:
        The package logger.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_ROOT)
    logger.setLevel(level)
    logger.propagate = False

    # Watch sessions and tests configure more than once.
    for existing in list(logger.handlers):
        logger.removeHandler(existing)

    logger.addHandler(_handler(logging.StreamHandler(), level, _CONSOLE_FORMAT))
    if log_file is not None:
        logger.addHandler(
            _handler(logging.FileHandler(log_file, encoding="utf-8"), level, _FILE_FORMAT)
        )
    return logger


__all__ = ["configure_logging", "get_logger"]
