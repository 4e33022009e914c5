"""Logging setup helpers."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TextIO

LOGGER_NAME = "altsync"
LOG_FILENAME = f"{LOGGER_NAME}.log"
LOG_FORMAT = "%(asctime)s %(process)08x %(thread)08x %(levelname).1s %(module)s %(message)s"
MAX_BYTES = 2 * 1024 * 1024
BACKUP_COUNT = 5

_LEVEL_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}


def configure_logging(
    log_path: Path | None = None,
    level: str = "INFO",
    mirror_to_console: bool = False,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Configure the `altsync` logger and return it.

    Records always go to a rotating file; `mirror_to_console` also writes them to
    `stream` (stderr by default) so command output on stdout stays clean.
    """

    numeric_level = normalize_level(level)
    handlers: list[logging.Handler] = [_rotating_handler(resolve_log_path(log_path))]
    if mirror_to_console:
        handlers.append(logging.StreamHandler(stream))

    logger = logging.getLogger(LOGGER_NAME)
    _detach_handlers(logger)
    logger.propagate = False
    logger.setLevel(numeric_level)

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


def normalize_level(level: str) -> int:
    candidate = level.strip().upper()
    candidate = _LEVEL_ALIASES.get(candidate, candidate)
    try:
        return logging.getLevelNamesMapping()[candidate]
    except KeyError:
        raise ValueError(f"Unsupported log level: {level!r}") from None


def resolve_log_path(log_path: Path | None) -> Path:
    """Resolve the effective log file path.

    A directory (or a suffix-less path) receives the default `altsync.log` file name.
    """

    if log_path is None:
        return Path.cwd() / LOG_FILENAME
    candidate = log_path if log_path.is_absolute() else Path.cwd() / log_path
    if candidate.is_dir() or not candidate.suffix:
        return candidate / LOG_FILENAME
    return candidate


def _rotating_handler(file_path: Path) -> RotatingFileHandler:
    file_path.parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(
        file_path, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8"
    )


def _detach_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
