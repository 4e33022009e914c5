"""Tests for logging configuration."""

from __future__ import annotations

import io
import logging
from pathlib import Path

import pytest

from altsync.logging import configure_logging


def _cleanup(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def test_configure_logging_defaults(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    logger = configure_logging()

    try:
        handler = next(h for h in logger.handlers if hasattr(h, "baseFilename"))
        log_path = Path(handler.baseFilename)
        assert log_path == tmp_path / "altsync.log"
        logger.info("test message")
        handler.flush()
        assert "test message" in log_path.read_text(encoding="utf-8")
        assert logger.level == logging.INFO
    finally:
        _cleanup(logger)


@pytest.mark.parametrize(
    "provided,expected",
    [
        (Path("custom.log"), "custom.log"),
        (Path("logs"), "logs/altsync.log"),
    ],
)
def test_configure_logging_with_override(tmp_path, monkeypatch, provided, expected):
    monkeypatch.chdir(tmp_path)
    logger = configure_logging(log_path=provided, level="debug")

    try:
        handler = next(h for h in logger.handlers if hasattr(h, "baseFilename"))
        assert Path(handler.baseFilename) == tmp_path / expected
        assert logger.level == logging.DEBUG
    finally:
        _cleanup(logger)


def test_console_mirror_and_warn_alias(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    stream = io.StringIO()
    logger = configure_logging(level="warn", mirror_to_console=True, stream=stream)

    try:
        logger.info("hidden")
        logger.warning("shown")
        assert logger.level == logging.WARNING
        assert "shown" in stream.getvalue()
        assert "hidden" not in stream.getvalue()
    finally:
        _cleanup(logger)


def test_unknown_level_is_rejected(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(ValueError):
        configure_logging(level="chatty")
