"""Tests for logger setup."""

import logging

from prism.config import Config
from prism.utils.logger import setup_logger


def _close(logger):
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def test_console_and_file_handlers(tmp_path, monkeypatch):
    monkeypatch.setattr(Config, "LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setattr(Config, "LOG_TO_FILE", True)
    monkeypatch.setattr(Config, "LOG_LEVEL", None)

    logger = setup_logger("prism.tests.file_logger")
    try:
        assert len(logger.handlers) == 2
        assert list((tmp_path / "logs").glob("prism_engine_*.log"))
        assert setup_logger("prism.tests.file_logger") is logger
        assert len(logger.handlers) == 2
    finally:
        _close(logger)


def test_file_handler_can_be_disabled(monkeypatch):
    monkeypatch.setattr(Config, "LOG_TO_FILE", False)
    monkeypatch.setattr(Config, "LOG_LEVEL", "warning")

    logger = setup_logger("prism.tests.console_logger")
    try:
        assert len(logger.handlers) == 1
        assert logger.handlers[0].level == logging.WARNING
    finally:
        _close(logger)
