"""Tests for tick driver logging setup."""

import logging

import pytest
from pydantic import ValidationError

from ledgerflow.services.config import Settings
from ledgerflow.services.logging import setup_logging


@pytest.fixture
def root_logger():
    """Restore root logger handlers and level after the test."""
    root = logging.getLogger()
    saved_handlers = root.handlers.copy()
    saved_level = root.level
    yield root
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)
    for handler in saved_handlers:
        root.addHandler(handler)
    root.setLevel(saved_level)


def make_settings(log_file, **overrides):
    return Settings(_env_file=None, log_file=str(log_file), **overrides)


class TestLogLevelSetting:
    def test_name_is_normalized(self):
        assert Settings(_env_file=None, log_level=" debug ").log_level == "DEBUG"

    def test_unknown_name_rejected(self):
        with pytest.raises(ValidationError, match="unknown log level"):
            Settings(_env_file=None, log_level="chatty")

    def test_read_from_environment(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "error")

        assert Settings(_env_file=None).log_level == "ERROR"


class TestSetupLogging:
    def test_creates_missing_log_directory(self, root_logger, tmp_path):
        log_file = tmp_path / "nested" / "tick.log"

        setup_logging(make_settings(log_file))

        assert log_file.parent.is_dir()

    def test_returns_package_logger(self, root_logger, tmp_path):
        logger = setup_logging(make_settings(tmp_path / "tick.log"))

        assert logger.name == "ledgerflow"

    def test_installs_stdout_and_file_handlers_once(self, root_logger, tmp_path):
        root_logger.addHandler(logging.NullHandler())
        settings = make_settings(tmp_path / "tick.log")

        setup_logging(settings)
        setup_logging(settings)

        kinds = sorted(type(h).__name__ for h in root_logger.handlers)
        assert kinds == ["FileHandler", "StreamHandler"]

    def test_level_comes_from_settings_not_environment(self, root_logger, tmp_path, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")

        setup_logging(make_settings(tmp_path / "tick.log", log_level="WARNING"))

        assert root_logger.level == logging.WARNING
        assert all(h.level == logging.WARNING for h in root_logger.handlers)

    def test_sql_logger_quiet_unless_echo(self, root_logger, tmp_path):
        sql_logger = logging.getLogger("sqlalchemy.engine")
        saved = sql_logger.level
        try:
            setup_logging(make_settings(tmp_path / "tick.log", log_level="DEBUG"))
            assert sql_logger.level == logging.WARNING
        finally:
            sql_logger.setLevel(saved)

    def test_file_lines_carry_timestamp_name_and_level(self, root_logger, tmp_path):
        log_file = tmp_path / "tick.log"
        setup_logging(make_settings(log_file, log_level="INFO"))

        logging.getLogger("ledgerflow.services.scheduler").warning("store down")
        for handler in root_logger.handlers:
            handler.flush()

        contents = log_file.read_text()
        assert "ledgerflow.services.scheduler - WARNING - store down" in contents
        assert contents.startswith("[")
