"""
Unit tests for centralized logging system.

Tests cover:
- Logger initialization and configuration
- Structured JSON logging format
- Context variables (batch_id, source_file)
- Log file creation and rotation
- Cleanup of old log files
- Fallback to the default log directory
"""

import configparser
import json
import logging
import os
import shutil
import sys
import tempfile
import time
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import patch

import pytest

from logger import (
    AppLogger,
    StructuredJSONFormatter,
    get_logger,
    set_batch_context,
    set_source_context,
    clear_logging_context,
    configure_logging,
)


@pytest.fixture
def temp_dir_with_cleanup():
    """Create temp directory with proper cleanup of file handlers."""
    temp_dir = tempfile.mkdtemp()

    yield temp_dir

    # Close all handlers before cleanup
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    try:
        shutil.rmtree(temp_dir)
    except PermissionError:
        time.sleep(0.1)
        shutil.rmtree(temp_dir, ignore_errors=True)


def make_config(log_dir, level='INFO', **extra):
    config = configparser.ConfigParser()
    config.add_section('Logging')
    config.set('Logging', 'LogDir', str(log_dir))
    config.set('Logging', 'LogLevel', level)
    for key, value in extra.items():
        config.set('Logging', key, value)
    return config


def close_handlers():
    for handler in logging.getLogger().handlers[:]:
        handler.close()


def make_record(msg="Test message", level=logging.INFO, exc_info=None):
    return logging.LogRecord(
        name="TestLogger",
        level=level,
        pathname="test.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=exc_info,
        func="test_function"
    )


class TestStructuredJSONFormatter:
    """Test the JSON formatter for structured logging."""

    def test_basic_json_format(self):
        """Test that log records are formatted as valid JSON."""
        result = StructuredJSONFormatter().format(make_record())
        log_data = json.loads(result)

        for key in ("timestamp", "level", "tool", "module", "function", "line", "message"):
            assert key in log_data

        assert log_data["level"] == "INFO"
        assert log_data["tool"] == "packing_slips"
        assert log_data["module"] == "TestLogger"
        assert log_data["function"] == "test_function"
        assert log_data["line"] == 42
        assert log_data["message"] == "Test message"

    def test_json_format_with_context(self):
        """Test JSON formatting includes context variables."""
        set_batch_context("20251105-143045")
        set_source_context("orders.csv")

        log_data = json.loads(StructuredJSONFormatter().format(make_record("Test with context")))

        assert log_data["batch_id"] == "20251105-143045"
        assert log_data["source_file"] == "orders.csv"

        clear_logging_context()

    def test_json_format_with_exception(self):
        """Test JSON formatting includes exception information."""
        try:
            raise ValueError("Test exception")
        except ValueError:
            exc_info = sys.exc_info()

        record = make_record("Error occurred", logging.ERROR, exc_info)
        log_data = json.loads(StructuredJSONFormatter().format(record))

        assert "ValueError" in log_data["exc_info"]
        assert "Test exception" in log_data["exc_info"]

    def test_json_format_timestamp(self):
        """Test timestamp is in ISO 8601 format."""
        log_data = json.loads(StructuredJSONFormatter().format(make_record()))
        datetime.fromisoformat(log_data["timestamp"])  # Should not raise

    def test_non_ascii_message_kept(self):
        log_data = json.loads(StructuredJSONFormatter().format(make_record("Calle Mayor, Móstoles")))
        assert log_data["message"] == "Calle Mayor, Móstoles"


class TestContextVariables:
    """Test context variable management."""

    def test_set_batch_context(self):
        from logger import _batch_id
        set_batch_context("20251105-143045")
        assert _batch_id.get() == "20251105-143045"

        set_batch_context(None)
        assert _batch_id.get() is None

    def test_set_source_context(self):
        from logger import _source_file
        set_source_context("orders.csv")
        assert _source_file.get() == "orders.csv"

        set_source_context(None)
        assert _source_file.get() is None

    def test_clear_logging_context(self):
        """Test clearing all context variables."""
        set_batch_context("20251105-143045")
        set_source_context("orders.csv")

        clear_logging_context()

        from logger import _batch_id, _source_file
        assert _batch_id.get() is None
        assert _source_file.get() is None


class TestAppLogger:
    """Test AppLogger class and logging setup."""

    @pytest.fixture(autouse=True)
    def reset_logger(self):
        """Reset logger state before each test."""
        AppLogger._initialized = False
        AppLogger._instance = None
        AppLogger._config_path = Path('config.ini')
        AppLogger._handlers = []
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
        yield

    def test_get_logger_returns_named_loggers(self, temp_dir_with_cleanup):
        log_dir = Path(temp_dir_with_cleanup) / "logs"
        with patch('logger.AppLogger._load_config', return_value=make_config(log_dir)):
            logger1 = get_logger("Test1")
            logger2 = get_logger("Test2")
            close_handlers()

        assert isinstance(logger1, logging.Logger)
        assert logger1.name == "Test1"
        assert logger2.name == "Test2"

    def test_logger_creates_log_directory(self, temp_dir_with_cleanup):
        log_dir = Path(temp_dir_with_cleanup) / "nested" / "logs"
        with patch('logger.AppLogger._load_config', return_value=make_config(log_dir)):
            get_logger("Test")
            close_handlers()

        assert log_dir.is_dir()

    def test_logger_creates_daily_log_file(self, temp_dir_with_cleanup):
        log_dir = Path(temp_dir_with_cleanup) / "logs"
        with patch('logger.AppLogger._load_config', return_value=make_config(log_dir)):
            get_logger("Test").info("Test message")
            close_handlers()

        assert (log_dir / f"{datetime.now():%Y-%m-%d}.log").exists()

    def test_logger_writes_json_format(self, temp_dir_with_cleanup):
        log_dir = Path(temp_dir_with_cleanup) / "logs"
        with patch('logger.AppLogger._load_config', return_value=make_config(log_dir)):
            logger = get_logger("Test")
            set_batch_context("batch-1")
            logger.info("JSON test message")
            close_handlers()

        log_file = log_dir / f"{datetime.now():%Y-%m-%d}.log"
        lines = log_file.read_text(encoding='utf-8').splitlines()
        log_data = json.loads(lines[-1])
        assert log_data["message"] == "JSON test message"
        assert log_data["batch_id"] == "batch-1"
        assert log_data["tool"] == "packing_slips"

        clear_logging_context()

    def test_logger_falls_back_to_default_directory(self, temp_dir_with_cleanup):
        """A LogDir that cannot be created falls back to the default directory."""
        blocker = Path(temp_dir_with_cleanup) / "not_a_dir"
        blocker.write_text("file in the way")
        fallback_dir = Path(temp_dir_with_cleanup) / "fallback"

        with patch('logger.AppLogger._load_config', return_value=make_config(blocker / "logs")), \
                patch('logger.DEFAULT_LOG_DIR', fallback_dir), \
                patch('builtins.print') as mock_print:
            get_logger("Test").info("Fallback test")
            close_handlers()

        assert fallback_dir.is_dir()
        assert "Could not access" in str(mock_print.call_args[0][0])

    def test_console_handler_is_warning_or_above(self, temp_dir_with_cleanup):
        log_dir = Path(temp_dir_with_cleanup) / "logs"
        with patch('logger.AppLogger._load_config', return_value=make_config(log_dir, 'DEBUG')):
            get_logger("Test")

        root_logger = logging.getLogger()
        console = [h for h in root_logger.handlers if type(h) is logging.StreamHandler]
        assert console and console[0].level == logging.WARNING
        assert root_logger.level == logging.DEBUG
        close_handlers()

    def test_logger_rotation_settings(self, temp_dir_with_cleanup):
        log_dir = Path(temp_dir_with_cleanup) / "logs"
        config = make_config(log_dir, MaxLogSizeMB='5')
        with patch('logger.AppLogger._load_config', return_value=config):
            get_logger("Test")

        rotating_handlers = [h for h in logging.getLogger().handlers if hasattr(h, 'maxBytes')]
        assert len(rotating_handlers) == 1
        assert rotating_handlers[0].maxBytes == 5 * 1024 * 1024

    def test_configure_reads_given_config_file(self, temp_dir_with_cleanup):
        log_dir = Path(temp_dir_with_cleanup) / "custom_logs"
        config_path = Path(temp_dir_with_cleanup) / "settings.ini"
        config_path.write_text(f"[Logging]\nLogDir = {log_dir}\nLogLevel = DEBUG\n", encoding='utf-8')

        configure_logging(config_path)
        get_logger("Test").debug("Configured from file")
        close_handlers()

        log_file = log_dir / f"{datetime.now():%Y-%m-%d}.log"
        assert "Configured from file" in log_file.read_text(encoding='utf-8')
        assert logging.getLogger().level == logging.DEBUG

    def test_configure_replaces_earlier_handlers(self, temp_dir_with_cleanup):
        first_dir = Path(temp_dir_with_cleanup) / "first"
        with patch('logger.AppLogger._load_config', return_value=make_config(first_dir)):
            get_logger("Test")
        first_handlers = list(AppLogger._handlers)

        config_path = Path(temp_dir_with_cleanup) / "settings.ini"
        config_path.write_text(f"[Logging]\nLogDir = {Path(temp_dir_with_cleanup) / 'second'}\n",
                               encoding='utf-8')
        configure_logging(config_path)

        root_handlers = logging.getLogger().handlers
        assert not any(handler in root_handlers for handler in first_handlers)
        rotating_handlers = [h for h in root_handlers if hasattr(h, 'maxBytes')]
        assert len([h for h in root_handlers if hasattr(h, 'maxBytes')]) == 1
        close_handlers()
        assert rotating_handlers[0].backupCount == 30
        close_handlers()

    def test_cleanup_old_logs(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            log_dir = Path(temp_dir)

            old_date = datetime.now() - timedelta(days=35)
            old_log = log_dir / f"{old_date:%Y-%m-%d}.log"
            old_log.write_text("old log")
            os.utime(old_log, (old_date.timestamp(), old_date.timestamp()))

            recent_date = datetime.now() - timedelta(days=5)
            recent_log = log_dir / f"{recent_date:%Y-%m-%d}.log"
            recent_log.write_text("recent log")
            os.utime(recent_log, (recent_date.timestamp(), recent_date.timestamp()))

            AppLogger._cleanup_old_logs(log_dir, retention_days=30)

            assert not old_log.exists()
            assert recent_log.exists()

    def test_cleanup_respects_zero_retention(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            log_dir = Path(temp_dir)
            old_date = datetime.now() - timedelta(days=100)
            old_log = log_dir / f"{old_date:%Y-%m-%d}.log"
            old_log.write_text("old log")
            os.utime(old_log, (old_date.timestamp(), old_date.timestamp()))

            AppLogger._cleanup_old_logs(log_dir, retention_days=0)

            assert old_log.exists()


class TestLoggingIntegration:
    """Integration tests for complete logging workflow."""

    @pytest.fixture(autouse=True)
    def reset_logger(self):
        AppLogger._initialized = False
        AppLogger._instance = None
        AppLogger._config_path = Path('config.ini')
        AppLogger._handlers = []
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
        clear_logging_context()
        yield

    def test_complete_logging_workflow(self, temp_dir_with_cleanup):
        """Log lines carry the batch context only while it is set."""
        log_dir = Path(temp_dir_with_cleanup) / "logs"
        with patch('logger.AppLogger._load_config', return_value=make_config(log_dir, 'DEBUG')):
            logger = get_logger("order_aggregator")
            set_batch_context("20251105-143045")
            set_source_context("orders.csv")

            logger.debug("Parsed 3 rows")
            logger.info("Aggregated 3 rows into 2 packing slips")
            logger.warning("Row 2: Invalid quantity value: abc. Using default of 1.")

            clear_logging_context()
            logger.info("Import finished")
            close_handlers()

        log_file = log_dir / f"{datetime.now():%Y-%m-%d}.log"
        entries = [json.loads(line) for line in log_file.read_text(encoding='utf-8').splitlines()]
        by_message = {entry["message"]: entry for entry in entries}

        with_context = by_message["Aggregated 3 rows into 2 packing slips"]
        assert with_context["batch_id"] == "20251105-143045"
        assert with_context["source_file"] == "orders.csv"
        assert by_message["Parsed 3 rows"]["level"] == "DEBUG"

        without_context = by_message["Import finished"]
        assert without_context["batch_id"] is None
        assert without_context["source_file"] is None
