"""
Centralized logging configuration for the Packing Slip Generator.

This module provides the logging system shared by every pipeline module:
- Structured JSON logging for easy parsing and analysis
- Automatic file rotation (prevents log files from growing indefinitely)
- Configurable log levels (DEBUG, INFO, WARNING, ERROR, CRITICAL)
- Automatic cleanup of old logs (retention policy)
- Both file and console output
- Context-aware logging (batch_id, source_file)

Order exports from marketplaces are messy, and most problems only show up as
"why did this row end up on the wrong slip?". The per-row decisions of the
aggregation pipeline (which column supplied the username, which rows were
skipped) are logged so an import can be audited after the fact.

Log file location: ~/.packing_slips/logs/ (or [Logging] LogDir in config.ini)
Log file format: YYYY-MM-DD.log

Example log entry (JSON format):
    {"timestamp": "2025-11-05T14:30:45.123", "level": "INFO", "tool": "packing_slips",
     "batch_id": "20251105-143045", "source_file": "orders.csv",
     "module": "order_aggregator", "function": "aggregate_orders", "line": 212,
     "message": "Aggregated 42 rows into 17 packing slips"}
"""

# Standard library imports
import logging  # Core logging framework
import json  # JSON formatting for structured logging
import os  # Home directory resolution
from datetime import datetime, timedelta  # Log rotation and cleanup
from pathlib import Path  # Modern path handling
from logging.handlers import RotatingFileHandler  # Automatic log rotation
from typing import Optional, Dict, Any, List, Union  # Type hints
import configparser  # Reading config.ini settings
from contextvars import ContextVar  # Context storage


# Context variables for structured logging
_batch_id: ContextVar[Optional[str]] = ContextVar('batch_id', default=None)
_source_file: ContextVar[Optional[str]] = ContextVar('source_file', default=None)

DEFAULT_LOG_DIR = Path(os.path.expanduser("~")) / ".packing_slips" / "logs"


class StructuredJSONFormatter(logging.Formatter):
    """
    Custom JSON formatter for structured logging.

    Outputs log records as JSON with fields:
    - timestamp: ISO 8601 format with milliseconds
    - level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - tool: Always "packing_slips"
    - batch_id: Current import batch (if set)
    - source_file: File being imported (if set)
    - module: Module name
    - function: Function name
    - line: Line number
    - message: Log message
    - exc_info: Exception information (if present)
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as JSON string.

        Args:
            record: LogRecord to format

        Returns:
            JSON string with structured log data
        """
        log_data: Dict[str, Any] = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'tool': 'packing_slips',
            'batch_id': _batch_id.get(),
            'source_file': _source_file.get(),
            'module': record.name,
            'function': record.funcName,
            'line': record.lineno,
            'message': record.getMessage(),
        }

        if record.exc_info:
            log_data['exc_info'] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_data'):
            log_data['extra'] = record.extra_data

        return json.dumps(log_data, ensure_ascii=False)


class AppLogger:
    """
    Centralized application logger with file rotation and cleanup.

    Logging is configured once, on the first ``get_logger`` call, no matter how
    many modules import the logger.

    The logging system is configured from config.ini with these settings:
    - LogLevel: DEBUG, INFO, WARNING, ERROR, CRITICAL
    - MaxLogSizeMB: Maximum size per log file before rotation
    - LogRetentionDays: How many days of logs to keep
    - LogDir: Directory for log files

    Attributes:
        _instance: Singleton logger instance (class-level)
        _initialized: Whether logging has been configured (class-level)
        _config_path: config.ini the settings are read from (class-level)
        _handlers: Handlers installed on the root logger (class-level)
    """

    _instance: Optional[logging.Logger] = None
    _initialized: bool = False
    _config_path: Path = Path('config.ini')
    _handlers: List[logging.Handler] = []

    @classmethod
    def get_logger(cls, name: str = 'PackingSlips') -> logging.Logger:
        """
        Get or create application logger with lazy initialization.

        Usage in modules:
            from logger import get_logger
            logger = get_logger(__name__)
            logger.info("Starting import")

        Args:
            name: Logger name, typically the module name (__name__)

        Returns:
            Configured logger instance for the specified name
        """
        if not cls._initialized:
            cls._setup_logging()
            cls._initialized = True

        return logging.getLogger(name)

    @classmethod
    def configure(cls, config_path: Union[str, Path]) -> None:
        """
        Re-read logging settings from a specific config.ini.

        Handlers installed by an earlier setup are closed and replaced, so the
        [Logging] section of the given file applies from here on.

        Args:
            config_path: Path to the config.ini passed on the command line
        """
        root_logger = logging.getLogger()
        for handler in cls._handlers:
            root_logger.removeHandler(handler)
            handler.close()
        cls._handlers = []

        cls._config_path = Path(config_path)
        cls._setup_logging()
        cls._initialized = True

    @classmethod
    def _setup_logging(cls):
        """
        Setup logging configuration from config.ini.

        Configures:
        1. Log directory and file path
        2. Log level (from config or default to INFO)
        3. JSON file handler with rotation
        4. Console handler
        5. Old log cleanup

        When a file exceeds MaxLogSizeMB:
            2025-11-05.log       (current)
            2025-11-05.log.1     (previous, rotated)
            ... up to backupCount files
        """
        config = cls._load_config()

        # === LOG DIRECTORY SETUP ===
        configured_dir = config.get('Logging', 'LogDir', fallback='')
        log_dir = Path(configured_dir).expanduser() if configured_dir else DEFAULT_LOG_DIR

        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except Exception as e:
            # Fall back to the per-user directory if the configured one is unusable
            log_dir = DEFAULT_LOG_DIR
            log_dir.mkdir(parents=True, exist_ok=True)
            print(f"Warning: Could not access configured logs directory. Using local: {log_dir}. Error: {e}")

        log_file = log_dir / f"{datetime.now():%Y-%m-%d}.log"

        # === LOG LEVEL CONFIGURATION ===
        log_level_str = config.get('Logging', 'LogLevel', fallback='INFO')
        log_level = getattr(logging, log_level_str.upper(), logging.INFO)

        # === FILE ROTATION CONFIGURATION ===
        max_log_size = config.getint('Logging', 'MaxLogSizeMB', fallback=10) * 1024 * 1024

        # === LOG FORMATTERS ===
        json_formatter = StructuredJSONFormatter()

        # Format: timestamp | module | level | function:line | message
        console_formatter = logging.Formatter(
            fmt='%(asctime)s | %(name)s | %(levelname)s | %(funcName)s:%(lineno)d | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        # === FILE HANDLER ===
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_log_size,
            backupCount=30,
            encoding='utf-8'
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(json_formatter)

        # === CONSOLE HANDLER ===
        # Console output stays at WARNING or above so CLI output remains readable
        console_handler = logging.StreamHandler()
        console_handler.setLevel(max(log_level, logging.WARNING))
        console_handler.setFormatter(console_formatter)

        # === CONFIGURE ROOT LOGGER ===
        root_logger = logging.getLogger()
        root_logger.setLevel(log_level)
        root_logger.addHandler(file_handler)
        root_logger.addHandler(console_handler)
        cls._handlers = [file_handler, console_handler]

        # === CLEANUP OLD LOGS ===
        retention_days = config.getint('Logging', 'LogRetentionDays', fallback=30)
        cls._cleanup_old_logs(log_dir, retention_days)

        logger = logging.getLogger('PackingSlips')
        logger.info("=" * 80)
        logger.info("Packing Slip Generator Started")
        logger.info(f"Log Level: {log_level_str}")
        logger.info(f"Log File: {log_file}")
        logger.info("=" * 80)

    @classmethod
    def _load_config(cls) -> configparser.ConfigParser:
        """
        Load configuration from config.ini (the working directory one unless
        configure() named another file).

        Configuration options:
            [Logging]
            LogLevel = INFO
            MaxLogSizeMB = 10
            LogRetentionDays = 30
            LogDir = ~/.packing_slips/logs

        Returns:
            ConfigParser object with loaded configuration, empty if config.ini
            is not found (callers use fallback defaults)
        """
        config = configparser.ConfigParser()
        config_path = cls._config_path

        if config_path.exists():
            try:
                config.read(config_path, encoding='utf-8')
            except configparser.Error as e:
                print(f"Warning: Could not read logging settings from {config_path}: {e}")

        return config

    @staticmethod
    def _cleanup_old_logs(log_dir: Path, retention_days: int):
        """
        Delete log files older than the retention period.

        Args:
            log_dir: Directory containing log files
            retention_days: Number of days to keep logs.
                            0 or negative disables cleanup.
        """
        if retention_days <= 0:
            return

        cutoff_date = datetime.now() - timedelta(days=retention_days)

        try:
            for log_file in log_dir.glob("*.log*"):
                file_mtime = datetime.fromtimestamp(log_file.stat().st_mtime)

                if file_mtime < cutoff_date:
                    log_file.unlink()
                    logging.getLogger('PackingSlips').debug(f"Deleted old log: {log_file.name}")

        except Exception as e:
            # Non-fatal: a locked or unreadable log file must not stop the application
            logging.getLogger('PackingSlips').warning(f"Failed to cleanup old logs: {e}")


# Convenience functions
def get_logger(name: str = 'PackingSlips') -> logging.Logger:
    """
    Get application logger.

    Args:
        name: Logger name (default: 'PackingSlips')

    Returns:
        Configured logger instance

    Example:
        >>> from logger import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("Starting import")
    """
    return AppLogger.get_logger(name)


def configure_logging(config_path: Union[str, Path]) -> None:
    """
    Apply the [Logging] settings of the given config.ini.

    Args:
        config_path: Path to config.ini
    """
    AppLogger.configure(config_path)


def set_batch_context(batch_id: Optional[str]) -> None:
    """
    Set the current import batch ID for structured logging context.

    Every log entry emitted afterwards carries this batch_id, which makes it
    possible to pull out all lines belonging to one CSV import.

    Args:
        batch_id: Batch identifier (e.g., "20251105-143045") or None to clear
    """
    _batch_id.set(batch_id)


def set_source_context(source_file: Optional[str]) -> None:
    """
    Set the file currently being imported for structured logging context.

    Args:
        source_file: Path or name of the import file, or None to clear
    """
    _source_file.set(source_file)


def clear_logging_context() -> None:
    """Clear all logging context (batch_id, source_file)."""
    _batch_id.set(None)
    _source_file.set(None)
