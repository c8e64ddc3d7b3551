"""
Application configuration loaded from config.ini.

Example config.ini:
    [Paths]
    DataDir = ~/.packing_slips

    [Import]
    Encoding = utf-8-sig
    Delimiter = ,

    [Export]
    PageDPI = 150
    LogoPath =
    DefaultTemplate =
    CsvFilenamePrefix = packing_slips

    [Logging]
    LogLevel = INFO
    MaxLogSizeMB = 10
    LogRetentionDays = 30
    LogDir = ~/.packing_slips/logs

Every setting has a fallback, so a missing config.ini is not an error.
"""

import configparser
import os
from pathlib import Path
from typing import Optional, Union

from logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = "config.ini"
DEFAULT_DATA_DIR = Path(os.path.expanduser("~")) / ".packing_slips"
DEFAULT_PAGE_DPI = 150


class AppConfig:
    """
    Typed access to config.ini settings.

    Attributes:
        config (ConfigParser): The raw parsed configuration
        config_path (Path): Where the configuration was read from
    """

    def __init__(self, config_path: Union[str, Path] = DEFAULT_CONFIG_PATH):
        self.config_path = Path(config_path)
        self.config = self._load_config(self.config_path)

    @staticmethod
    def _load_config(config_path: Path) -> configparser.ConfigParser:
        """Load configuration from config.ini."""
        config = configparser.ConfigParser()

        if not config_path.exists():
            logger.warning(f"Config file not found: {config_path}, using defaults")
            return config

        try:
            config.read(config_path, encoding='utf-8')
            logger.info(f"Configuration loaded from {config_path}")
        except configparser.Error as e:
            logger.error(f"Failed to load config: {e}")

        return config

    @property
    def data_dir(self) -> Path:
        configured = self.config.get('Paths', 'DataDir', fallback='')
        return Path(configured).expanduser() if configured else DEFAULT_DATA_DIR

    @property
    def import_encoding(self) -> str:
        return self.config.get('Import', 'Encoding', fallback='utf-8-sig')

    @property
    def import_delimiter(self) -> Optional[str]:
        return self.config.get('Import', 'Delimiter', fallback='') or None

    @property
    def page_dpi(self) -> int:
        try:
            dpi = self.config.getint('Export', 'PageDPI', fallback=DEFAULT_PAGE_DPI)
        except ValueError:
            logger.warning(
                f"Invalid PageDPI '{self.config.get('Export', 'PageDPI')}' in {self.config_path}, "
                f"using {DEFAULT_PAGE_DPI}"
            )
            return DEFAULT_PAGE_DPI
        if dpi <= 0:
            logger.warning(f"PageDPI must be positive, using {DEFAULT_PAGE_DPI}")
            return DEFAULT_PAGE_DPI
        return dpi

    @property
    def logo_path(self) -> Optional[Path]:
        configured = self.config.get('Export', 'LogoPath', fallback='')
        return Path(configured).expanduser() if configured else None

    @property
    def default_template(self) -> Optional[str]:
        return self.config.get('Export', 'DefaultTemplate', fallback='') or None

    @property
    def csv_filename_prefix(self) -> str:
        return self.config.get('Export', 'CsvFilenamePrefix', fallback='packing_slips')
