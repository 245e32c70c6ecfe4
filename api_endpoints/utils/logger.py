"""Logging setup for api-endpoints.

All package loggers hang off one parent logger (``api_endpoints`` unless a
``parent_logger`` is configured), so applications can route or silence the
library with a single handler.
"""

import logging
import logging.handlers
import sys
from typing import Any, Dict, Optional

DEFAULT_PARENT_LOGGER = "api_endpoints"

DEFAULT_LOGGING_CONFIG = {
    "level": "WARNING",
    "parent_logger": None,
    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    "date_format": "%Y-%m-%d %H:%M:%S",
    "enable_console": True,
    "enable_file": False,
    "file_path": None,
    "max_file_size": 10485760,
    "backup_count": 5,
}


class ColorFormatter(logging.Formatter):
    """Adds ANSI colors per level; only attached to console handlers on a TTY."""

    COLORS = {
        "DEBUG": "\033[94m",  # Blue
        "INFO": "\033[92m",  # Green
        "WARNING": "\033[93m",  # Yellow
        "ERROR": "\033[91m",  # Red
        "CRITICAL": "\033[95m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record):
        color = self.COLORS.get(record.levelname, self.RESET)
        msg = super().format(record)
        return f"{color}{msg}{self.RESET}"


class LoggerManager:
    """Owns the parent logger configuration and hands out child loggers."""

    def __init__(self):
        self._loggers: Dict[str, logging.Logger] = {}
        self._configured = False
        self._config: Optional[Dict[str, Any]] = None

    def configure(self, config: Dict[str, Any]) -> None:
        """Configure the parent logger.

        Args:
            config: The ``logging`` section of the package configuration
        """
        self._config = config
        self._configured = True
        self._configure_parent_logger()

    def _parent_name(self) -> str:
        return (self._config or {}).get("parent_logger") or DEFAULT_PARENT_LOGGER

    def _configure_parent_logger(self) -> None:
        if not self._config:
            return

        parent_logger = logging.getLogger(self._parent_name())
        parent_logger.handlers.clear()

        level_str = self._config.get("level", DEFAULT_LOGGING_CONFIG["level"])
        parent_logger.setLevel(getattr(logging, str(level_str).upper(), logging.WARNING))

        log_format = self._config.get("format", DEFAULT_LOGGING_CONFIG["format"])
        date_format = self._config.get("date_format", DEFAULT_LOGGING_CONFIG["date_format"])
        formatter = logging.Formatter(log_format, date_format)

        if self._config.get("enable_console", True):
            console_handler = logging.StreamHandler(sys.stderr)
            if sys.stderr.isatty():
                console_handler.setFormatter(ColorFormatter(log_format, date_format))
            else:
                console_handler.setFormatter(formatter)
            parent_logger.addHandler(console_handler)

        if self._config.get("enable_file", False):
            file_path = self._config.get("file_path")
            if file_path:
                file_handler = logging.handlers.RotatingFileHandler(
                    file_path,
                    maxBytes=self._config.get("max_file_size", DEFAULT_LOGGING_CONFIG["max_file_size"]),
                    backupCount=self._config.get("backup_count", DEFAULT_LOGGING_CONFIG["backup_count"]),
                )
                file_handler.setFormatter(formatter)
                parent_logger.addHandler(file_handler)

        parent_logger.propagate = False

    def get_logger(self, name: str) -> logging.Logger:
        """Return the logger ``<parent>.<name>``, configuring defaults on first use."""
        if not self._configured:
            self._config = dict(DEFAULT_LOGGING_CONFIG)
            self._configure_parent_logger()
            self._configured = True

        full_name = f"{self._parent_name()}.{name}"
        if full_name not in self._loggers:
            self._loggers[full_name] = logging.getLogger(full_name)
        return self._loggers[full_name]

    def set_level(self, level: str) -> None:
        """Change the level of the parent logger."""
        if self._config is None:
            self._config = dict(DEFAULT_LOGGING_CONFIG)
            self._configured = True
        self._config["level"] = level
        self._configure_parent_logger()


_logger_manager = LoggerManager()


def configure_logging(config: Dict[str, Any]) -> None:
    """Configure package logging from the ``logging`` configuration section."""
    merged = dict(DEFAULT_LOGGING_CONFIG)
    merged.update(config or {})
    _logger_manager.configure(merged)


def get_logger(name: str) -> logging.Logger:
    """Get a package logger.

    Example:
        logger = get_logger("core.request")
        logger.debug("Dispatching %s", url)
    """
    return _logger_manager.get_logger(name)


def set_log_level(level: str) -> None:
    """Change the logging level for the whole package."""
    _logger_manager.set_level(level)
