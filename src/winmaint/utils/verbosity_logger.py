"""
Flexible logging utility for winmaint.

Provides granular logging control with pipe-separated level configuration.
"""

import logging
from typing import Set

from src.winmaint.utils.logging_formatter import SUCCESS, resolve_level

DEFAULT_LEVELS = "INFO|SUCCESS|WARNING|ERROR|CRITICAL"


class FlexibleLogger:
    """
    Logger that supports granular level filtering with pipe-separated configuration.

    Examples:
    - "DEBUG" - Only debug messages
    - "INFO|ERROR" - Only info and error messages
    - "INFO|SUCCESS|WARNING|ERROR|CRITICAL" - Standard operational logging
    """

    def __init__(self, name: str, config_manager=None):
        self.logger = logging.getLogger(name)
        self.name = name
        self.config_manager = config_manager
        self.enabled_levels = self._parse_enabled_levels()

        # Handlers belong to the orchestrator; only the filtering lives here
        self.logger.setLevel(logging.DEBUG)

    def _parse_enabled_levels(self) -> Set[int]:
        """Parse pipe-separated levels from config into a set of logging constants."""
        level_config = (
            self.config_manager.get_log_levels()
            if self.config_manager
            else DEFAULT_LEVELS
        )
        enabled_levels = set()
        for level_name in str(level_config).split("|"):
            level_name = level_name.strip().upper()
            if isinstance(logging.getLevelName(level_name), int):
                enabled_levels.add(resolve_level(level_name))

        if not enabled_levels:
            enabled_levels = {resolve_level(name) for name in DEFAULT_LEVELS.split("|")}
        return enabled_levels

    def _should_log(self, level: int) -> bool:
        return level in self.enabled_levels

    def debug(self, msg: str, *args, **kwargs):
        """Log debug message if verbosity allows."""
        if self._should_log(logging.DEBUG):
            self.logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        """Log info message if verbosity allows."""
        if self._should_log(logging.INFO):
            self.logger.info(msg, *args, **kwargs)

    def success(self, msg: str, *args, **kwargs):
        """Log success message if verbosity allows."""
        if self._should_log(SUCCESS):
            self.logger.log(SUCCESS, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        """Log warning message if verbosity allows."""
        if self._should_log(logging.WARNING):
            self.logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        """Log error message if verbosity allows."""
        if self._should_log(logging.ERROR):
            self.logger.error(msg, *args, **kwargs)

    def critical(self, msg: str, *args, **kwargs):
        """Log critical message if verbosity allows."""
        if self._should_log(logging.CRITICAL):
            self.logger.critical(msg, *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        """Log an error with the active exception's traceback attached."""
        if self._should_log(logging.ERROR):
            self.logger.exception(msg, *args, **kwargs)


def get_logger(name: str, config_manager=None) -> FlexibleLogger:
    """Get a flexible logger instance with granular level control."""
    return FlexibleLogger(name, config_manager)
