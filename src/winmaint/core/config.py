"""
Configuration management for winmaint.
Reads an optional YAML configuration file and provides configuration data.
"""

import logging
import os
from typing import Any, Dict, List, Optional

import yaml

from src.i18n import _

CONFIG_FILENAME = "winmaint.yaml"


def _system_config_path() -> str:
    program_data = os.environ.get("ProgramData", r"C:\ProgramData")
    return os.path.join(program_data, "WinMaint", CONFIG_FILENAME)


class ConfigManager:
    """Manages configuration for winmaint.

    Unlike a long-running service, a maintenance run must work without any
    configuration file, so a missing file leaves every setting at its default.
    """

    def __init__(self, config_file: Optional[str] = None):
        self.logger = logging.getLogger(__name__)
        self.config_file = self._determine_config_path(config_file)
        self.config_data: Dict[str, Any] = {}
        self.loaded = False
        self.load_config()

    def _determine_config_path(self, requested: Optional[str]) -> Optional[str]:
        """
        Determine configuration file path.

        Priority order:
        1. Explicitly requested path (``--config``)
        2. WINMAINT_CONFIG environment variable
        3. %ProgramData%\\WinMaint\\winmaint.yaml
        4. ./winmaint.yaml
        """
        if requested:
            return requested

        env_config = os.environ.get("WINMAINT_CONFIG")
        if env_config:
            return env_config

        for candidate in (_system_config_path(), os.path.join(".", CONFIG_FILENAME)):
            if os.path.exists(candidate):
                return candidate
        return None

    def load_config(self) -> None:
        """Load configuration from the YAML file, if there is one."""
        if not self.config_file or not os.path.exists(self.config_file):
            self.config_data = {}
            return

        try:
            with open(self.config_file, "r", encoding="utf-8") as file:
                data = yaml.safe_load(file) or {}
        except yaml.YAMLError as e:
            raise ValueError(_("Invalid YAML in configuration file: %s") % e) from e
        except OSError as e:
            raise RuntimeError(_("Failed to load configuration file: %s") % e) from e

        if not isinstance(data, dict):
            raise ValueError(
                _("Configuration file '%s' must contain a mapping") % self.config_file
            )
        self.config_data = data
        self.loaded = True

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key_path: Dot-separated path to the configuration key (e.g., 'logging.level')
            default: Default value if key is not found

        Returns:
            Configuration value or default
        """
        value = self.config_data
        try:
            for key in key_path.split("."):
                value = value[key]
            return value
        except (KeyError, TypeError):
            return default

    def get_log_levels(self) -> str:
        """Get pipe-separated logging levels configuration."""
        return str(self.get("logging.level", "INFO|SUCCESS|WARNING|ERROR|CRITICAL"))

    def get_log_level(self) -> str:
        """Get the handler threshold: the first configured level."""
        return self.get_log_levels().split("|")[0].strip().upper() or "INFO"

    def get_log_file(self) -> Optional[str]:
        """Get log file path if specified."""
        return self.get("logging.file")

    def should_log_to_console(self) -> Optional[bool]:
        """Explicit console logging preference, or None to decide at runtime."""
        return self.get("logging.console")

    def get_language(self) -> str:
        """Get configured language/locale."""
        return self.get("i18n.language", "en")

    def get_application_overrides(self) -> Optional[List[Dict[str, Any]]]:
        """Get the deployment-time replacement for the application catalog."""
        applications = self.get("applications")
        if applications is None:
            return None
        if not isinstance(applications, list):
            raise ValueError(_("'applications' must be a list of mappings"))
        return applications
