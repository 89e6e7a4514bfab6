"""
Manages loading, validation, and migration of the INI settings file.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from companion_hub.exceptions import ConfigurationError
from companion_hub.models.settings import HubSettings
from companion_hub.utils.path import get_default_apps_dir

log = logging.getLogger(__name__)


class ConfigManager:
    """Handles all operations related to the hub's INI settings file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = Path(config_file_path)
        self._parser = configparser.ConfigParser(interpolation=None)

    def load_config(self, cli_options: dict[str, Any] | None = None) -> HubSettings:
        """
        Loads settings from the INI file, applies CLI overrides, and validates them.

        Args:
            cli_options: A dictionary of options provided via the command line.

        Returns:
            A validated HubSettings object.

        Raises:
            ConfigurationError: If the file is missing, invalid, or validation fails.
        """
        if not self.config_file_path.is_file():
            raise ConfigurationError(
                f"Settings file not found at '{self.config_file_path}'. "
                "Please run 'companion-hub init' first.",
                file=str(self.config_file_path),
            )

        try:
            self._parser.read(self.config_file_path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigurationError(
                f"Error parsing settings file: {e}", file=str(self.config_file_path)
            ) from e

        if self._migrate_if_needed():
            log.info(
                "[yellow]Settings file was updated with new default values.[/yellow]"
            )

        config_from_file = self._get_config_as_dict()

        # Override with CLI options
        if cli_options:
            config_from_file.update(cli_options)

        try:
            config_dir = self.config_file_path.parent
            return HubSettings(**config_from_file, config_path=str(config_dir))
        except ValidationError as e:
            raise ConfigurationError(
                f"Settings validation failed:\n{e}", file=str(self.config_file_path)
            ) from e

    def save_new_config(self, settings: dict[str, Any] | None = None) -> None:
        """
        Creates and saves a new settings file filled with defaults.

        Args:
            settings: Values that take precedence over the defaults.
        """
        settings = settings or {}
        config = configparser.ConfigParser(interpolation=None)
        config["DEFAULT"] = {}

        defaults = self._defaults()
        for key in sorted(HubSettings.get_ini_keys()):
            value = settings.get(key, getattr(defaults, key, None))
            if value is not None:
                config["DEFAULT"][key] = _to_ini(value)

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(
                f"Failed to save settings file: {e}", file=str(self.config_file_path)
            ) from e

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the 'DEFAULT' section of the INI file into a dictionary."""
        section = self._parser["DEFAULT"]
        defaults = self._defaults()
        try:
            return {
                "apps_dir": Path(
                    section.get("apps_dir", str(defaults.apps_dir))
                ).expanduser(),
                "max_monitor_entries": section.getint(
                    "max_monitor_entries", defaults.max_monitor_entries
                ),
                "close_timeout": section.getfloat(
                    "close_timeout", defaults.close_timeout
                ),
                "download_attempts": section.getint(
                    "download_attempts", defaults.download_attempts
                ),
                "retry_base_delay": section.getfloat(
                    "retry_base_delay", defaults.retry_base_delay
                ),
                "probe_timeout": section.getfloat(
                    "probe_timeout", defaults.probe_timeout
                ),
                "auto_run_policy": section.get(
                    "auto_run_policy", defaults.auto_run_policy.value
                ),
                "log_json": section.getboolean("log_json", defaults.log_json),
                "app_log_files": section.getboolean(
                    "app_log_files", defaults.app_log_files
                ),
            }
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid value in settings file: {e}", file=str(self.config_file_path)
            ) from e

    def _migrate_if_needed(self) -> bool:
        """Adds missing default values to an existing settings file."""
        defaults = self._defaults()
        needs_saving = False

        config_section = self._parser["DEFAULT"]

        for key in sorted(HubSettings.get_ini_keys()):
            if key not in config_section:
                config_section[key] = _to_ini(getattr(defaults, key))
                needs_saving = True
                log.debug(
                    f"Migrating settings: added missing key '{key}' with "
                    f"value '{config_section[key]}'."
                )

        if needs_saving:
            try:
                with open(self.config_file_path, "w", encoding="utf-8") as f:
                    self._parser.write(f)
            except OSError as e:
                log.error(f"Could not save migrated settings file: {e}")
                return False

        return needs_saving

    @staticmethod
    def _defaults() -> HubSettings:
        return HubSettings(apps_dir=get_default_apps_dir())


def _to_ini(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if hasattr(value, "value"):
        return str(value.value)
    return str(value)
