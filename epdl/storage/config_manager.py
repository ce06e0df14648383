"""
Manages loading and creation of the INI configuration file.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from epdl.exceptions import ConfigurationError
from epdl.models.config import SessionConfig

log = logging.getLogger(__name__)


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser(interpolation=None)

    def load_config(self, cli_options: dict[str, Any] | None = None) -> SessionConfig:
        """
        Loads defaults from the INI file (if present), applies CLI overrides, and
        validates the result.

        Args:
            cli_options: A dictionary of options provided via the command line.

        Returns:
            A validated SessionConfig object.

        Raises:
            ConfigurationError: If the file cannot be parsed or validation fails.
        """
        config_from_file: dict[str, Any] = {}
        if self.config_file_path.is_file():
            try:
                self._parser.read(self.config_file_path, encoding="utf-8")
            except configparser.Error as e:
                raise ConfigurationError(f"Error parsing configuration file: {e}") from e
            config_from_file = self._get_config_as_dict()
        else:
            log.debug(f"No configuration file at '{self.config_file_path}', using defaults.")

        if cli_options:
            config_from_file.update(cli_options)

        try:
            return SessionConfig(
                **config_from_file, config_path=str(self.config_file_path.parent)
            )
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any] | None = None) -> None:
        """
        Creates and saves a configuration file holding every setting's default.

        Args:
            settings: Values that replace the defaults.
        """
        settings = settings or {}
        config = configparser.ConfigParser(interpolation=None)
        config["DEFAULT"] = {}

        defaults = SessionConfig()
        for key in sorted(SessionConfig.get_ini_keys()):
            value = settings.get(key, getattr(defaults, key, None))
            if isinstance(value, bool):
                config["DEFAULT"][key] = "true" if value else "false"
            elif value is not None:
                config["DEFAULT"][key] = str(value)

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the 'DEFAULT' section of the INI file into a dictionary."""
        section = self._parser["DEFAULT"]
        values: dict[str, Any] = {}
        for key in ("resolution", "user_agent", "ffmpeg_path", "font_base_url"):
            if key in section:
                values[key] = section.get(key)
        for key in ("connections", "retry", "key_retry"):
            if key in section:
                values[key] = self._read(section.getint, key)
        for key in ("retry_delay", "max_retry_delay", "request_timeout"):
            if key in section:
                values[key] = self._read(section.getfloat, key)
        for key in ("hardsub", "attach_fonts", "keep_remote_names", "progress_bar"):
            if key in section:
                values[key] = self._read(section.getboolean, key)
        if section.get("proxy"):
            values["proxy"] = section.get("proxy")
        if section.get("work_dir"):
            values["work_dir"] = Path(section.get("work_dir")).expanduser()
        return values

    @staticmethod
    def _read(getter, key: str) -> Any:
        try:
            return getter(key)
        except ValueError as e:
            raise ConfigurationError(f"Invalid value for '{key}' in configuration: {e}") from e
