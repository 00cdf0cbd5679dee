"""Configuration management for ical_merger."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from .exceptions import ConfigError
from .models import MergerConfig
from .timezone_utils import TimezoneRegistry

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/app/config.json"
DEFAULT_CALENDAR_DIR = "./calendars"


class ConfigManager:
    """Loads configuration from a JSON file, environment variables and .env files."""

    def __init__(self, config_path: Path | str | None = None, env_file_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            config_path: Path to the JSON config (defaults to $CONFIG_PATH, then /app/config.json)
            env_file_path: Optional path to .env file (defaults to .env in current directory)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"
        self._config_path = Path(config_path) if config_path else None

    @property
    def config_path(self) -> Path:
        if self._config_path is not None:
            return self._config_path
        return Path(os.environ.get("CONFIG_PATH") or DEFAULT_CONFIG_PATH)

    def load_env_file(self) -> list[str]:
        """Load .env file and set environment variables.

        Only sets variables that are not already in the environment to avoid
        surprising overrides of user's environment.

        Returns:
            List of environment variable keys that were loaded from .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        set_keys = []
        try:
            content = self.env_file_path.read_text(encoding="utf-8")
        except OSError:
            logger.debug(
                "Failed to read .env file for defaults (continuing): %s",
                self.env_file_path,
                exc_info=True,
            )
            return []

        for raw_line in content.splitlines():
            line = raw_line.strip()

            # Skip empty lines and comments
            if not line or line.startswith("#"):
                continue

            if "=" not in line:
                continue

            key, val = line.split("=", 1)
            key = key.strip()
            val = val.strip().strip('"').strip("'")

            if key and key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))
        return set_keys

    def load_config_file(self) -> dict[str, Any]:
        """Read the JSON configuration file.

        Raises:
            ConfigError: if the file is missing, unreadable or not a JSON object
        """
        path = self.config_path
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a JSON object")
        logger.debug("Loaded config file %s", path)
        return data

    def build_overrides_from_env(self) -> dict[str, Any]:
        """Build configuration overrides from environment variables.

        Recognizes:
        - ICAL_MERGER_OUTPUT_PATH -> 'output_path'
        - ICAL_MERGER_WEB_PORT -> 'server_port' (int)
        - ICAL_MERGER_WEB_HOST -> 'server_bind'
        - ICAL_MERGER_DEBUG -> 'debug_logging' (truthy values: 1, true, yes, on)
        """
        cfg: dict[str, Any] = {}

        output_path = os.environ.get("ICAL_MERGER_OUTPUT_PATH")
        if output_path:
            cfg["output_path"] = output_path

        host = os.environ.get("ICAL_MERGER_WEB_HOST")
        if host:
            cfg["server_bind"] = host

        port = os.environ.get("ICAL_MERGER_WEB_PORT")
        if port:
            try:
                cfg["server_port"] = int(port)
            except ValueError:
                logger.warning("Invalid ICAL_MERGER_WEB_PORT=%r; ignoring", port)

        debug = os.environ.get("ICAL_MERGER_DEBUG", "")
        if debug.strip().lower() in ("1", "true", "yes", "on"):
            cfg["debug_logging"] = True

        return cfg

    def load_full_config(
        self,
        overrides: Optional[dict[str, Any]] = None,
        registry: Optional[TimezoneRegistry] = None,
    ) -> MergerConfig:
        """Load .env, the config file and environment overrides into a MergerConfig.

        This is the main entry point for loading configuration. Precedence,
        lowest first: config file, environment, ``overrides`` (CLI flags).

        Raises:
            ConfigError: on an unreadable file, invalid values or an unknown
                output timezone
        """
        self.load_env_file()

        data = canonical_keys(self.load_config_file())
        data.update(self.build_overrides_from_env())
        data.update({k: v for k, v in (overrides or {}).items() if v is not None})

        config = validate_config(data)

        registry = registry or TimezoneRegistry()
        if not registry.is_known(config.output_timezone):
            raise ConfigError(f"Unknown output timezone: {config.output_timezone!r}")

        logger.info(
            "Loaded %d calendars from %s (output %s, timezone %s, every %d min)",
            len(config.calendars),
            self.config_path,
            config.output_path,
            config.output_timezone,
            config.sync_interval_minutes,
        )
        return config


def canonical_keys(data: dict[str, Any]) -> dict[str, Any]:
    """Rename camelCase config keys to their field names so later overrides win."""
    result = dict(data)
    for name, info in MergerConfig.model_fields.items():
        if info.alias and info.alias in result:
            value = result.pop(info.alias)
            result.setdefault(name, value)
    return result


def validate_config(data: dict[str, Any]) -> MergerConfig:
    """Validate a raw mapping into MergerConfig.

    Raises:
        ConfigError: if validation fails
    """
    try:
        return MergerConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def apply_local_mode(config: MergerConfig, calendar_dir: str = DEFAULT_CALENDAR_DIR) -> MergerConfig:
    """Point every calendar at ``<calendar_dir>/<name>.ics`` instead of its URL."""
    base = Path(calendar_dir).resolve()
    calendars = [
        source.model_copy(update={"url": (base / f"{source.name}.ics").as_uri()})
        for source in config.calendars
    ]
    logger.info("Local mode: reading %d calendars from %s", len(calendars), base)
    return config.model_copy(update={"calendars": calendars})
