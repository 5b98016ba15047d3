"""YAML configuration for timebill.

Supports:
- Default configuration from the packaged ``config/defaults.yaml``
- User overrides from ``timebill.yaml``
- Environment variable overrides (TIMEBILL_*)
- Nested key access with dot notation
"""

from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any

import yaml
from loguru import logger

__all__ = ["Config", "get_config", "load_config"]

# Global config instance
_config_instance: Config | None = None

_DEFAULTS_PATH = Path(__file__).parent.parent / "config" / "defaults.yaml"

# Environment variable -> dotted config key
_ENV_MAPPINGS = {
    "TIMEBILL_DATABASE_PATH": "storage.database_path",
    "TIMEBILL_DEFAULT_TZ": "calendar.timezone",
    "TIMEBILL_WEEK_START": "calendar.week_start",
    "TIMEBILL_RATE_SOURCE": "billing.rate_source",
    "TIMEBILL_SHOW_BILLABLE_RATE": "billing.show_billable_rate",
    "TIMEBILL_LOG_LEVEL": "logging.level",
    "TIMEBILL_LOG_DIR": "logging.dir",
}

_BOOLEAN_KEYS = frozenset({"billing.show_billable_rate"})


class Config:
    """Configuration with defaults, overrides, and env vars.

    Configuration priority (highest to lowest):
    1. Environment variables (TIMEBILL_*)
    2. User config (timebill.yaml)
    3. Defaults (config/defaults.yaml)

    Example:
        >>> config = Config.load()
        >>> config.get("calendar.week_start", "monday")
        'monday'
    """

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self._data = data or {}

    @classmethod
    def load(
        cls,
        config_path: str | Path | None = None,
        defaults_path: str | Path | None = None,
    ) -> Config:
        """Load configuration from files and environment.

        Parameters
        ----------
        config_path
            Path to user config file (default: timebill.yaml)
        defaults_path
            Path to defaults config (default: packaged defaults.yaml)

        Returns
        -------
        Config
            Loaded configuration instance
        """
        if defaults_path is None:
            defaults_path = _DEFAULTS_PATH

        defaults = cls._load_yaml_file(defaults_path) if Path(defaults_path).exists() else {}

        if config_path is None:
            config_path = Path("timebill.yaml")

        user_config = cls._load_yaml_file(config_path) if Path(config_path).exists() else {}

        merged = cls._deep_merge(defaults, user_config)
        merged = cls._apply_env_overrides(merged)

        return cls(merged)

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by key.

        Supports dot notation for nested keys, e.g. ``"calendar.timezone"``
        reads ``config["calendar"]["timezone"]``.
        """
        value = self._data

        for part in key.split("."):
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """Set configuration value by dotted key."""
        parts = key.split(".")
        data = self._data

        for part in parts[:-1]:
            if part not in data:
                data[part] = {}
            data = data[part]

        data[parts[-1]] = value

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)

    def to_settings(self):
        """Build validated ``Settings`` from this configuration.

        Raises
        ------
        ConfigError
            If a value is invalid
        """
        from ..config.settings import Settings

        log_dir = self.get("logging.dir")
        return Settings(
            database_path=Path(self.get("storage.database_path", "timebill.db")),
            default_timezone=self.get("calendar.timezone", "UTC"),
            default_week_start=self.get("calendar.week_start", "monday"),
            rate_source=self.get("billing.rate_source", "stored"),
            show_billable_rate=bool(self.get("billing.show_billable_rate", True)),
            log_level=self.get("logging.level", "INFO"),
            log_dir=Path(log_dir) if log_dir else None,
        )

    @staticmethod
    def _load_yaml_file(path: str | Path) -> dict[str, Any]:
        try:
            with open(path, encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            return {}

    @staticmethod
    def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Deep merge two dictionaries; values from ``override`` win."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = Config._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    @staticmethod
    def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
        """Apply TIMEBILL_* environment variable overrides.

        Example: TIMEBILL_DEFAULT_TZ overrides config["calendar"]["timezone"]
        """
        result = copy.deepcopy(config)

        for env_var, config_key in _ENV_MAPPINGS.items():
            value: Any = os.environ.get(env_var)
            if value is None:
                continue

            if config_key in _BOOLEAN_KEYS:
                value = value.strip().lower() in ("true", "1", "yes")

            parts = config_key.split(".")
            data = result
            for part in parts[:-1]:
                data = data.setdefault(part, {})
            data[parts[-1]] = value

        return result


def get_config() -> Config:
    """Get global configuration instance (singleton)."""
    global _config_instance

    if _config_instance is None:
        _config_instance = Config.load()

    return _config_instance


def load_config(config_path: str | None = None) -> dict[str, Any]:
    """Load configuration and return it as a dictionary."""
    return Config.load(config_path=config_path).to_dict()
