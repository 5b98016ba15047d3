"""Centralized settings loaded from the environment.

Settings come from ``TIMEBILL_*`` environment variables, optionally seeded
from a ``.env`` file. Invalid values produce a ``ConfigError`` naming the
variable.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from ..aggregation.buckets import resolve_timezone
from ..aggregation.errors import PreconditionError
from ..core.weekday import Weekday

__all__ = [
    "ConfigError",
    "Settings",
    "generate_example_env",
    "get_settings",
    "load_env_file",
    "load_settings",
]

_RATE_SOURCES = ("stored", "resolved")
_LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


class ConfigError(Exception):
    """Raised when configuration is missing or invalid."""

    pass


@dataclass
class Settings:
    """Settings for timebill.

    Attributes
    ----------
    database_path : Path
        SQLite database file (``:memory:`` for a transient store)
    default_timezone : str
        Timezone used when a request or user names none
    default_week_start : Weekday
        Week start used when a user names none
    rate_source : str
        ``stored`` (materialized entry rates) or ``resolved`` (live cascade)
    show_billable_rate : bool
        Whether reports serialize cost
    log_level : str
        Console log level
    log_dir : Path | None
        Directory for JSONL log files (None: logs/)
    """

    database_path: Path = Path("timebill.db")
    default_timezone: str = "UTC"
    default_week_start: Weekday = Weekday.MONDAY

    # Billing
    rate_source: str = "stored"
    show_billable_rate: bool = True

    # Logging
    log_level: str = "INFO"
    log_dir: Path | None = None

    def __post_init__(self):
        """Validate settings after initialization."""
        if isinstance(self.database_path, str):
            self.database_path = Path(self.database_path)

        if self.log_dir and isinstance(self.log_dir, str):
            self.log_dir = Path(self.log_dir)

        try:
            resolve_timezone(self.default_timezone)
        except PreconditionError as exc:
            raise ConfigError(
                f"TIMEBILL_DEFAULT_TZ={self.default_timezone!r} is not a known timezone. "
                "Use an IANA name such as UTC or Europe/Vienna"
            ) from exc

        try:
            self.default_week_start = Weekday.coerce(self.default_week_start)
        except ValueError as exc:
            raise ConfigError(
                f"TIMEBILL_WEEK_START={self.default_week_start!r} is not a weekday. "
                "Use a day name such as monday or sunday"
            ) from exc

        self.rate_source = self.rate_source.lower()
        if self.rate_source not in _RATE_SOURCES:
            raise ConfigError(
                f"TIMEBILL_RATE_SOURCE={self.rate_source!r} is invalid. Use one of: {', '.join(_RATE_SOURCES)}"
            )

        self.log_level = self.log_level.upper()
        if self.log_level not in _LOG_LEVELS:
            raise ConfigError(
                f"TIMEBILL_LOG_LEVEL={self.log_level!r} is invalid. Use one of: {', '.join(_LOG_LEVELS)}"
            )

    @classmethod
    def from_env(cls, env_file: Path | str | None = None) -> Settings:
        """Load settings from environment.

        Loads from .env file if present, otherwise from os.environ.

        Parameters
        ----------
        env_file
            Path to .env file (default: .env in current directory)

        Returns
        -------
        Settings
            Loaded settings

        Raises
        ------
        ConfigError
            If a setting is invalid
        """
        if env_file is None:
            env_file = Path(".env")

        if isinstance(env_file, str):
            env_file = Path(env_file)

        if env_file.exists():
            load_env_file(env_file)

        return cls(
            database_path=Path(os.environ.get("TIMEBILL_DATABASE_PATH", "timebill.db")),
            default_timezone=os.environ.get("TIMEBILL_DEFAULT_TZ", "UTC"),
            default_week_start=os.environ.get("TIMEBILL_WEEK_START", "monday"),  # type: ignore[arg-type]
            rate_source=os.environ.get("TIMEBILL_RATE_SOURCE", "stored"),
            show_billable_rate=_parse_bool("TIMEBILL_SHOW_BILLABLE_RATE", "true"),
            log_level=os.environ.get("TIMEBILL_LOG_LEVEL", "INFO"),
            log_dir=Path(os.environ["TIMEBILL_LOG_DIR"]) if "TIMEBILL_LOG_DIR" in os.environ else None,
        )


def _parse_bool(name: str, default: str) -> bool:
    value = os.environ.get(name, default).strip().lower()
    if value in ("true", "1", "yes"):
        return True
    if value in ("false", "0", "no"):
        return False
    raise ConfigError(f"{name}={value!r} is not a boolean. Use true or false")


def load_env_file(env_file: Path) -> None:
    """Load environment variables from .env file.

    Parameters
    ----------
    env_file
        Path to .env file
    """
    with open(env_file) as f:
        for line in f:
            line = line.strip()

            if not line or line.startswith("#"):
                continue

            if "=" in line:
                key, value = line.split("=", 1)
                key = key.strip()
                value = value.strip()

                if (value.startswith('"') and value.endswith('"')) or (value.startswith("'") and value.endswith("'")):
                    value = value[1:-1]

                os.environ[key] = value


# Global settings instance
_settings: Settings | None = None


def load_settings(env_file: Path | str | None = None) -> Settings:
    """Load settings from environment and keep them as the current settings."""
    global _settings
    _settings = Settings.from_env(env_file)
    return _settings


def get_settings() -> Settings:
    """Get current settings.

    Raises
    ------
    ConfigError
        If settings not loaded
    """
    global _settings
    if _settings is None:
        raise ConfigError("Settings not loaded. Call load_settings() first.")
    return _settings


def generate_example_env(output_path: Path | None = None) -> str:
    """Generate an example .env file with every setting.

    Parameters
    ----------
    output_path
        Optional path to write the file to

    Returns
    -------
    str
        Example .env contents
    """
    example = """# timebill configuration
# Copy this to .env and adjust values

# SQLite database file
TIMEBILL_DATABASE_PATH=timebill.db

# Calendar defaults
TIMEBILL_DEFAULT_TZ=UTC
TIMEBILL_WEEK_START=monday

# Billing: stored | resolved
TIMEBILL_RATE_SOURCE=stored
TIMEBILL_SHOW_BILLABLE_RATE=true

# Logging
TIMEBILL_LOG_LEVEL=INFO
# TIMEBILL_LOG_DIR=logs
"""
    if output_path is not None:
        output_path.write_text(example)
    return example
