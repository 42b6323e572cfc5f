"""Configuration management for chronox_reminders."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a .env file and return key-value pairs.

    Args:
        path: Path to .env file

    Returns:
        Dictionary of key-value pairs from the .env file.
        Empty dict if file doesn't exist or cannot be read.

    Note:
        - Skips empty lines and comments (lines starting with #)
        - Strips quotes (both single and double) from values
        - Handles KEY=VALUE format with optional whitespace
    """
    if not path.exists():
        return {}

    result: dict[str, str] = {}

    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        logger.debug("Failed to read .env file (continuing): %s", str(path), exc_info=True)
        return result

    for raw_line in content.splitlines():
        line = raw_line.strip()

        if not line or line.startswith("#"):
            continue

        if "=" not in line:
            continue

        key, val = line.split("=", 1)
        key = key.strip()
        val = val.strip().strip('"').strip("'")

        if key:
            result[key] = val

    return result


# Storage keys shared with the app's persisted state
DEFAULT_EVENTS_KEY = "countdowns"
MIGRATION_VERSION_KEY = "@event_migration_version"
MIGRATION_BACKUP_PREFIX = "@event_migration_backup_"
MIGRATION_QUARANTINE_PREFIX = "@event_migration_corrupt_"
RECOVERY_COMPLETED_KEY = "@notification_recovery_completed"


@dataclass
class ReminderSettings:
    """Tunable settings for the reminder engine, with explicit defaults."""

    events_key: str = DEFAULT_EVENTS_KEY
    min_schedule_buffer_seconds: int = 5
    max_roll_forward_iterations: int = 100
    backup_retention: int = 3
    scheduler_timeout_seconds: float = 10.0
    scheduler_max_retries: int = 2
    default_timezone: str = "UTC"

    @classmethod
    def from_mapping(cls, cfg: dict[str, Any]) -> ReminderSettings:
        """Build settings from a dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in cfg.items() if k in known})


# env var -> (settings field, converter)
_ENV_SETTINGS: dict[str, tuple[str, type]] = {
    "CHRONOX_EVENTS_KEY": ("events_key", str),
    "CHRONOX_MIN_SCHEDULE_BUFFER_SECONDS": ("min_schedule_buffer_seconds", int),
    "CHRONOX_MAX_ROLL_FORWARD_ITERATIONS": ("max_roll_forward_iterations", int),
    "CHRONOX_BACKUP_RETENTION": ("backup_retention", int),
    "CHRONOX_SCHEDULER_TIMEOUT_SECONDS": ("scheduler_timeout_seconds", float),
    "CHRONOX_SCHEDULER_MAX_RETRIES": ("scheduler_max_retries", int),
    "CHRONOX_DEFAULT_TIMEZONE": ("default_timezone", str),
}


class ConfigManager:
    """Manages reminder engine configuration from environment variables and .env files."""

    def __init__(self, env_file_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Load .env file and set environment variables.

        Only sets variables that are not already in the environment.

        Returns:
            List of environment variable keys that were loaded from .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        parsed = parse_env_file(self.env_file_path)

        set_keys = []
        for key, val in parsed.items():
            if key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))

        return set_keys

    def build_config_from_env(self) -> dict[str, Any]:
        """Build configuration dictionary from CHRONOX_* environment variables.

        Values that fail conversion are logged and skipped.
        """
        cfg: dict[str, Any] = {}

        for env_name, (field_name, convert) in _ENV_SETTINGS.items():
            raw = os.environ.get(env_name)
            if raw is None or raw.strip() == "":
                continue
            try:
                value = convert(raw.strip())
            except ValueError:
                logger.warning("Invalid %s=%r; ignoring", env_name, raw)
                continue
            if isinstance(value, (int, float)) and value < 0:
                logger.warning("Negative %s=%r; ignoring", env_name, raw)
                continue
            cfg[field_name] = value

        return cfg

    def load_settings(self) -> ReminderSettings:
        """Load .env file and build settings from the environment.

        This is the main entry point for loading configuration.
        """
        self.load_env_file()
        return ReminderSettings.from_mapping(self.build_config_from_env())

