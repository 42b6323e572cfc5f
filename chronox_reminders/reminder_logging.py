"""
Central logging configuration for chronox_reminders.

Sets module log levels for the reminder engine and keeps noisy third-party
loggers quiet, with environment overrides for troubleshooting on device.
"""

import logging
import os
from typing import Optional

ENGINE_MODULES = [
    "chronox_reminders",
    "chronox_reminders.domain.recurrence",
    "chronox_reminders.domain.reminder_builder",
    "chronox_reminders.domain.reminder_sync",
    "chronox_reminders.domain.event_migration",
    "chronox_reminders.domain.notification_recovery",
    "chronox_reminders.domain.pipeline",
    "chronox_reminders.core.storage",
    "chronox_reminders.core.notification_scheduler",
]

# Third-party loggers that are too chatty at DEBUG
SUPPRESSED_LOGGERS = [
    "asyncio",
    "pydantic",
]


def configure_reminder_logging(
    debug_mode: bool = False, force_debug: Optional[bool] = None
) -> None:
    """
    Configure logging levels for the reminder engine.

    Args:
        debug_mode: Whether to enable debug logging for chronox_reminders modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        CHRONOX_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        CHRONOX_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("CHRONOX_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("CHRONOX_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    # Keep any handler installed by the package __init__ (colored output)
    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(root_level)
        handler.setFormatter(
            logging.Formatter("[%(asctime)s] %(levelname)s - %(name)s - %(message)s")
        )
        root_logger.addHandler(handler)

    logger_config: dict[str, int] = {name: logging.WARNING for name in SUPPRESSED_LOGGERS}
    engine_level = logging.DEBUG if final_debug else logging.INFO
    for module in ENGINE_MODULES:
        logger_config[module] = engine_level

    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    if final_debug:
        root_logger.info("Debug logging enabled for chronox_reminders modules")
    else:
        root_logger.info("Production logging configuration applied")


def reset_logging_to_debug() -> None:
    """Reset all loggers, including suppressed ones, to DEBUG for troubleshooting."""
    logging.getLogger().setLevel(logging.DEBUG)
    for logger_name in [*SUPPRESSED_LOGGERS, *ENGINE_MODULES]:
        logging.getLogger(logger_name).setLevel(logging.DEBUG)

    logging.getLogger().info("All loggers reset to DEBUG level for troubleshooting")


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for logger_name in ["chronox_reminders", *SUPPRESSED_LOGGERS]:
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)
    return status
