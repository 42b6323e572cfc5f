"""chronox_reminders - recurrence and reminder scheduling engine for countdown events.

Computes recurring-event roll-forward, expands reminder plans into concrete
reminder instances, and reconciles them with the device notification queue.
Startup also migrates the persisted event collection and recovers
notifications scheduled by older app versions.
"""

__version__ = "0.1.0"

from pathlib import Path
from typing import Optional

from .core.clock import Clock, FixedClock, TimeProvider
from .core.config_manager import ConfigManager, ReminderSettings
from .core.dependencies import DependencyContainer, ReminderContext
from .core.entitlements import EntitlementProvider, StaticEntitlements
from .core.notification_scheduler import (
    GuardedNotificationScheduler,
    InMemoryNotificationScheduler,
    NotificationScheduler,
)
from .core.storage import InMemoryKeyValueStore, JsonFileKeyValueStore, KeyValueStore
from .domain.event_migration import migrate_events
from .domain.notification_recovery import recover_legacy_notifications, run_notification_recovery
from .domain.pipeline import RefreshResult, refresh_events, startup
from .domain.recurrence import compute_next_occurrence, roll_forward_if_needed
from .domain.reminder_builder import build_reminders_for_event
from .domain.reminder_presets import resolve_plan
from .domain.reminder_sync import cancel_event_reminders, sync_scheduled_reminders
from .models import Event, RecurrenceRule, ReminderInstance, ReminderPlan, ReminderPreset


def _init_logging(level_name: Optional[str]) -> None:
    """Initialize root logging to stream to console.

    Installs a colorized handler only when the root logger has none, so host
    applications keep their own logging setup. CHRONOX_DEBUG (truthy values:
    "1", "true", "yes", "on") forces DEBUG.
    """
    import logging
    import os
    import sys

    from colorlog import ColoredFormatter

    debug_env = os.environ.get("CHRONOX_DEBUG", "")
    if debug_env.strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        # HH:MM:SS  LEVEL   logger.name: message, only the level colorized
        fmt = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
        log_colors = {
            "DEBUG": "cyan",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "bold_red",
        }
        handler.setFormatter(ColoredFormatter(fmt, datefmt="%H:%M:%S", log_colors=log_colors))
        root.addHandler(handler)

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
    root.setLevel(level)
    logging.getLogger(__name__).debug(
        "Logging initialized at level %s", logging.getLevelName(level)
    )


def create_context(
    storage: KeyValueStore,
    scheduler: NotificationScheduler,
    entitlements: Optional[EntitlementProvider] = None,
    clock: Optional[Clock] = None,
    env_file_path: Optional[Path] = None,
    debug_mode: bool = False,
) -> ReminderContext:
    """Set up logging and settings from the environment and build an engine context.

    Args:
        storage: Key-value store holding the event collection
        scheduler: Device notification scheduler
        entitlements: Entitlement provider (defaults to free tier)
        clock: Clock (defaults to the real-time provider)
        env_file_path: Optional .env file with CHRONOX_* defaults
        debug_mode: Enable debug logging for engine modules

    Returns:
        An initialized ReminderContext ready for ``startup``
    """
    import os

    from .reminder_logging import configure_reminder_logging

    _init_logging(os.environ.get("CHRONOX_LOG_LEVEL"))
    settings = ConfigManager(env_file_path).load_settings()
    configure_reminder_logging(debug_mode=debug_mode)

    return DependencyContainer.build_context(
        storage,
        scheduler,
        entitlements=entitlements,
        clock=clock,
        settings=settings,
    )


__all__ = [
    "Clock",
    "ConfigManager",
    "DependencyContainer",
    "Event",
    "FixedClock",
    "GuardedNotificationScheduler",
    "InMemoryKeyValueStore",
    "InMemoryNotificationScheduler",
    "JsonFileKeyValueStore",
    "RecurrenceRule",
    "RefreshResult",
    "ReminderContext",
    "ReminderInstance",
    "ReminderPlan",
    "ReminderPreset",
    "ReminderSettings",
    "StaticEntitlements",
    "TimeProvider",
    "build_reminders_for_event",
    "cancel_event_reminders",
    "compute_next_occurrence",
    "create_context",
    "migrate_events",
    "recover_legacy_notifications",
    "refresh_events",
    "resolve_plan",
    "roll_forward_if_needed",
    "run_notification_recovery",
    "startup",
    "sync_scheduled_reminders",
]
