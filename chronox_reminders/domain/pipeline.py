"""Startup and refresh pipeline for the reminder engine.

Stages run in a fixed order over the persisted event collection:

    migrate (once per schema bump)
      -> recover legacy notifications (once per install)
      -> load -> roll forward -> rebuild reminders -> sync -> save

Usage:
    context = DependencyContainer.build_context(storage, scheduler)
    result = await startup(context)

    # later, on foreground / after an edit
    result = await refresh_events(context)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from ..core.dependencies import ReminderContext
from ..models import Event, MigrationResult, RecoveryResult, SyncResult
from .event_migration import migrate_events
from .event_store import EventStore
from .notification_recovery import run_notification_recovery
from .recurrence import roll_forward_events
from .reminder_builder import rebuild_event_reminders
from .reminder_sync import sync_scheduled_reminders

logger = logging.getLogger(__name__)


@dataclass
class RefreshResult:
    """Outcome of one pipeline run, for observability and tests."""

    success: bool = True
    events: list[Event] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    migration: Optional[MigrationResult] = None
    recovery: Optional[RecoveryResult] = None
    sync: Optional[SyncResult] = None

    # Statistics
    events_loaded: int = 0
    events_rolled: int = 0
    events_rebuilt: int = 0
    saved: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    def add_warning(self, message: str) -> None:
        """Add a warning message."""
        self.warnings.append(message)
        logger.warning("[refresh] %s", message)

    def add_error(self, message: str) -> None:
        """Add an error message and mark as failed."""
        self.errors.append(message)
        self.success = False
        logger.error("[refresh] %s", message)


async def refresh_events(
    context: ReminderContext, result: Optional[RefreshResult] = None
) -> RefreshResult:
    """Roll events forward, rebuild their reminders and sync the device queue.

    Events are saved back only when a stage changed them and the stored
    collection loaded cleanly.
    """
    result = result or RefreshResult()
    settings = context.settings
    store = EventStore(context.storage, settings.events_key)
    now = context.now()
    is_entitled = context.is_entitled

    try:
        events = await store.load_events()
    except Exception as e:
        result.add_error(f"load failed: {e}")
        return result
    result.events_loaded = len(events)

    rolled, rolled_changed = roll_forward_events(
        events, now, settings.max_roll_forward_iterations
    )
    result.events_rolled = sum(1 for new, old in zip(rolled, events) if new is not old)

    rebuilt = [rebuild_event_reminders(e, is_entitled, now) for e in rolled]
    result.events_rebuilt = sum(1 for new, old in zip(rebuilt, rolled) if new is not old)

    # Handle bookkeeping happens in place on the instances during sync
    before_sync = [e.to_storage() for e in rebuilt]
    sync = await sync_scheduled_reminders(
        rebuilt,
        is_entitled,
        context.scheduler,
        clock=context.clock,
        min_buffer_seconds=settings.min_schedule_buffer_seconds,
    )
    context.record_sync(sync)
    result.sync = sync
    for error in sync.errors:
        target = error.reminder_id or error.handle_id or "-"
        result.add_warning(f"sync {error.type} failed for {target}: {error.error}")

    changed = (
        rolled_changed
        or result.events_rebuilt > 0
        or [e.to_storage() for e in rebuilt] != before_sync
    )
    result.events = rebuilt

    if changed:
        if not store.can_persist:
            result.add_warning("stored events did not load cleanly; not saving changes")
        else:
            try:
                await store.save_events(rebuilt)
                result.saved = True
            except Exception as e:
                result.add_error(f"save failed: {e}")

    logger.info(
        "Refresh complete: events=%d rolled=%d rebuilt=%d scheduled=%d cancelled=%d saved=%s",
        result.events_loaded,
        result.events_rolled,
        result.events_rebuilt,
        sync.scheduled,
        sync.cancelled,
        result.saved,
    )
    return result


async def startup(context: ReminderContext) -> RefreshResult:
    """App-start sequence: migrate, recover legacy notifications once, then refresh."""
    context.init()
    result = RefreshResult()

    result.migration = await migrate_events(
        context.storage,
        is_entitled=context.is_entitled,
        clock=context.clock,
        settings=context.settings,
    )
    if not result.migration.succeeded:
        result.add_warning(
            f"migration {result.migration.status}: {result.migration.error or 'no detail'}"
        )

    try:
        result.recovery = await run_notification_recovery(
            context.storage,
            context.scheduler,
            clock=context.clock,
            events_key=context.settings.events_key,
        )
    except Exception as e:
        result.add_warning(f"notification recovery failed: {e}")

    return await refresh_events(context, result)
