"""Dependency container for the reminder engine.

``ReminderContext`` carries the collaborators (storage, scheduler,
entitlements, clock, settings) plus the small amount of lifecycle state the
engine tracks between calls, instead of keeping it in module globals.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from typing import Optional

from ..models import SyncResult
from .clock import Clock, get_default_clock
from .config_manager import ReminderSettings
from .entitlements import EntitlementProvider, StaticEntitlements
from .notification_scheduler import GuardedNotificationScheduler, NotificationScheduler
from .storage import KeyValueStore

logger = logging.getLogger(__name__)


@dataclass
class ReminderContext:
    """Everything the startup/refresh entry points need.

    Lifecycle: build once at app start, call ``init()``, then pass the same
    context to every pipeline call.
    """

    storage: KeyValueStore
    scheduler: NotificationScheduler
    entitlements: EntitlementProvider
    clock: Clock
    settings: ReminderSettings = field(default_factory=ReminderSettings)

    # Lifecycle state
    initialized: bool = False
    last_sync_at: Optional[datetime.datetime] = None
    last_sync_result: Optional[SyncResult] = None

    @property
    def is_entitled(self) -> bool:
        return bool(self.entitlements.is_pro)

    def now(self) -> datetime.datetime:
        return self.clock.now()

    def init(self) -> None:
        """Mark the context ready; repeated calls are no-ops."""
        if self.initialized:
            return
        self.initialized = True
        logger.debug(
            "ReminderContext initialized: events_key=%s, buffer=%ds, max_iterations=%d",
            self.settings.events_key,
            self.settings.min_schedule_buffer_seconds,
            self.settings.max_roll_forward_iterations,
        )

    def record_sync(self, result: SyncResult) -> None:
        self.last_sync_at = self.clock.now()
        self.last_sync_result = result


class DependencyContainer:
    """Factory for building a ReminderContext."""

    @staticmethod
    def build_context(
        storage: KeyValueStore,
        scheduler: NotificationScheduler,
        entitlements: Optional[EntitlementProvider] = None,
        clock: Optional[Clock] = None,
        settings: Optional[ReminderSettings] = None,
        guard_scheduler: bool = True,
    ) -> ReminderContext:
        """Build a context, wrapping the scheduler with timeout/retry guards.

        Args:
            storage: Key-value store holding the event collection
            scheduler: Device notification scheduler
            entitlements: Entitlement provider (defaults to free tier)
            clock: Clock (defaults to the real-time provider)
            settings: Engine settings (defaults to ReminderSettings())
            guard_scheduler: Wrap scheduler in GuardedNotificationScheduler

        Returns:
            An initialized ReminderContext
        """
        settings = settings or ReminderSettings()
        if guard_scheduler and not isinstance(scheduler, GuardedNotificationScheduler):
            scheduler = GuardedNotificationScheduler(
                scheduler,
                timeout=settings.scheduler_timeout_seconds,
                max_retries=settings.scheduler_max_retries,
            )

        context = ReminderContext(
            storage=storage,
            scheduler=scheduler,
            entitlements=entitlements or StaticEntitlements(is_pro=False),
            clock=clock or get_default_clock(),
            settings=settings,
        )
        context.init()
        return context
