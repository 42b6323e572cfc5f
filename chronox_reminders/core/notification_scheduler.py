"""Notification scheduler contract and implementations.

The device's notification queue is the only source of truth for what is
currently scheduled. ``NotificationScheduler`` describes the four calls the
reminder engine needs from it:

- ``schedule_notification(content, fire_in_seconds) -> handle_id``
- ``cancel_scheduled_notification(handle_id)``
- ``list_all_scheduled_notifications() -> [ScheduledNotification]``
- ``request_permission() -> PermissionStatus``

``InMemoryNotificationScheduler`` implements the contract against a clock and
is used for development and tests. ``GuardedNotificationScheduler`` wraps any
implementation with a per-call timeout and bounded retry.
"""

from __future__ import annotations

import datetime
import itertools
import logging
from typing import Optional, Protocol

from ..models import (
    NotificationContent,
    NotificationTrigger,
    PermissionStatus,
    ScheduledNotification,
)
from .async_utils import retry_async, run_with_timeout
from .clock import Clock, get_default_clock
from .exceptions import SchedulerError, SchedulerTimeoutError

logger = logging.getLogger(__name__)


class NotificationScheduler(Protocol):
    """Async interface to the OS notification queue."""

    async def schedule_notification(
        self, content: NotificationContent, fire_in_seconds: int
    ) -> str: ...

    async def cancel_scheduled_notification(self, handle_id: str) -> None: ...

    async def list_all_scheduled_notifications(self) -> list[ScheduledNotification]: ...

    async def request_permission(self) -> PermissionStatus: ...


class InMemoryNotificationScheduler:
    """Clock-driven scheduler holding notifications in a dict.

    Notifications whose fire time has passed are treated as delivered and drop
    out of ``list_all_scheduled_notifications``. Call counters make it easy to
    assert how many platform calls a sync pass issued.
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        permission: PermissionStatus = PermissionStatus.GRANTED,
    ) -> None:
        self._clock = clock or get_default_clock()
        self.permission = permission
        self._queue: dict[str, ScheduledNotification] = {}
        self._ids = itertools.count(1)
        self.schedule_calls = 0
        self.cancel_calls = 0
        # reminder ids whose schedule fails, handle ids whose cancel fails
        self.fail_schedule_for: set[str] = set()
        self.fail_cancel_for: set[str] = set()

    async def request_permission(self) -> PermissionStatus:
        return PermissionStatus(self.permission)

    async def schedule_notification(self, content: NotificationContent, fire_in_seconds: int) -> str:
        self.schedule_calls += 1
        if fire_in_seconds <= 0:
            raise SchedulerError(f"fire_in_seconds must be positive, got {fire_in_seconds}")
        if content.reminder_id and content.reminder_id in self.fail_schedule_for:
            raise SchedulerError(f"schedule rejected for {content.reminder_id}")

        handle_id = f"notification-{next(self._ids)}"
        fire_at = self._clock.now() + datetime.timedelta(seconds=fire_in_seconds)
        self._queue[handle_id] = ScheduledNotification(
            handle_id=handle_id,
            content=content,
            trigger=NotificationTrigger(type="date", date=fire_at),
        )
        logger.debug("Scheduled %s in %ds", handle_id, fire_in_seconds)
        return handle_id

    async def cancel_scheduled_notification(self, handle_id: str) -> None:
        self.cancel_calls += 1
        if handle_id in self.fail_cancel_for:
            raise SchedulerError(f"cancel rejected for {handle_id}")
        self._queue.pop(handle_id, None)

    async def list_all_scheduled_notifications(self) -> list[ScheduledNotification]:
        self._purge_delivered()
        return list(self._queue.values())

    def add_existing(self, notification: ScheduledNotification) -> None:
        """Seed a notification as if an earlier app version had scheduled it."""
        self._queue[notification.handle_id] = notification

    def reset_counters(self) -> None:
        self.schedule_calls = 0
        self.cancel_calls = 0

    def _purge_delivered(self) -> None:
        now = self._clock.now()
        delivered = [
            handle_id
            for handle_id, n in self._queue.items()
            if n.trigger is not None and n.trigger.date is not None and n.trigger.date <= now
        ]
        for handle_id in delivered:
            del self._queue[handle_id]


class GuardedNotificationScheduler:
    """Wraps a scheduler so every call is time-bounded and retried.

    Exhausted retries surface as ``SchedulerRetryExhaustedError``; the caller
    decides whether that is fatal (the reconciler records it per item).
    """

    def __init__(
        self,
        inner: NotificationScheduler,
        timeout: float = 10.0,
        max_retries: int = 2,
        backoff: float = 0.5,
    ) -> None:
        self.inner = inner
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff = backoff

    async def request_permission(self) -> PermissionStatus:
        return await retry_async(
            lambda: run_with_timeout(self.inner.request_permission(), self.timeout),
            max_retries=self.max_retries,
            backoff=self.backoff,
        )

    async def schedule_notification(self, content: NotificationContent, fire_in_seconds: int) -> str:
        # Platform rejections surface immediately; only timeouts are retried.
        return await retry_async(
            lambda: run_with_timeout(
                self.inner.schedule_notification(content, fire_in_seconds), self.timeout
            ),
            max_retries=self.max_retries,
            backoff=self.backoff,
            retry_on=(SchedulerTimeoutError,),
        )

    async def cancel_scheduled_notification(self, handle_id: str) -> None:
        await retry_async(
            lambda: run_with_timeout(
                self.inner.cancel_scheduled_notification(handle_id), self.timeout
            ),
            max_retries=self.max_retries,
            backoff=self.backoff,
        )

    async def list_all_scheduled_notifications(self) -> list[ScheduledNotification]:
        return await retry_async(
            lambda: run_with_timeout(
                self.inner.list_all_scheduled_notifications(), self.timeout
            ),
            max_retries=self.max_retries,
            backoff=self.backoff,
        )
