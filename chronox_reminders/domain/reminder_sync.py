"""Reconcile the device's scheduled notifications with the desired reminders.

The device queue is the only trusted record of what is live. A sync pass:

1. lists every scheduled notification;
2. builds the desired set: enabled reminders of events whose plan resolves
   to something other than 'off';
3. cancels tagged notifications (those carrying a ``reminderId``) that are
   not desired, plus duplicate handles for the same reminder;
4. schedules desired reminders with no live handle, if they fire at least
   ``min_buffer_seconds`` from now, recording the handle on the instance.

Untagged notifications belong to someone else and are never touched. Each
cancel/schedule call is independent: failures are collected in the result
and the pass continues. Running a second pass with no state change issues
no scheduler calls.
"""

from __future__ import annotations

import logging
import math
from typing import Optional

from ..core.clock import Clock, get_default_clock
from ..core.notification_scheduler import NotificationScheduler
from ..models import (
    Event,
    NotificationContent,
    PermissionStatus,
    ReminderInstance,
    ReminderPreset,
    ScheduledNotification,
    SyncResult,
)
from .reminder_builder import AT_START_LABEL
from .reminder_presets import resolve_plan

logger = logging.getLogger(__name__)

MIN_SCHEDULE_BUFFER_SECONDS = 5


def build_notification_content(event: Event, reminder: ReminderInstance) -> NotificationContent:
    """Title/body shown on the device, tagged with event and reminder ids."""
    name = event.name or "Event"
    if reminder.type_label == AT_START_LABEL:
        title = name
        body = f'"{name}" is happening now!'
    else:
        title = f"{name} - {reminder.type_label}"
        body = f'"{name}" {reminder.type_label}'
    return NotificationContent(
        title=title,
        body=body,
        data={"eventId": event.id, "reminderId": reminder.id, "type": "reminder"},
    )


def _desired_reminders(
    events: list[Event], is_entitled: bool
) -> dict[str, tuple[Event, ReminderInstance]]:
    desired: dict[str, tuple[Event, ReminderInstance]] = {}
    for event in events:
        if resolve_plan(event.reminder_plan, is_entitled) == ReminderPreset.OFF:
            continue
        for reminder in event.reminders:
            if reminder.enabled and reminder.id not in desired:
                desired[reminder.id] = (event, reminder)
    return desired


def _is_stale(
    notification: ScheduledNotification,
    desired: dict[str, tuple[Event, ReminderInstance]],
) -> bool:
    target = desired.get(notification.content.reminder_id or "")
    if target is None:
        return True
    tagged_event = notification.content.event_id
    return tagged_event is not None and tagged_event != target[0].id


async def sync_scheduled_reminders(
    events: list[Event],
    is_entitled: bool,
    scheduler: NotificationScheduler,
    clock: Optional[Clock] = None,
    min_buffer_seconds: int = MIN_SCHEDULE_BUFFER_SECONDS,
) -> SyncResult:
    """Converge the scheduler's queue to the events' enabled reminders.

    Reminder instances are updated in place: ``notification_id`` is set when
    scheduled and cleared when its handle is cancelled.

    Never raises; unexpected failures are reported as a 'sync' error.
    """
    result = SyncResult()
    clock = clock or get_default_clock()

    try:
        status = await scheduler.request_permission()
        if status != PermissionStatus.GRANTED:
            logger.warning("Notification permission not granted (%s); skipping sync", status)
            return result

        live = await scheduler.list_all_scheduled_notifications()
        desired = _desired_reminders(events, is_entitled)

        # Cancellation pass
        kept: dict[str, str] = {}
        cancelled_handles: set[str] = set()
        for notification in live:
            reminder_id = notification.content.reminder_id
            if reminder_id is None:
                continue

            stale = _is_stale(notification, desired)
            if not stale and reminder_id not in kept:
                kept[reminder_id] = notification.handle_id
                continue

            try:
                await scheduler.cancel_scheduled_notification(notification.handle_id)
            except Exception as e:
                logger.warning("Failed to cancel %s: %s", notification.handle_id, e)
                result.add_error(
                    "cancel", e, reminder_id=reminder_id, handle_id=notification.handle_id
                )
                continue
            cancelled_handles.add(notification.handle_id)
            result.cancelled += 1

        if cancelled_handles:
            for event in events:
                for reminder in event.reminders:
                    if reminder.notification_id in cancelled_handles:
                        reminder.notification_id = None

        live_handles = {n.handle_id for n in live} - cancelled_handles

        # Scheduling pass
        now = clock.now()
        for reminder_id, (event, reminder) in desired.items():
            if reminder_id in kept:
                reminder.notification_id = kept[reminder_id]
                continue
            if reminder.notification_id and reminder.notification_id in live_handles:
                continue

            seconds = math.ceil((reminder.fire_at - now).total_seconds())
            if seconds < min_buffer_seconds:
                logger.debug(
                    "Skipping reminder %s: fires in %ds (< %ds buffer)",
                    reminder_id,
                    seconds,
                    min_buffer_seconds,
                )
                continue

            content = build_notification_content(event, reminder)
            try:
                handle_id = await scheduler.schedule_notification(content, seconds)
            except Exception as e:
                logger.error("Error scheduling reminder %s: %s", reminder_id, e)
                result.add_error("schedule", e, reminder_id=reminder_id)
                continue
            reminder.notification_id = handle_id
            result.scheduled += 1

    except Exception as e:
        logger.exception("Error syncing reminders")
        result.add_error("sync", e)
        return result

    if result.errors:
        logger.warning(
            "Reminder sync finished with %d error(s): scheduled=%d cancelled=%d",
            len(result.errors),
            result.scheduled,
            result.cancelled,
        )
    else:
        logger.info(
            "Reminder sync complete: scheduled=%d cancelled=%d", result.scheduled, result.cancelled
        )
    return result


async def cancel_event_reminders(event_id: str, scheduler: NotificationScheduler) -> int:
    """Cancel every scheduled notification tagged with ``event_id``.

    Returns:
        Number of notifications cancelled (0 on failure)
    """
    try:
        live = await scheduler.list_all_scheduled_notifications()
    except Exception:
        logger.exception("Error listing notifications to cancel for event %s", event_id)
        return 0

    cancelled = 0
    for notification in live:
        if notification.content.event_id != event_id:
            continue
        try:
            await scheduler.cancel_scheduled_notification(notification.handle_id)
            cancelled += 1
        except Exception as e:
            logger.error("Error cancelling notification %s: %s", notification.handle_id, e)

    logger.debug("Cancelled %d notification(s) for event %s", cancelled, event_id)
    return cancelled
