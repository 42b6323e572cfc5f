"""Reconstruct reminder instances from notifications scheduled by older app versions.

Older versions stored a single ``notificationId`` on each event, or tagged
notifications only with ``eventId``. Recovery matches live notifications to
events by either route and records a reminder instance for each one, so the
reconciler treats the existing handle as already scheduled instead of
scheduling a duplicate. Notifications that match no event are counted and
left alone.
"""

from __future__ import annotations

import datetime
import logging
import re
from typing import Optional

from ..core.clock import Clock, get_default_clock
from ..core.config_manager import DEFAULT_EVENTS_KEY, RECOVERY_COMPLETED_KEY
from ..core.notification_scheduler import NotificationScheduler
from ..core.storage import KeyValueStore
from ..models import (
    Event,
    PermissionStatus,
    RecoveryResult,
    ReminderInstance,
    ReminderPreset,
    ScheduledNotification,
)
from .event_store import EventStore
from .reminder_builder import AT_START_LABEL

logger = logging.getLogger(__name__)

_BODY_OFFSET_RE = re.compile(r"\d+\s*(?:day|week|month|hour|minute)s?\s*(?:before|after)", re.I)
_LABEL_OFFSET_RE = re.compile(r"(\d+)\s*(minute|hour|day|week|month)s?\s*before", re.I)
_UNIT_MINUTES = {"minute": 1, "hour": 60, "day": 1440, "week": 10080, "month": 43200}


def label_offset_minutes(label: str) -> Optional[int]:
    """Offset in minutes described by a label such as "3 hours before"; None if unparseable."""
    if label == AT_START_LABEL:
        return 0
    match = _LABEL_OFFSET_RE.search(label or "")
    if match is None:
        return None
    return int(match.group(1)) * _UNIT_MINUTES[match.group(2).lower()]


def _fire_at(
    notification: ScheduledNotification, event: Event, label: str, now: datetime.datetime
) -> datetime.datetime:
    trigger = notification.trigger
    if trigger is not None and trigger.date is not None:
        return trigger.date

    # Interval triggers report the interval they were scheduled with, not the time left
    offset = label_offset_minutes(label)
    if offset is not None:
        planned = event.occurrence_at - datetime.timedelta(minutes=offset)
        if planned > now:
            return planned
    if trigger is not None and trigger.type == "timeInterval" and trigger.seconds is not None:
        return now + datetime.timedelta(seconds=trigger.seconds)
    return event.occurrence_at


def parse_type_label(title: str, body: str) -> str:
    """Best-effort offset label from notification text.

    "Party - 1 day before" -> "1 day before"; otherwise a "N unit before"
    phrase in the body; otherwise "At start".
    """
    if " - " in title:
        label = title.split(" - ", 1)[1].strip()
        if label:
            return label
    match = _BODY_OFFSET_RE.search(body or "")
    if match:
        return match.group(0)
    return AT_START_LABEL


def _recover_for_event(
    event: Event,
    live: list[ScheduledNotification],
    now: datetime.datetime,
) -> tuple[Event, int]:
    reminders = list(event.reminders)
    index_by_id = {r.id: i for i, r in enumerate(reminders)}
    known_handles = {r.notification_id for r in reminders if r.notification_id}
    count = 0

    def record(notification: ScheduledNotification, reminder_id: str, label: str) -> None:
        nonlocal count
        index_by_id[reminder_id] = len(reminders)
        reminders.append(
            ReminderInstance(
                id=reminder_id,
                event_id=event.id,
                fire_at=_fire_at(notification, event, label, now),
                type_label=label,
                enabled=True,
                notification_id=notification.handle_id,
            )
        )
        known_handles.add(notification.handle_id)
        count += 1

    # Legacy single handle stored on the event
    if event.notification_id and event.notification_id not in known_handles:
        for notification in live:
            if notification.handle_id == event.notification_id:
                record(notification, f"recovered-{notification.handle_id}", AT_START_LABEL)
                break

    # Notifications tagged with this event's id
    for notification in live:
        if notification.content.event_id != event.id or notification.handle_id in known_handles:
            continue
        reminder_id = notification.content.reminder_id
        existing = index_by_id.get(reminder_id) if reminder_id else None
        if existing is not None:
            # One handle per instance; extra handles are left for the reconciler
            if reminders[existing].notification_id is None:
                reminders[existing] = reminders[existing].model_copy(
                    update={"notification_id": notification.handle_id}
                )
                known_handles.add(notification.handle_id)
                count += 1
            continue
        label = parse_type_label(notification.content.title, notification.content.body)
        record(notification, reminder_id or f"recovered-{notification.handle_id}", label)

    if not count:
        return event, 0

    update: dict = {"reminders": reminders}
    if not event.reminder_plan.enabled:
        update["reminder_plan"] = event.reminder_plan.model_copy(
            update={"preset": ReminderPreset.SIMPLE.value, "enabled": True}
        )
        logger.info("Enabled reminder plan for event %s after recovery", event.id)
    return event.model_copy(update=update), count


async def recover_legacy_notifications(
    events: list[Event],
    scheduler: NotificationScheduler,
    clock: Optional[Clock] = None,
) -> RecoveryResult:
    """Match live device notifications to events and record them as reminders.

    Args:
        events: Current event collection (not mutated)
        scheduler: Device notification queue
        clock: Used to resolve interval triggers to absolute fire times

    Returns:
        RecoveryResult whose ``events`` holds the updated collection; on any
        failure it holds the input events unchanged.
    """
    result = RecoveryResult(events=list(events))
    clock = clock or get_default_clock()

    try:
        status = await scheduler.request_permission()
        if status != PermissionStatus.GRANTED:
            logger.info("Notification permission not granted (%s); skipping recovery", status)
            return result

        live = await scheduler.list_all_scheduled_notifications()
        if not live:
            logger.debug("No scheduled notifications to recover")
            return result

        now = clock.now()
        updated: list[Event] = []
        for event in events:
            new_event, count = _recover_for_event(event, live, now)
            result.recovered += count
            updated.append(new_event)

        matched_handles = {
            r.notification_id for e in updated for r in e.reminders if r.notification_id
        }
        unmatched = [n for n in live if n.handle_id not in matched_handles]
        for notification in unmatched:
            logger.debug(
                "Unmatched notification %s (eventId=%s, reminderId=%s)",
                notification.handle_id,
                notification.content.event_id,
                notification.content.reminder_id,
            )

        result.unmatched = len(unmatched)
        result.matched = result.recovered
        result.events = updated
        logger.info(
            "Notification recovery: recovered=%d unmatched=%d", result.recovered, result.unmatched
        )
    except Exception as e:
        logger.exception("Error recovering legacy notifications")
        result.add_error("recovery", e)
        result.recovered = result.matched = result.unmatched = 0
        result.events = list(events)

    return result


async def run_notification_recovery(
    storage: KeyValueStore,
    scheduler: NotificationScheduler,
    clock: Optional[Clock] = None,
    events_key: str = DEFAULT_EVENTS_KEY,
) -> Optional[RecoveryResult]:
    """Run recovery once per install and persist what it found.

    Returns None when recovery already completed on an earlier launch.
    The completion flag is set only when the pass finished without errors.
    """
    store = EventStore(storage, events_key)
    try:
        if await storage.get(RECOVERY_COMPLETED_KEY):
            logger.debug("Notification recovery already completed")
            return None
        events = await store.load_events()
    except Exception as e:
        logger.exception("Failed to read notification recovery state")
        result = RecoveryResult()
        result.add_error("recovery", e)
        return result

    result = await recover_legacy_notifications(events, scheduler, clock)

    if result.errors:
        return result

    try:
        if result.recovered > 0:
            if store.can_persist:
                await store.save_events(result.events)
            else:
                logger.warning("Not saving recovered events: stored collection did not load cleanly")
                return result
        await storage.set(RECOVERY_COMPLETED_KEY, "true")
    except Exception as e:
        logger.exception("Failed to persist notification recovery")
        result.add_error("recovery", e)
    return result
