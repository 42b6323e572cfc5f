"""Build concrete reminder instances from an event's reminder plan."""

from __future__ import annotations

import datetime
import logging
from typing import Optional

from ..core.clock import now_utc
from ..models import Event, ReminderInstance
from .reminder_presets import get_offsets, resolve_plan

logger = logging.getLogger(__name__)

AT_START_LABEL = "At start"

# Largest fire-time gap at which a rebuilt reminder takes over a recovered handle
RECOVERED_HANDLE_TOLERANCE = datetime.timedelta(minutes=1)

# Display limits for the free tier's upcoming-reminders list
FREE_REMINDERS_MAX_DAYS = 7
FREE_REMINDERS_MAX_COUNT = 10


def format_offset_label(offset_minutes: int) -> str:
    """Describe an offset: 'At start', 'N minute(s)/hour(s)/day(s) before'."""
    if offset_minutes <= 0:
        return AT_START_LABEL
    if offset_minutes < 60:
        value, unit = offset_minutes, "minute"
    elif offset_minutes < 1440:
        value, unit = offset_minutes // 60, "hour"
    else:
        value, unit = offset_minutes // 1440, "day"
    return f"{value} {unit}{'' if value == 1 else 's'} before"


def make_reminder_id(event_id: str, offset_minutes: int, occurrence: datetime.datetime) -> str:
    """Stable id for one offset of one occurrence.

    Rebuilding against the same occurrence yields the same id; a new
    occurrence (roll-forward or edited date) yields new ids.
    """
    stamp = occurrence.astimezone(datetime.UTC).strftime("%Y%m%dT%H%M%SZ")
    return f"{event_id}_reminder_{offset_minutes}m_{stamp}"


def build_reminders_for_event(
    event: Optional[Event],
    is_entitled: bool,
    now: Optional[datetime.datetime] = None,
) -> list[ReminderInstance]:
    """Expand an event's reminder plan into future reminder instances.

    Args:
        event: Event with its (possibly rolled-forward) occurrence
        is_entitled: Whether the user has Pro
        now: Reference instant for the future-only filter

    Returns:
        Instances sorted by fire time; empty when the occurrence has passed,
        the plan resolves to 'off', or the event is unusable.
    """
    if event is None:
        return []

    try:
        now = now or now_utc()
        occurrence = event.occurrence_at
        if occurrence < now:
            return []

        preset = resolve_plan(event.reminder_plan, is_entitled)
        reminders: list[ReminderInstance] = []
        for offset in get_offsets(preset):
            fire_at = occurrence - datetime.timedelta(minutes=offset)
            if fire_at <= now:
                continue
            reminders.append(
                ReminderInstance(
                    id=make_reminder_id(event.id, offset, occurrence),
                    event_id=event.id,
                    fire_at=fire_at,
                    type_label=format_offset_label(offset),
                    enabled=True,
                    notification_id=None,
                )
            )
    except Exception:
        logger.exception("Failed to build reminders for event %s", getattr(event, "id", "?"))
        return []

    reminders.sort(key=lambda r: r.fire_at)
    return reminders


def _nearest_within_tolerance(
    reminder: ReminderInstance, candidates: list[ReminderInstance]
) -> Optional[ReminderInstance]:
    best = min(candidates, key=lambda c: abs(c.fire_at - reminder.fire_at))
    if abs(best.fire_at - reminder.fire_at) <= RECOVERED_HANDLE_TOLERANCE:
        return best
    return None


def rebuild_event_reminders(
    event: Event,
    is_entitled: bool,
    now: Optional[datetime.datetime] = None,
) -> Event:
    """Return a copy of ``event`` with freshly built reminders.

    Instances whose id survives the rebuild keep their ``enabled`` flag and
    scheduler handle, so per-reminder toggles and live notifications carry
    over. Instances with an unknown id that fire within
    ``RECOVERED_HANDLE_TOLERANCE`` of a new instance (recovered legacy
    notifications) hand their scheduler handle to the nearest one.
    Returns the same object when the reminder list is unchanged.
    """
    previous = {r.id: r for r in event.reminders}
    rebuilt = build_reminders_for_event(event, is_entitled, now)
    rebuilt_ids = {r.id for r in rebuilt}
    orphaned = [r for r in event.reminders if r.notification_id and r.id not in rebuilt_ids]
    for reminder in rebuilt:
        old = previous.get(reminder.id)
        if old is not None:
            reminder.enabled = old.enabled
            reminder.notification_id = old.notification_id
        if reminder.notification_id is None and orphaned:
            legacy = _nearest_within_tolerance(reminder, orphaned)
            if legacy is not None:
                reminder.notification_id = legacy.notification_id
                orphaned.remove(legacy)

    if [r.model_dump() for r in rebuilt] == [r.model_dump() for r in event.reminders]:
        return event
    return event.model_copy(update={"reminders": rebuilt})


def collect_upcoming_reminders(
    events: list[Event],
    is_entitled: bool,
    now: Optional[datetime.datetime] = None,
) -> list[tuple[Event, ReminderInstance]]:
    """Future reminders across all events, soonest first.

    Free users see reminders up to the end of day ``FREE_REMINDERS_MAX_DAYS``
    from now, capped at ``FREE_REMINDERS_MAX_COUNT`` entries.
    """
    now = now or now_utc()
    upcoming: list[tuple[Event, ReminderInstance]] = []
    for event in events:
        if not event.reminder_plan.enabled:
            continue
        reminders = event.reminders or build_reminders_for_event(event, is_entitled, now)
        for reminder in reminders:
            if reminder.fire_at <= now:
                continue
            if reminder.enabled or is_entitled:
                upcoming.append((event, reminder))

    upcoming.sort(key=lambda pair: pair[1].fire_at)
    if is_entitled:
        return upcoming

    cutoff_day = (now + datetime.timedelta(days=FREE_REMINDERS_MAX_DAYS)).date()
    within_window = [
        pair for pair in upcoming if pair[1].fire_at.astimezone(now.tzinfo).date() <= cutoff_day
    ]
    return within_window[:FREE_REMINDERS_MAX_COUNT]
