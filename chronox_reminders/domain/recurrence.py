"""Recurrence date math for repeating countdown events.

A recurring event advances by chaining single steps from its stored next
occurrence (or its base ``date``): one day, week, month or year at a time.
Month and year steps clamp to the last valid day of the target month
(Jan 31 -> Feb 28/29, Feb 29 -> Feb 28), and the clamped day carries into
later steps, so a monthly event on the 31st settles on the 28th after
February.

Arithmetic is wall-clock in the event's reminder-plan timezone when one is
given: a daily 09:00 event stays at 09:00 local time across DST changes.
"""

from __future__ import annotations

import datetime
import logging
import math
from typing import Optional

from dateutil.relativedelta import relativedelta

from ..core.clock import now_utc, parse_iso, resolve_zone
from ..models import Event, RecurrenceRule

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 100

_STEPS: dict[RecurrenceRule, relativedelta] = {
    RecurrenceRule.DAILY: relativedelta(days=1),
    RecurrenceRule.WEEKLY: relativedelta(weeks=1),
    RecurrenceRule.MONTHLY: relativedelta(months=1),
    RecurrenceRule.YEARLY: relativedelta(years=1),
}

_LABELS: dict[RecurrenceRule, str] = {
    RecurrenceRule.DAILY: "Daily",
    RecurrenceRule.WEEKLY: "Weekly",
    RecurrenceRule.MONTHLY: "Monthly",
    RecurrenceRule.YEARLY: "Yearly",
}


def _coerce_rule(rule: RecurrenceRule | str | None) -> Optional[RecurrenceRule]:
    """Return the rule as an enum member, or None for 'none'/unknown values."""
    if rule is None:
        return None
    try:
        parsed = RecurrenceRule(rule.lower() if isinstance(rule, str) else rule)
    except ValueError:
        return None
    return None if parsed == RecurrenceRule.NONE else parsed


def compute_next_occurrence(
    current: datetime.datetime | str,
    rule: RecurrenceRule | str | None,
    zone: datetime.tzinfo | str | None = None,
) -> Optional[datetime.datetime]:
    """Advance ``current`` by exactly one unit of ``rule``.

    Args:
        current: The current occurrence (aware datetime or ISO-8601 string)
        rule: daily, weekly, monthly or yearly
        zone: Timezone (tzinfo or IANA name) whose wall clock the step is
            taken in. When omitted or unknown, the step uses ``current``'s own
            offset, so a chain crossing DST keeps the UTC offset rather than
            the local time of day.

    Returns:
        The next occurrence, expressed in ``zone`` when one resolved and in
        ``current``'s timezone otherwise; None when the rule is 'none' or not
        a recognised recurrence.
    """
    parsed = _coerce_rule(rule)
    if parsed is None:
        return None
    current = parse_iso(current)
    tz = resolve_zone(zone) if isinstance(zone, str) else zone
    if tz is not None and current.tzinfo is not tz:
        current = current.astimezone(tz)
    return current + _STEPS[parsed]


def _exact_skip(current: datetime.datetime, rule: RecurrenceRule, now: datetime.datetime) -> int:
    """Number of whole steps that can be added at once and still land at or before ``now``.

    Returns 0 when a multi-step jump could differ from chaining single steps:
    monthly from day 29-31 and yearly from Feb 29 may clamp along the way.
    """
    if rule == RecurrenceRule.MONTHLY and current.day > 28:
        return 0
    if rule == RecurrenceRule.YEARLY and (current.month, current.day) == (2, 29):
        return 0

    now_local = now.astimezone(current.tzinfo)
    if rule == RecurrenceRule.MONTHLY:
        k = (now_local.year - current.year) * 12 + (now_local.month - current.month)
    elif rule == RecurrenceRule.YEARLY:
        k = now_local.year - current.year
    else:
        period_days = 7 if rule == RecurrenceRule.WEEKLY else 1
        elapsed_days = (now_local - current).total_seconds() / 86400
        k = math.floor(elapsed_days / period_days)
    return max(k - 1, 0)


def roll_forward_if_needed(
    event: Event,
    now: Optional[datetime.datetime] = None,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> Event:
    """Advance a recurring event's next occurrence past ``now``.

    Steps are chained from ``next_occurrence_at`` (falling back to ``date``)
    with :func:`compute_next_occurrence` in the plan's timezone. Runs of steps
    that cannot clamp are taken as a single jump, so events far in the past
    converge within ``max_iterations`` passes.

    Returns the *same object* when nothing changes (non-recurring event, or
    next occurrence already in the future) so callers can skip persistence
    writes with an identity check. Otherwise returns a copy with
    ``next_occurrence_at`` updated and ``original_date_at`` populated (once).

    Never raises: on unexpected data the event is returned unchanged.
    """
    rule = _coerce_rule(event.recurrence)
    if rule is None:
        return event

    try:
        now = now or now_utc()
        current = event.next_occurrence_at or event.date
        zone = resolve_zone(event.reminder_plan.timezone)

        candidate = current.astimezone(zone) if zone else current
        iterations = 0
        while candidate <= now and iterations < max_iterations:
            skip = _exact_skip(candidate, rule, now)
            if skip:
                candidate = candidate + _STEPS[rule] * skip
            else:
                candidate = compute_next_occurrence(candidate, rule, zone)
            iterations += 1

        if iterations == 0:
            return event

        if candidate <= now:
            logger.warning(
                "Max iterations (%d) reached for event %s, stopping roll-forward at %s",
                max_iterations,
                event.id,
                candidate.isoformat(),
            )

        next_occurrence = candidate.astimezone(datetime.UTC)
        logger.debug(
            "Rolled event %s forward from %s to %s (%s)",
            event.id,
            current.isoformat(),
            next_occurrence.isoformat(),
            rule.value,
        )
        return event.model_copy(
            update={
                "next_occurrence_at": next_occurrence,
                "original_date_at": event.original_date_at or event.date,
            }
        )
    except Exception:
        logger.exception("Roll-forward failed for event %s; leaving unchanged", event.id)
        return event


def roll_forward_events(
    events: list[Event],
    now: Optional[datetime.datetime] = None,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> tuple[list[Event], bool]:
    """Roll every event forward; report whether any event changed."""
    now = now or now_utc()
    rolled = [roll_forward_if_needed(e, now, max_iterations) for e in events]
    changed = any(new is not old for new, old in zip(rolled, events))
    return rolled, changed


def get_recurrence_label(rule: RecurrenceRule | str | None) -> str:
    """Human-readable label for a recurrence rule ('None' when not recurring)."""
    parsed = _coerce_rule(rule)
    return _LABELS[parsed] if parsed is not None else "None"
