"""Clock and datetime helpers for chronox_reminders.

Every time-dependent operation takes a clock (or an explicit ``now``) so tests
can pin the current instant. The process-wide default clock honours the
``CHRONOX_TEST_TIME`` environment variable for manual testing.
"""

from __future__ import annotations

import datetime
import logging
import os
from typing import Optional, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)


class Clock(Protocol):
    """Anything that can report the current instant."""

    def now(self) -> datetime.datetime:
        """Return the current time as an aware datetime."""
        ...


class TimeProvider:
    """Real-time clock with an environment override for testing."""

    def now(self) -> datetime.datetime:
        """Return current UTC time with tzinfo.

        Can be overridden via the CHRONOX_TEST_TIME environment variable.
        Format: ISO 8601 datetime string (e.g., "2025-10-27T08:20:00-07:00")

        Returns:
            Current time in UTC with timezone info
        """
        test_time = os.environ.get("CHRONOX_TEST_TIME")
        if test_time:
            try:
                return ensure_aware(date_parser.isoparse(test_time)).astimezone(datetime.UTC)
            except (ValueError, OverflowError) as e:
                logger.warning("Failed to parse CHRONOX_TEST_TIME=%r: %s", test_time, e)
                # Fall through to real time

        return datetime.datetime.now(datetime.UTC)


class FixedClock:
    """Clock pinned to a given instant; ``advance`` moves it forward."""

    def __init__(self, instant: datetime.datetime) -> None:
        self._instant = ensure_aware(instant)

    def now(self) -> datetime.datetime:
        return self._instant

    def set(self, instant: datetime.datetime) -> None:
        self._instant = ensure_aware(instant)

    def advance(self, **kwargs: float) -> datetime.datetime:
        """Move the clock forward by a ``timedelta(**kwargs)`` and return the new instant."""
        self._instant = self._instant + datetime.timedelta(**kwargs)
        return self._instant


_default_clock = TimeProvider()


def get_default_clock() -> Clock:
    return _default_clock


def now_utc() -> datetime.datetime:
    """Get current UTC time (convenience function).

    Returns:
        Current time in UTC
    """
    return _default_clock.now()


def ensure_aware(dt: datetime.datetime) -> datetime.datetime:
    """Attach UTC to naive datetimes; aware values pass through unchanged."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=datetime.UTC)
    return dt


def parse_iso(value: str | datetime.datetime) -> datetime.datetime:
    """Parse an ISO-8601 string into an aware datetime.

    Accepts strings with 'Z' or an explicit offset. Naive values are taken as UTC.

    Raises:
        ValueError: if the value is not a parseable ISO-8601 instant
    """
    if isinstance(value, datetime.datetime):
        return ensure_aware(value)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"not an ISO-8601 instant: {value!r}")
    return ensure_aware(date_parser.isoparse(value.strip()))


def to_iso(dt: datetime.datetime) -> str:
    """Format an instant as ISO-8601 in UTC with a trailing 'Z'."""
    utc = ensure_aware(dt).astimezone(datetime.UTC)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def resolve_zone(tz_name: Optional[str]) -> Optional[datetime.tzinfo]:
    """Return the ZoneInfo for an IANA name, or None when unknown or empty."""
    if not tz_name:
        return None
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.debug("Unknown timezone %r; using instant's own offset", tz_name)
        return None
