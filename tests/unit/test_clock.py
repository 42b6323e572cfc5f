"""Unit tests for clock helpers."""

import datetime

import pytest

from chronox_reminders.core.clock import (
    FixedClock,
    TimeProvider,
    ensure_aware,
    parse_iso,
    resolve_zone,
    to_iso,
)

pytestmark = pytest.mark.unit

UTC = datetime.UTC


def test_time_provider_honours_test_time_override(monkeypatch):
    monkeypatch.setenv("CHRONOX_TEST_TIME", "2025-10-27T08:20:00-07:00")
    assert TimeProvider().now() == datetime.datetime(2025, 10, 27, 15, 20, tzinfo=UTC)


def test_time_provider_ignores_bad_override(monkeypatch):
    monkeypatch.setenv("CHRONOX_TEST_TIME", "yesterday-ish")
    now = TimeProvider().now()
    assert now.tzinfo is not None
    assert abs(now - datetime.datetime.now(UTC)) < datetime.timedelta(seconds=5)


def test_fixed_clock_advance():
    clock = FixedClock(datetime.datetime(2025, 1, 1))
    assert clock.now() == datetime.datetime(2025, 1, 1, tzinfo=UTC)
    assert clock.advance(hours=2) == datetime.datetime(2025, 1, 1, 2, tzinfo=UTC)


def test_parse_and_format_iso():
    parsed = parse_iso("2025-03-01T10:15:30.250Z")
    assert parsed == datetime.datetime(2025, 3, 1, 10, 15, 30, 250000, tzinfo=UTC)
    assert to_iso(parsed) == "2025-03-01T10:15:30.250Z"
    plus_two = datetime.timezone(datetime.timedelta(hours=2))
    assert to_iso(datetime.datetime(2025, 3, 1, 12, tzinfo=plus_two)) == "2025-03-01T10:00:00.000Z"
    assert ensure_aware(datetime.datetime(2025, 1, 1)).tzinfo == UTC


@pytest.mark.parametrize("value", ["", "   ", "not a date", None])
def test_parse_iso_rejects_garbage(value):
    with pytest.raises(ValueError):
        parse_iso(value)


def test_resolve_zone():
    assert resolve_zone("Europe/Berlin") is not None
    assert resolve_zone("Nowhere/Special") is None
    assert resolve_zone("") is None
