"""Shared fixtures for chronox_reminders tests."""

import datetime
from collections.abc import Callable, Generator
from typing import Any

import pytest

from chronox_reminders.core.clock import FixedClock
from chronox_reminders.core.notification_scheduler import InMemoryNotificationScheduler
from chronox_reminders.core.storage import InMemoryKeyValueStore
from chronox_reminders.models import Event

# 2025-06-15T12:00:00Z, a Sunday well away from DST transitions
FIXED_NOW = datetime.datetime(2025, 6, 15, 12, 0, tzinfo=datetime.UTC)


def pytest_configure(config: Any) -> None:
    """Register test markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "integration: Multi-module pipeline tests")


@pytest.fixture
def fixed_now() -> datetime.datetime:
    return FIXED_NOW


@pytest.fixture
def clock() -> FixedClock:
    """Clock pinned to FIXED_NOW; tests may advance it."""
    return FixedClock(FIXED_NOW)


@pytest.fixture
def storage() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def scheduler(clock: FixedClock) -> InMemoryNotificationScheduler:
    return InMemoryNotificationScheduler(clock)


@pytest.fixture
def make_event() -> Callable[..., Event]:
    """Factory for events; keyword arguments override the defaults.

    ``date`` may be an aware datetime or a timedelta relative to FIXED_NOW.
    """

    def _make(
        event_id: str = "evt-1",
        date: datetime.datetime | datetime.timedelta = datetime.timedelta(days=10),
        preset: str = "simple",
        enabled: bool = True,
        **overrides: Any,
    ) -> Event:
        if isinstance(date, datetime.timedelta):
            date = FIXED_NOW + date
        data: dict[str, Any] = {
            "id": event_id,
            "name": overrides.pop("name", "Trip"),
            "date": date,
            "reminder_plan": {"preset": preset, "timezone": "UTC", "enabled": enabled},
        }
        data.update(overrides)
        return Event.model_validate(data)

    return _make


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Clear CHRONOX_* overrides so host environment cannot leak into tests."""
    for name in (
        "CHRONOX_TEST_TIME",
        "CHRONOX_DEBUG",
        "CHRONOX_LOG_LEVEL",
        "CHRONOX_EVENTS_KEY",
        "CHRONOX_MIN_SCHEDULE_BUFFER_SECONDS",
        "CHRONOX_MAX_ROLL_FORWARD_ITERATIONS",
        "CHRONOX_BACKUP_RETENTION",
        "CHRONOX_SCHEDULER_TIMEOUT_SECONDS",
        "CHRONOX_SCHEDULER_MAX_RETRIES",
        "CHRONOX_DEFAULT_TIMEZONE",
    ):
        monkeypatch.delenv(name, raising=False)
    yield
