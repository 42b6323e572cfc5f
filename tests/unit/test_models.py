"""Unit tests for pydantic models."""

import datetime

import pytest
from pydantic import ValidationError

from chronox_reminders.models import (
    Event,
    MigrationResult,
    MigrationStatus,
    NotificationContent,
    ReminderInstance,
    ReminderPlan,
    SyncResult,
)

pytestmark = pytest.mark.unit


def test_event_accepts_camel_case_and_normalizes():
    event = Event.model_validate(
        {
            "id": "e",
            "date": "2025-05-05T10:00:00",
            "recurrence": "WEEKLY",
            "nextOccurrenceAt": "2025-05-12T10:00:00Z",
            "reminderPlan": {"preset": "chill", "enabled": True},
        }
    )

    assert event.date.tzinfo is not None
    assert event.recurrence == "weekly"
    assert event.is_recurring
    assert event.occurrence_at == datetime.datetime(2025, 5, 12, 10, tzinfo=datetime.UTC)
    assert event.reminder_plan.preset == "simple"


def test_custom_offsets_kept_on_plan():
    plan = ReminderPlan.model_validate({"preset": "custom", "customOffsetsMinutes": [30, 90]})

    assert plan.preset == "standard"
    assert plan.custom_offsets_minutes == [30, 90]
    assert plan.model_dump(by_alias=True)["customOffsetsMinutes"] == [30, 90]
    assert "customOffsetsMinutes" not in ReminderPlan(preset="simple").model_dump(by_alias=True)


def test_unknown_recurrence_treated_as_none():
    event = Event.model_validate({"id": "e", "date": "2025-05-05T10:00:00Z", "recurrence": "hourly"})
    assert event.recurrence == "none"
    assert not event.is_recurring


def test_event_requires_id_and_date():
    with pytest.raises(ValidationError):
        Event.model_validate({"name": "nameless"})
    with pytest.raises(ValidationError):
        Event.model_validate({"id": "", "date": "2025-05-05T10:00:00Z"})


def test_reminder_instance_serializes_fire_at_alias():
    reminder = ReminderInstance(
        id="r", event_id="e", fire_at=datetime.datetime(2025, 1, 2, 3, 4, 5, tzinfo=datetime.UTC)
    )
    dumped = reminder.model_dump(by_alias=True, mode="json")
    assert dumped["fireAtISO"] == "2025-01-02T03:04:05.000Z"
    assert dumped["eventId"] == "e"
    assert dumped["typeLabel"] == "At start"


def test_notification_content_tags():
    assert NotificationContent(data={"eventId": "e", "reminderId": "r"}).reminder_id == "r"
    assert NotificationContent().event_id is None


def test_result_helpers():
    result = SyncResult()
    assert result.is_noop
    result.add_error("schedule", RuntimeError("nope"), reminder_id="r")
    assert result.errors[0].error == "nope"
    assert result.errors[0].reminder_id == "r"

    assert MigrationResult(status=MigrationStatus.QUARANTINED, version=2).succeeded
    assert not MigrationResult(status=MigrationStatus.RESTORED, version=2).succeeded
