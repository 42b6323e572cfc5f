"""Unit tests for reminder instance building."""

import datetime

import pytest

from chronox_reminders.domain.reminder_builder import (
    build_reminders_for_event,
    collect_upcoming_reminders,
    format_offset_label,
    make_reminder_id,
    rebuild_event_reminders,
)
from chronox_reminders.models import ReminderInstance

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    "minutes,label",
    [
        (0, "At start"),
        (1, "1 minute before"),
        (45, "45 minutes before"),
        (60, "1 hour before"),
        (180, "3 hours before"),
        (1440, "1 day before"),
        (10080, "7 days before"),
    ],
)
def test_format_offset_label(minutes, label):
    assert format_offset_label(minutes) == label


def test_reminder_id_depends_on_occurrence_not_build_time():
    occurrence = datetime.datetime(2025, 7, 1, 9, 0, tzinfo=datetime.UTC)
    assert make_reminder_id("e1", 60, occurrence) == "e1_reminder_60m_20250701T090000Z"
    assert make_reminder_id("e1", 60, occurrence) == make_reminder_id("e1", 60, occurrence)


class TestBuildReminders:
    def test_intense_for_pro_builds_four_sorted_instances(self, make_event, fixed_now):
        event = make_event(date=datetime.timedelta(days=10), preset="intense")

        reminders = build_reminders_for_event(event, True, fixed_now)

        assert [r.type_label for r in reminders] == [
            "7 days before",
            "1 day before",
            "1 hour before",
            "At start",
        ]
        assert reminders[-1].fire_at == event.date
        assert all(r.enabled and r.notification_id is None for r in reminders)
        assert len({r.id for r in reminders}) == 4

    def test_pro_preset_without_entitlement_builds_at_start_only(self, make_event, fixed_now):
        event = make_event(preset="intense")
        reminders = build_reminders_for_event(event, False, fixed_now)
        assert [r.type_label for r in reminders] == ["At start"]

    def test_only_future_fire_times_kept(self, make_event, fixed_now):
        event = make_event(date=datetime.timedelta(hours=2), preset="intense")
        reminders = build_reminders_for_event(event, True, fixed_now)
        assert [r.type_label for r in reminders] == ["1 hour before", "At start"]

    def test_past_occurrence_builds_nothing(self, make_event, fixed_now):
        event = make_event(date=-datetime.timedelta(minutes=1))
        assert build_reminders_for_event(event, True, fixed_now) == []

    def test_disabled_plan_and_off_preset_build_nothing(self, make_event, fixed_now):
        assert build_reminders_for_event(make_event(enabled=False), True, fixed_now) == []
        assert build_reminders_for_event(make_event(preset="off"), True, fixed_now) == []
        assert build_reminders_for_event(None, True, fixed_now) == []

    def test_uses_next_occurrence_when_present(self, make_event, fixed_now):
        next_at = fixed_now + datetime.timedelta(days=3)
        event = make_event(date=-datetime.timedelta(days=4), recurrence="daily", next_occurrence_at=next_at)

        reminders = build_reminders_for_event(event, False, fixed_now)

        assert reminders[0].fire_at == next_at

    def test_ids_stable_across_rebuilds(self, make_event, fixed_now):
        event = make_event(preset="standard")
        first = build_reminders_for_event(event, True, fixed_now)
        second = build_reminders_for_event(event, True, fixed_now + datetime.timedelta(minutes=5))
        assert [r.id for r in first] == [r.id for r in second]


class TestRebuild:
    def test_unchanged_event_returns_same_object(self, make_event, fixed_now):
        event = make_event(preset="standard")
        event = event.model_copy(
            update={"reminders": build_reminders_for_event(event, True, fixed_now)}
        )
        assert rebuild_event_reminders(event, True, fixed_now) is event

    def test_preserves_enabled_flag_and_handle(self, make_event, fixed_now):
        event = make_event(preset="standard")
        built = build_reminders_for_event(event, True, fixed_now)
        built[0].enabled = False
        built[1].notification_id = "notification-9"
        event = event.model_copy(update={"reminders": built})

        rebuilt = rebuild_event_reminders(event, True, fixed_now)

        assert rebuilt.reminders[0].enabled is False
        assert rebuilt.reminders[1].notification_id == "notification-9"

    def test_recovered_handle_carried_over_by_fire_time(self, make_event, fixed_now):
        event = make_event(preset="simple")
        recovered = ReminderInstance(
            id="recovered-legacy-1",
            event_id=event.id,
            fire_at=event.date,
            notification_id="legacy-1",
        )
        event = event.model_copy(update={"reminders": [recovered]})

        rebuilt = rebuild_event_reminders(event, False, fixed_now)

        assert len(rebuilt.reminders) == 1
        assert rebuilt.reminders[0].id != "recovered-legacy-1"
        assert rebuilt.reminders[0].notification_id == "legacy-1"

    @pytest.mark.parametrize(
        "drift,adopted",
        [
            (datetime.timedelta(seconds=-40), True),
            (datetime.timedelta(seconds=55), True),
            (datetime.timedelta(minutes=2), False),
        ],
    )
    def test_recovered_handle_adopted_within_tolerance(self, make_event, fixed_now, drift, adopted):
        event = make_event(preset="simple")
        recovered = ReminderInstance(
            id="recovered-legacy-2",
            event_id=event.id,
            fire_at=event.date + drift,
            notification_id="legacy-2",
        )
        event = event.model_copy(update={"reminders": [recovered]})

        rebuilt = rebuild_event_reminders(event, False, fixed_now)

        expected = "legacy-2" if adopted else None
        assert [r.notification_id for r in rebuilt.reminders] == [expected]

    def test_recovered_handle_adopted_once_by_nearest(self, make_event, fixed_now):
        event = make_event(preset="standard")
        recovered = ReminderInstance(
            id="recovered-legacy-3",
            event_id=event.id,
            fire_at=event.date - datetime.timedelta(seconds=10),
            notification_id="legacy-3",
        )
        event = event.model_copy(update={"reminders": [recovered]})

        rebuilt = rebuild_event_reminders(event, True, fixed_now)

        assert [(r.type_label, r.notification_id) for r in rebuilt.reminders] == [
            ("1 day before", None),
            ("At start", "legacy-3"),
        ]

    def test_entitlement_loss_drops_pro_offsets(self, make_event, fixed_now):
        event = make_event(preset="intense")
        event = event.model_copy(
            update={"reminders": build_reminders_for_event(event, True, fixed_now)}
        )

        rebuilt = rebuild_event_reminders(event, False, fixed_now)

        assert [r.type_label for r in rebuilt.reminders] == ["At start"]


class TestCollectUpcoming:
    def test_free_tier_limited_to_seven_days_and_ten_items(self, make_event, fixed_now):
        events = [
            make_event(f"e{i}", date=datetime.timedelta(hours=6 + i)) for i in range(12)
        ]
        events.append(make_event("far", date=datetime.timedelta(days=20)))

        upcoming = collect_upcoming_reminders(events, False, fixed_now)

        assert len(upcoming) == 10
        assert [e.id for e, _ in upcoming] == [f"e{i}" for i in range(10)]

    def test_pro_sees_everything_soonest_first(self, make_event, fixed_now):
        events = [
            make_event("late", date=datetime.timedelta(days=20)),
            make_event("soon", date=datetime.timedelta(days=1)),
        ]
        upcoming = collect_upcoming_reminders(events, True, fixed_now)
        assert [e.id for e, _ in upcoming] == ["soon", "late"]

    def test_disabled_plans_excluded(self, make_event, fixed_now):
        events = [make_event(enabled=False)]
        assert collect_upcoming_reminders(events, True, fixed_now) == []
