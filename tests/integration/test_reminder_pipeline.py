"""End-to-end tests for startup and refresh over real storage and scheduler fakes."""

import datetime
import json

import pytest

from chronox_reminders import create_context
from chronox_reminders.core.config_manager import (
    MIGRATION_VERSION_KEY,
    RECOVERY_COMPLETED_KEY,
)
from chronox_reminders.core.dependencies import DependencyContainer
from chronox_reminders.core.entitlements import StaticEntitlements
from chronox_reminders.core.storage import JsonFileKeyValueStore
from chronox_reminders.domain.event_migration import CURRENT_MIGRATION_VERSION
from chronox_reminders.domain.pipeline import refresh_events, startup
from chronox_reminders.domain.reminder_builder import build_reminders_for_event
from chronox_reminders.models import NotificationContent, NotificationTrigger, ScheduledNotification

pytestmark = pytest.mark.integration


def _context(storage, scheduler, clock, is_pro=True):
    return DependencyContainer.build_context(
        storage,
        scheduler,
        entitlements=StaticEntitlements(is_pro=is_pro),
        clock=clock,
    )


@pytest.mark.asyncio
async def test_standard_plan_end_to_end(make_event, storage, scheduler, clock, fixed_now):
    event = make_event(date=datetime.timedelta(days=2), preset="standard")
    await storage.set("countdowns", json.dumps([event.to_storage()]))
    await storage.set(MIGRATION_VERSION_KEY, str(CURRENT_MIGRATION_VERSION))
    context = _context(storage, scheduler, clock)

    first = await refresh_events(context)

    reminders = first.events[0].reminders
    assert [(r.type_label, r.fire_at) for r in reminders] == [
        ("1 day before", fixed_now + datetime.timedelta(days=1)),
        ("At start", fixed_now + datetime.timedelta(days=2)),
    ]
    assert first.sync.scheduled == 2
    assert first.saved
    assert len(await scheduler.list_all_scheduled_notifications()) == 2
    assert context.last_sync_result is first.sync

    scheduler.reset_counters()
    second = await refresh_events(context)

    assert second.sync.is_noop
    assert scheduler.schedule_calls == 0
    assert scheduler.cancel_calls == 0
    assert second.saved is False


def test_downgraded_intense_matches_simple(make_event, fixed_now):
    intense = build_reminders_for_event(make_event(preset="intense"), False, fixed_now)
    simple = build_reminders_for_event(make_event(preset="simple"), False, fixed_now)
    assert [(r.id, r.fire_at) for r in intense] == [(r.id, r.fire_at) for r in simple]


@pytest.mark.asyncio
async def test_startup_migrates_recovers_and_schedules_without_duplicates(
    storage, scheduler, clock, fixed_now
):
    occurrence = fixed_now + datetime.timedelta(days=3)
    legacy = [
        {
            "id": "wedding",
            "name": "Wedding",
            "date": occurrence.isoformat(),
            "notificationId": "legacy-1",
        },
        {
            "id": "weekly",
            "name": "Gym",
            "date": (fixed_now - datetime.timedelta(days=20)).isoformat(),
            "recurrence": "weekly",
            "reminderPresetId": "chill",
        },
    ]
    await storage.set("countdowns", json.dumps(legacy))
    scheduler.add_existing(
        ScheduledNotification(
            handle_id="legacy-1",
            content=NotificationContent(title="Wedding", body="It's today!"),
            trigger=NotificationTrigger(type="date", date=occurrence),
        )
    )
    context = _context(storage, scheduler, clock, is_pro=False)

    result = await startup(context)

    assert result.migration.status == "migrated"
    assert result.recovery.recovered == 1
    assert await storage.get(RECOVERY_COMPLETED_KEY) == "true"

    by_id = {e.id: e for e in result.events}
    wedding = by_id["wedding"]
    assert [r.notification_id for r in wedding.reminders] == ["legacy-1"]
    gym = by_id["weekly"]
    assert gym.next_occurrence_at > fixed_now
    assert gym.original_date_at == fixed_now - datetime.timedelta(days=20)

    # The legacy handle stands in for the wedding's at-start reminder
    live = await scheduler.list_all_scheduled_notifications()
    assert sorted(n.handle_id for n in live)[0] == "legacy-1"
    assert len(live) == 2
    assert result.sync.scheduled == 1

    saved = json.loads(await storage.get("countdowns"))
    assert {e["id"] for e in saved} == {"wedding", "weekly"}

    scheduler.reset_counters()
    again = await startup(context)
    assert again.migration.status == "already_current"
    assert again.recovery is None
    assert again.sync.is_noop


@pytest.mark.asyncio
async def test_startup_adopts_legacy_interval_notification(storage, scheduler, clock, fixed_now):
    occurrence = fixed_now + datetime.timedelta(days=3)
    legacy = [{"id": "wedding", "name": "Wedding", "date": occurrence.isoformat()}]
    await storage.set("countdowns", json.dumps(legacy))
    # Scheduled two seconds short of the occurrence by an older build
    scheduler.add_existing(
        ScheduledNotification(
            handle_id="legacy-1",
            content=NotificationContent(
                title="Wedding", body="\"Wedding\" is happening now!", data={"eventId": "wedding"}
            ),
            trigger=NotificationTrigger(type="timeInterval", seconds=259198),
        )
    )
    context = _context(storage, scheduler, clock, is_pro=False)

    result = await startup(context)

    assert result.recovery.recovered == 1
    live = await scheduler.list_all_scheduled_notifications()
    assert [n.handle_id for n in live] == ["legacy-1"]
    assert result.sync.scheduled == 0
    wedding = result.events[0]
    assert [r.notification_id for r in wedding.reminders] == ["legacy-1"]


@pytest.mark.asyncio
async def test_corrupt_store_is_quarantined_and_app_keeps_running(storage, scheduler, clock):
    await storage.set("countdowns", "[{truncated")
    context = _context(storage, scheduler, clock)

    result = await startup(context)

    assert result.migration.status == "quarantined"
    assert result.events == []
    assert await storage.get("countdowns") is None
    assert result.success


@pytest.mark.asyncio
async def test_rolled_event_gets_fresh_reminders_after_time_passes(
    make_event, storage, scheduler, clock, fixed_now
):
    event = make_event(date=datetime.timedelta(hours=1), recurrence="daily")
    await storage.set("countdowns", json.dumps([event.to_storage()]))
    await storage.set(MIGRATION_VERSION_KEY, str(CURRENT_MIGRATION_VERSION))
    context = _context(storage, scheduler, clock)
    first = await refresh_events(context)
    old_id = first.events[0].reminders[0].id

    clock.advance(hours=2)
    second = await refresh_events(context)

    rolled = second.events[0]
    assert rolled.next_occurrence_at == fixed_now + datetime.timedelta(days=1, hours=1)
    assert rolled.reminders[0].id != old_id
    assert second.sync.scheduled == 1
    live = await scheduler.list_all_scheduled_notifications()
    assert [n.content.reminder_id for n in live] == [rolled.reminders[0].id]


@pytest.mark.asyncio
async def test_create_context_reads_settings_and_json_store(tmp_path, monkeypatch, scheduler, clock):
    monkeypatch.setenv("CHRONOX_EVENTS_KEY", "my_events")
    storage = JsonFileKeyValueStore(tmp_path / "store.json")

    context = create_context(storage, scheduler, clock=clock, env_file_path=tmp_path / ".env")
    result = await startup(context)

    assert context.settings.events_key == "my_events"
    assert context.initialized
    assert result.migration.status == "empty"
    assert await JsonFileKeyValueStore(tmp_path / "store.json").get(MIGRATION_VERSION_KEY) == str(
        CURRENT_MIGRATION_VERSION
    )
