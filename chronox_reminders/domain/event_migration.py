"""One-time migration of the persisted event collection to the current schema.

Safety rules:

- Gated by a version marker; a run at the current version is a no-op.
- Unparseable data is moved to a quarantine key and the primary key is
  cleared, so the app never crash-loops on it.
- The original blob is copied to a timestamped backup key before anything
  is written.
- The migrated collection is validated (identity fields present, same event
  count) before it replaces the original; a failed check leaves the original
  untouched.
- Any exception triggers a restore from the backup.
- The version marker is only written after a successful save.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from pydantic import ValidationError

from ..core.clock import Clock, get_default_clock
from ..core.config_manager import (
    MIGRATION_BACKUP_PREFIX,
    MIGRATION_QUARANTINE_PREFIX,
    MIGRATION_VERSION_KEY,
    ReminderSettings,
)
from ..core.exceptions import CorruptDataError, MigrationValidationError
from ..core.storage import KeyValueStore
from ..models import Event, MigrationResult, MigrationStatus, ReminderPlan, ReminderPreset
from .event_store import decode_events_blob
from .reminder_builder import build_reminders_for_event

logger = logging.getLogger(__name__)

# 1: notes/templateId/reminderPresetId backfill; 2: reminderPlan + reminder instances
CURRENT_MIGRATION_VERSION = 2

_LEGACY_UNIT_MINUTES = {"minutes": 1, "hours": 60, "days": 1440, "weeks": 10080}


def _legacy_offsets_minutes(reminders: Any) -> list[int]:
    """Offsets from pre-instance reminder shapes: numbers (days) or {offset, unit}."""
    if not isinstance(reminders, list):
        return []
    offsets: list[int] = []
    for item in reminders:
        if isinstance(item, bool):
            continue
        if isinstance(item, (int, float)):
            offsets.append(int(item * 1440))
        elif isinstance(item, dict) and isinstance(item.get("offset"), (int, float)):
            unit = str(item.get("unit") or "days")
            offsets.append(int(item["offset"] * _LEGACY_UNIT_MINUTES.get(unit, 1440)))
    return offsets


def _infer_preset(raw: dict[str, Any]) -> ReminderPreset:
    """Best guess at the reminder tier an old event had."""
    preset_id = raw.get("reminderPresetId")
    if preset_id:
        plan = ReminderPlan(preset=preset_id)
        if plan.preset != ReminderPreset.OFF:
            return ReminderPreset(plan.preset)

    offsets = set(_legacy_offsets_minutes(raw.get("reminders")))
    if offsets & {60, 10080}:
        return ReminderPreset.INTENSE
    if 1440 in offsets:
        return ReminderPreset.STANDARD
    if offsets or raw.get("notificationId"):
        return ReminderPreset.SIMPLE
    return ReminderPreset.OFF


def _has_instance_shape(reminders: Any) -> bool:
    return isinstance(reminders, list) and all(
        isinstance(r, dict) and r.get("id") and r.get("fireAtISO") for r in reminders
    )


def migrate_event_dict(
    raw: Any,
    is_entitled: bool,
    clock: Clock,
    default_timezone: str = "UTC",
) -> Any:
    """Backfill one stored event dict to the current schema.

    Non-dict entries are returned as-is so validation can reject them.
    """
    if not isinstance(raw, dict):
        return raw

    migrated = dict(raw)

    if migrated.get("notes") is None:
        migrated["notes"] = ""
    migrated.setdefault("templateId", None)
    migrated.setdefault("reminderPresetId", None)
    if not migrated.get("recurrence"):
        migrated["recurrence"] = "none"

    if not isinstance(migrated.get("reminderPlan"), dict):
        preset = _infer_preset(raw)
        migrated["reminderPlan"] = {
            "preset": preset.value,
            "timezone": default_timezone,
            "enabled": preset != ReminderPreset.OFF,
        }

    if not _has_instance_shape(migrated.get("reminders")):
        migrated["reminders"] = []
        try:
            event = Event.model_validate(migrated)
        except ValidationError:
            # Left for validate_migrated_events to report
            return migrated
        rebuilt = build_reminders_for_event(event, is_entitled, clock.now())
        migrated["reminders"] = [r.model_dump(by_alias=True, mode="json") for r in rebuilt]

    return migrated


def validate_migrated_events(
    original: list[Any], migrated: list[Any]
) -> tuple[list[Event], list[str]]:
    """Check migrated dicts before they are written.

    Returns:
        (parsed events, problems); the write must not happen if problems is non-empty
    """
    problems: list[str] = []
    if len(migrated) != len(original):
        problems.append(f"event count changed: {len(original)} -> {len(migrated)}")

    events: list[Event] = []
    for index, item in enumerate(migrated):
        if not isinstance(item, dict):
            problems.append(f"event {index}: not an object")
            continue
        if not item.get("id"):
            problems.append(f"event {index}: missing id")
            continue
        try:
            events.append(Event.model_validate(item))
        except ValidationError as e:
            first = e.errors()[0] if e.errors() else {}
            problems.append(f"event {item.get('id')}: {first.get('loc')} {first.get('msg')}")

    return events, problems


def _parse_version(value: Optional[str]) -> int:
    try:
        return int(value) if value else 0
    except ValueError:
        logger.warning("Ignoring unreadable migration version %r", value)
        return 0


def _backup_sort_key(key: str) -> int:
    suffix = key[len(MIGRATION_BACKUP_PREFIX):]
    return int(suffix) if suffix.isdigit() else 0


async def prune_backups(storage: KeyValueStore, keep: int) -> list[str]:
    """Delete all but the ``keep`` most recent migration backups; return removed keys."""
    try:
        keys = [k for k in await storage.list_keys() if k.startswith(MIGRATION_BACKUP_PREFIX)]
    except Exception as e:
        logger.warning("Could not list backups for pruning: %s", e)
        return []

    keys.sort(key=_backup_sort_key, reverse=True)
    removed: list[str] = []
    for key in keys[max(keep, 0):]:
        try:
            await storage.remove(key)
            removed.append(key)
        except Exception as e:
            logger.warning("Failed to prune backup %s: %s", key, e)

    if removed:
        logger.debug("Pruned %d old migration backup(s)", len(removed))
    return removed


async def _restore_backup(
    storage: KeyValueStore, events_key: str, backup_key: str, original_blob: str
) -> bool:
    """Put the pre-migration blob back, from the backup key or from memory."""
    try:
        backup = await storage.get(backup_key)
        if backup:
            await storage.set(events_key, backup)
            logger.warning("Restored events from backup %s", backup_key)
            return True
        logger.error("Backup %s is missing; trying in-memory copy", backup_key)
    except Exception:
        logger.exception("Restore from backup %s failed; trying in-memory copy", backup_key)

    try:
        await storage.set(events_key, original_blob)
        logger.warning("Restored events from in-memory copy")
        return True
    except Exception:
        logger.exception("Restore from in-memory copy failed; events may need manual recovery")
        return False


async def migrate_events(
    storage: KeyValueStore,
    is_entitled: bool = False,
    clock: Optional[Clock] = None,
    settings: Optional[ReminderSettings] = None,
) -> MigrationResult:
    """Migrate the stored event collection to ``CURRENT_MIGRATION_VERSION``.

    Never raises; the outcome is described by the returned status.
    """
    clock = clock or get_default_clock()
    settings = settings or ReminderSettings()
    events_key = settings.events_key
    version = CURRENT_MIGRATION_VERSION

    try:
        stored_version = _parse_version(await storage.get(MIGRATION_VERSION_KEY))
        if stored_version >= version:
            return MigrationResult(status=MigrationStatus.ALREADY_CURRENT, version=stored_version)

        blob = await storage.get(events_key)
        if not blob:
            await storage.set(MIGRATION_VERSION_KEY, str(version))
            logger.info("No stored events; marked migration version %d", version)
            return MigrationResult(status=MigrationStatus.EMPTY, version=version)

        stamp = str(int(clock.now().timestamp() * 1000))

        try:
            original = decode_events_blob(blob)
        except CorruptDataError as e:
            quarantine_key = f"{MIGRATION_QUARANTINE_PREFIX}{stamp}"
            await storage.set(quarantine_key, blob)
            await storage.remove(events_key)
            await storage.set(MIGRATION_VERSION_KEY, str(version))
            logger.error("Stored events are corrupt (%s); quarantined under %s", e, quarantine_key)
            return MigrationResult(
                status=MigrationStatus.QUARANTINED,
                version=version,
                quarantine_key=quarantine_key,
                error=str(e),
            )

        if not original:
            await storage.set(MIGRATION_VERSION_KEY, str(version))
            return MigrationResult(status=MigrationStatus.EMPTY, version=version)

        backup_key = f"{MIGRATION_BACKUP_PREFIX}{stamp}"
        await storage.set(backup_key, blob)
        logger.debug("Backed up %d events to %s", len(original), backup_key)
    except Exception as e:
        logger.exception("Migration setup failed; stored events left untouched")
        return MigrationResult(status=MigrationStatus.FAILED, version=version, error=str(e))

    try:
        migrated = [
            migrate_event_dict(raw, is_entitled, clock, settings.default_timezone)
            for raw in original
        ]
        events, problems = validate_migrated_events(original, migrated)
        if problems:
            raise MigrationValidationError("; ".join(problems[:5]))

        await storage.set(events_key, json.dumps([e.to_storage() for e in events]))
        await storage.set(MIGRATION_VERSION_KEY, str(version))
    except MigrationValidationError as e:
        logger.error("Migrated events failed validation, keeping original data: %s", e)
        return MigrationResult(
            status=MigrationStatus.ABORTED, version=version, backup_key=backup_key, error=str(e)
        )
    except Exception as e:
        logger.exception("Error migrating events; restoring backup")
        restored = await _restore_backup(storage, events_key, backup_key, blob)
        return MigrationResult(
            status=MigrationStatus.RESTORED if restored else MigrationStatus.FAILED,
            version=version,
            backup_key=backup_key,
            error=str(e),
        )

    await prune_backups(storage, settings.backup_retention)
    logger.info("Migrated %d events to version %d", len(events), version)
    return MigrationResult(
        status=MigrationStatus.MIGRATED,
        version=version,
        migrated_count=len(events),
        backup_key=backup_key,
    )
