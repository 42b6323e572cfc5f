"""Reminder plan presets and entitlement-aware plan resolution.

| Preset   | Offsets (minutes before occurrence) | Pro |
|----------|-------------------------------------|-----|
| off      | (none)                              | no  |
| simple   | 0                                   | no  |
| standard | 1440, 0                             | yes |
| intense  | 10080, 1440, 60, 0                  | yes |

Users without Pro who pick a Pro preset are silently downgraded to
``simple``, never to ``off``: they keep at least the at-start reminder.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..models import ReminderPlan, ReminderPreset


@dataclass(frozen=True)
class PresetDefinition:
    """Catalogue entry for a reminder preset."""

    id: ReminderPreset
    name: str
    description: str
    is_pro: bool
    offsets_minutes: tuple[int, ...]


REMINDER_PRESETS: dict[ReminderPreset, PresetDefinition] = {
    ReminderPreset.OFF: PresetDefinition(
        id=ReminderPreset.OFF,
        name="Off",
        description="No notifications scheduled",
        is_pro=False,
        offsets_minutes=(),
    ),
    ReminderPreset.SIMPLE: PresetDefinition(
        id=ReminderPreset.SIMPLE,
        name="Simple",
        description="One reminder at start time",
        is_pro=False,
        offsets_minutes=(0,),
    ),
    ReminderPreset.STANDARD: PresetDefinition(
        id=ReminderPreset.STANDARD,
        name="Standard",
        description="24 hours before + at start time",
        is_pro=True,
        offsets_minutes=(1440, 0),
    ),
    ReminderPreset.INTENSE: PresetDefinition(
        id=ReminderPreset.INTENSE,
        name="Intense",
        description="7 days, 24 hours, 1 hour before + at start time",
        is_pro=True,
        offsets_minutes=(10080, 1440, 60, 0),
    ),
}

# Non-entitled users get this instead of a Pro preset
DOWNGRADE_PRESET = ReminderPreset.SIMPLE


def _lookup(preset: ReminderPreset | str) -> Optional[PresetDefinition]:
    try:
        return REMINDER_PRESETS[ReminderPreset(preset)]
    except ValueError:
        return None


def is_preset_pro(preset: ReminderPreset | str) -> bool:
    definition = _lookup(preset)
    return definition.is_pro if definition else False


def get_preset_description(preset: ReminderPreset | str) -> str:
    definition = _lookup(preset)
    return definition.description if definition else REMINDER_PRESETS[ReminderPreset.OFF].description


def get_all_presets() -> list[PresetDefinition]:
    return list(REMINDER_PRESETS.values())


def resolve_plan(plan: Optional[ReminderPlan], is_entitled: bool) -> ReminderPreset:
    """Return the preset that actually applies to ``plan``.

    - disabled plan, missing plan or preset 'off' -> OFF
    - Pro preset without entitlement -> SIMPLE
    - otherwise the plan's own preset
    """
    if plan is None or not plan.enabled:
        return ReminderPreset.OFF

    definition = _lookup(plan.preset)
    if definition is None or definition.id == ReminderPreset.OFF:
        return ReminderPreset.OFF

    if definition.is_pro and not is_entitled:
        return DOWNGRADE_PRESET

    return definition.id


def get_offsets(preset: ReminderPreset | str) -> tuple[int, ...]:
    """Offsets in minutes before the occurrence for an already-resolved preset."""
    definition = _lookup(preset)
    return definition.offsets_minutes if definition else ()


def create_default_reminder_plan(
    preset: ReminderPreset | str = ReminderPreset.OFF, timezone: str = "UTC"
) -> ReminderPlan:
    """New-event plan: enabled unless the preset is 'off'."""
    plan = ReminderPlan(preset=preset, timezone=timezone)
    plan.enabled = plan.preset != ReminderPreset.OFF
    return plan
