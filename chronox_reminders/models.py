"""Data models for countdown events and their reminders.

Persisted JSON uses the app's camelCase keys (``nextOccurrenceAt``,
``reminderPlan``, ``fireAtISO``); Python code uses snake_case attributes.
Both spellings are accepted on input.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_serializer,
)
from pydantic.alias_generators import to_camel

from .core.clock import ensure_aware, to_iso


class RecurrenceRule(str, Enum):
    """How often an event repeats."""

    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class ReminderPreset(str, Enum):
    """Reminder plan tiers. STANDARD and INTENSE require Pro."""

    OFF = "off"
    SIMPLE = "simple"
    STANDARD = "standard"
    INTENSE = "intense"


class PermissionStatus(str, Enum):
    """Notification permission state reported by the device."""

    GRANTED = "granted"
    DENIED = "denied"
    UNDETERMINED = "undetermined"


# Preset names written by older app versions
LEGACY_PRESET_ALIASES: dict[str, str] = {
    "none": "off",
    "chill": "simple",
    "custom": "standard",
}


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_aware(value) if value is not None else None


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )


class ReminderPlan(_CamelModel):
    """Declarative per-event reminder configuration."""

    preset: ReminderPreset = Field(default=ReminderPreset.OFF, description="Reminder tier")
    timezone: str = Field(default="UTC", description="IANA timezone the event was created in")
    enabled: bool = Field(default=False, description="Master switch for this event's reminders")
    custom_offsets_minutes: Optional[list[int]] = Field(
        default=None,
        description="Offsets saved with the retired custom preset; kept but not expanded",
    )

    @field_validator("preset", mode="before")
    @classmethod
    def _normalize_preset(cls, value: Any) -> Any:
        if isinstance(value, ReminderPreset) or value is None:
            return value or ReminderPreset.OFF
        name = str(value).strip().lower()
        name = LEGACY_PRESET_ALIASES.get(name, name)
        if name not in {p.value for p in ReminderPreset}:
            return ReminderPreset.OFF
        return name

    @model_serializer(mode="wrap")
    def _omit_missing_custom_offsets(self, handler: Any) -> dict[str, Any]:
        data = handler(self)
        if self.custom_offsets_minutes is None:
            data.pop("customOffsetsMinutes", None)
            data.pop("custom_offsets_minutes", None)
        return data


class ReminderInstance(_CamelModel):
    """One concrete, schedulable reminder derived from a plan and an occurrence."""

    id: str = Field(..., min_length=1, description="Stable id for (event, offset, occurrence)")
    event_id: str = Field(..., description="Owning event id")
    fire_at: datetime = Field(..., alias="fireAtISO", description="Absolute fire instant")
    type_label: str = Field(default="At start", description="Human-readable offset")
    enabled: bool = Field(default=True, description="Per-instance toggle (Pro only)")
    notification_id: Optional[str] = Field(
        default=None, description="Scheduler handle once scheduled"
    )

    @field_validator("fire_at", mode="after")
    @classmethod
    def _fire_at_aware(cls, value: datetime) -> datetime:
        return ensure_aware(value)

    @field_serializer("fire_at")
    def serialize_fire_at(self, dt: datetime) -> str:
        """Serialize fire time to ISO format."""
        return to_iso(dt)


class Event(_CamelModel):
    """A countdown event as stored in the shared event collection.

    Unknown keys written by the UI are preserved so a load/save cycle through
    this model never drops data.
    """

    model_config = ConfigDict(extra="allow")

    # Identity and display
    id: str = Field(..., min_length=1, description="Event ID")
    name: str = Field(default="", description="Display name")
    icon: str = Field(default="", description="Display glyph")
    notes: str = Field(default="", description="Free-text notes")

    # Time information
    date: datetime = Field(..., description="Base scheduled occurrence")
    recurrence: RecurrenceRule = Field(default=RecurrenceRule.NONE)
    next_occurrence_at: Optional[datetime] = Field(default=None)
    original_date_at: Optional[datetime] = Field(default=None)
    created_at: Optional[datetime] = Field(default=None)

    # Reminders
    reminder_plan: ReminderPlan = Field(default_factory=ReminderPlan)
    reminders: list[ReminderInstance] = Field(default_factory=list)

    # Legacy fields kept for migration and recovery
    template_id: Optional[str] = Field(default=None)
    reminder_preset_id: Optional[str] = Field(default=None)
    notification_id: Optional[str] = Field(default=None, description="Legacy single handle")

    @field_validator("recurrence", mode="before")
    @classmethod
    def _normalize_recurrence(cls, value: Any) -> Any:
        if value is None or value == "":
            return RecurrenceRule.NONE
        if isinstance(value, str) and value.lower() not in {r.value for r in RecurrenceRule}:
            return RecurrenceRule.NONE
        return value.lower() if isinstance(value, str) else value

    @field_validator("date", mode="after")
    @classmethod
    def _date_aware(cls, value: datetime) -> datetime:
        return ensure_aware(value)

    @field_validator("next_occurrence_at", "original_date_at", "created_at", mode="after")
    @classmethod
    def _optional_aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _aware(value)

    @property
    def occurrence_at(self) -> datetime:
        """The occurrence reminders are built against."""
        return self.next_occurrence_at or self.date

    @property
    def is_recurring(self) -> bool:
        return self.recurrence != RecurrenceRule.NONE

    @field_serializer("date")
    def serialize_date(self, dt: datetime) -> str:
        return to_iso(dt)

    @field_serializer(
        "next_occurrence_at", "original_date_at", "created_at", when_used="unless-none"
    )
    def serialize_optional_datetime(self, dt: datetime) -> str:
        """Serialize datetime fields to ISO format."""
        return to_iso(dt)

    def to_storage(self) -> dict[str, Any]:
        """Return the camelCase JSON-ready dict written to storage."""
        return self.model_dump(by_alias=True, mode="json")


# Notification scheduler records


class NotificationContent(_CamelModel):
    """Payload handed to the notification scheduler."""

    title: str = ""
    body: str = ""
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def event_id(self) -> Optional[str]:
        value = self.data.get("eventId")
        return str(value) if value else None

    @property
    def reminder_id(self) -> Optional[str]:
        value = self.data.get("reminderId")
        return str(value) if value else None


class NotificationTrigger(_CamelModel):
    """When a scheduled notification fires: an absolute date or a relative interval."""

    type: Literal["date", "timeInterval"] = "timeInterval"
    date: Optional[datetime] = None
    seconds: Optional[int] = None

    @field_validator("date", mode="after")
    @classmethod
    def _trigger_aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _aware(value)


class ScheduledNotification(_CamelModel):
    """A notification currently queued on the device."""

    handle_id: str
    content: NotificationContent = Field(default_factory=NotificationContent)
    trigger: Optional[NotificationTrigger] = None


# Operation results


class SyncError(_CamelModel):
    """One failed cancel or schedule call during sync."""

    type: Literal["cancel", "schedule", "sync", "recovery"]
    error: str
    reminder_id: Optional[str] = None
    handle_id: Optional[str] = None


class SyncResult(_CamelModel):
    """Aggregate outcome of a reconciliation pass."""

    scheduled: int = 0
    cancelled: int = 0
    errors: list[SyncError] = Field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return self.scheduled == 0 and self.cancelled == 0

    def add_error(self, error_type: str, error: Exception | str, **ids: Optional[str]) -> None:
        """Record a per-item failure."""
        self.errors.append(SyncError(type=error_type, error=str(error), **ids))


class RecoveryResult(_CamelModel):
    """Outcome of legacy notification recovery."""

    recovered: int = 0
    matched: int = 0
    unmatched: int = 0
    errors: list[SyncError] = Field(default_factory=list)
    events: list[Event] = Field(default_factory=list)

    def add_error(self, error_type: str, error: Exception | str) -> None:
        self.errors.append(SyncError(type=error_type, error=str(error)))


class MigrationStatus(str, Enum):
    """How a migration run ended."""

    ALREADY_CURRENT = "already_current"
    EMPTY = "empty"
    QUARANTINED = "quarantined"
    MIGRATED = "migrated"
    ABORTED = "aborted"
    RESTORED = "restored"
    FAILED = "failed"


class MigrationResult(_CamelModel):
    """Outcome of an event-collection migration."""

    status: MigrationStatus
    version: int
    migrated_count: int = 0
    backup_key: Optional[str] = None
    quarantine_key: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status in (
            MigrationStatus.ALREADY_CURRENT,
            MigrationStatus.EMPTY,
            MigrationStatus.QUARANTINED,
            MigrationStatus.MIGRATED,
        )
