"""Reminder scheduling domain logic: recurrence, presets, builder, sync, recovery."""
