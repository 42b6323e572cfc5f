"""Infrastructure for chronox_reminders: clock, config, storage, scheduler, entitlements."""
