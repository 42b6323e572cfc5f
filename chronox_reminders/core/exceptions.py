"""Exception hierarchy for the reminder engine.

Internal helpers raise these specific types so failures can be told apart in
logs and tests. Public entry points (roll-forward, build, sync, migration,
recovery) catch them and degrade to a no-op result instead of propagating.
"""


class ReminderEngineError(Exception):
    """Base exception for all reminder engine errors."""


class StorageError(ReminderEngineError):
    """Reading or writing the key-value store failed."""


class CorruptDataError(StorageError):
    """A persisted value could not be decoded.

    Raised when:
    - The stored blob is not valid JSON
    - The JSON root has the wrong shape (e.g. an object instead of a list)
    """


class SchedulerError(ReminderEngineError):
    """The notification scheduler rejected or failed an operation."""


class SchedulerTimeoutError(SchedulerError):
    """A scheduler call did not complete within its timeout."""


class SchedulerRetryExhaustedError(SchedulerError):
    """A scheduler call kept failing after all retry attempts."""


class MigrationError(ReminderEngineError):
    """Event migration could not be completed."""


class MigrationValidationError(MigrationError):
    """Migrated data failed the integrity check.

    Raised when:
    - An event is missing a required identity field
    - The migrated event count differs from the original count
    """
