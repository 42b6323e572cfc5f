"""Load and save the event collection stored as one JSON blob."""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError

from ..core.config_manager import DEFAULT_EVENTS_KEY
from ..core.exceptions import CorruptDataError
from ..core.storage import KeyValueStore
from ..models import Event

logger = logging.getLogger(__name__)


def decode_events_blob(blob: str) -> list[dict[str, Any]]:
    """Decode the raw collection JSON into a list of event dicts.

    Raises:
        CorruptDataError: if the blob is not JSON or its root is not a list
    """
    try:
        data = json.loads(blob)
    except ValueError as e:
        raise CorruptDataError(f"event collection is not valid JSON: {e}") from e
    if not isinstance(data, list):
        raise CorruptDataError(f"event collection root must be a list, got {type(data).__name__}")
    return data


def encode_events(events: list[Event]) -> str:
    return json.dumps([e.to_storage() for e in events], ensure_ascii=False)


class EventStore:
    """Typed access to the shared event collection.

    The collection is read and written whole; there is no locking against
    concurrent writers.
    """

    def __init__(self, storage: KeyValueStore, key: str = DEFAULT_EVENTS_KEY) -> None:
        self.storage = storage
        self.key = key
        # outcome of the last load_events(); see can_persist
        self.last_load_failed = False
        self.last_load_skipped = 0

    @property
    def can_persist(self) -> bool:
        """False when the last load dropped data that a save would overwrite."""
        return not self.last_load_failed and self.last_load_skipped == 0

    async def load_raw(self) -> list[dict[str, Any]]:
        """Return the stored event dicts; empty when nothing is stored.

        Raises:
            CorruptDataError: if the stored blob cannot be decoded
        """
        blob = await self.storage.get(self.key)
        if not blob:
            return []
        return decode_events_blob(blob)

    async def load_events(self) -> list[Event]:
        """Load events, skipping entries that fail validation.

        Corrupt or unreadable collections load as empty; the error is logged.
        """
        try:
            raw = await self.load_raw()
        except Exception as e:
            logger.error("Failed to load events from %r: %s", self.key, e)
            self.last_load_failed = True
            return []

        self.last_load_failed = False
        self.last_load_skipped = 0
        events: list[Event] = []
        for index, item in enumerate(raw):
            try:
                events.append(Event.model_validate(item))
            except ValidationError as e:
                logger.warning("Skipping invalid event at index %d: %s", index, e.errors()[:1])
                self.last_load_skipped += 1
        return events

    async def save_events(self, events: list[Event]) -> None:
        await self.storage.set(self.key, encode_events(events))
        logger.debug("Saved %d events to %r", len(events), self.key)
