"""Entitlement gating for Pro-only reminder features.

The billing subsystem owns purchases; the reminder engine only asks whether
the Pro tier is unlocked and, for a few features, what the tier limit is.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from ..models import Event

logger = logging.getLogger(__name__)

FREE_FEATURES: frozenset[str] = frozenset(
    {
        "unlimited_countdowns",
        "basic_reminders",
        "basic_charts",
        "search_title",
        "dark_mode",
        "icons",
        "progress_bar",
        "filters",
        "basic_sort",
        "basic_notes",
    }
)

PRO_FEATURES: frozenset[str] = frozenset(
    {
        "custom_reminders",
        "power_notes",
        "notes_search",
        "notes_overview",
        "long_notes",
        "unit_controls",
        "advanced_analytics",
        "no_ads",
    }
)

# feature -> {"free": limit, "pro": limit}; -1 means unlimited
FEATURE_LIMITS: dict[str, dict[str, int]] = {
    "notes": {"free": 100, "pro": 5000},
    "reminders": {"free": 1, "pro": -1},
}


class EntitlementProvider(Protocol):
    """What the billing layer exposes to the reminder engine."""

    @property
    def is_pro(self) -> bool: ...

    def has_feature(self, name: str) -> bool: ...


class StaticEntitlements:
    """Entitlements fixed at construction; the billing layer swaps in a new one on change."""

    def __init__(self, is_pro: bool = False) -> None:
        self._is_pro = is_pro

    @property
    def is_pro(self) -> bool:
        return self._is_pro

    def has_feature(self, name: str) -> bool:
        return has_feature(name, self._is_pro)


def has_feature(name: str, is_pro: bool) -> bool:
    """Free features are always available; everything else needs Pro."""
    if name in FREE_FEATURES:
        return True
    return is_pro


def get_limit(feature: str, is_pro: bool) -> Optional[int]:
    """Return the tier limit for ``feature``, -1 for unlimited, None if not limited."""
    limits = FEATURE_LIMITS.get(feature)
    if limits is None:
        return None
    return limits["pro" if is_pro else "free"]


def apply_notes_limit(event: Event, is_pro: bool) -> Event:
    """Truncate an event's notes to the tier's character limit.

    Returns the same object when nothing needs trimming.
    """
    limit = get_limit("notes", is_pro)
    if limit is None or limit < 0 or len(event.notes) <= limit:
        return event
    logger.debug("Truncating notes for event %s to %d characters", event.id, limit)
    return event.model_copy(update={"notes": event.notes[:limit]})
