"""Unit tests for entitlement gating."""

import pytest

from chronox_reminders.core.entitlements import (
    StaticEntitlements,
    apply_notes_limit,
    get_limit,
    has_feature,
)

pytestmark = pytest.mark.unit


def test_feature_gating():
    assert has_feature("basic_reminders", is_pro=False)
    assert not has_feature("custom_reminders", is_pro=False)
    assert has_feature("custom_reminders", is_pro=True)
    assert StaticEntitlements(is_pro=True).has_feature("long_notes")
    assert StaticEntitlements().is_pro is False


def test_limits():
    assert get_limit("notes", is_pro=False) == 100
    assert get_limit("notes", is_pro=True) == 5000
    assert get_limit("reminders", is_pro=True) == -1
    assert get_limit("unknown", is_pro=False) is None


def test_notes_truncated_for_free_tier(make_event):
    event = make_event(notes="x" * 150)

    trimmed = apply_notes_limit(event, is_pro=False)

    assert len(trimmed.notes) == 100
    assert len(event.notes) == 150
    assert apply_notes_limit(event, is_pro=True) is event
