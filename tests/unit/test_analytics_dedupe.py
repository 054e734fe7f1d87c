"""
Tests for dedup marker key derivation.
"""

from __future__ import annotations

from datetime import date

import pytest

from rentpulse.core.entities import EventType, MarkerScope
from rentpulse.core.services.analytics_dedupe import (
    MissingDimensionError,
    derive_marker_keys,
    save_key,
    view_day_key,
    view_lifetime_key,
)

DAY = date(2025, 3, 15)


class TestViewKeys:
    """VIEW dedups per session per day and per session globally."""

    def test_view_returns_lifetime_then_day(self) -> None:
        lifetime, day = derive_marker_keys(
            EventType.VIEW, DAY, entity_id="e1", session_id="s1"
        )
        assert lifetime.scope == MarkerScope.VIEW_LIFETIME
        assert lifetime.event_date is None
        assert not lifetime.day_scoped
        assert day.scope == MarkerScope.VIEW_DAY
        assert day.event_date == DAY
        assert day.day_scoped

    def test_same_session_other_day_differs_only_in_day_key(self) -> None:
        first = derive_marker_keys(EventType.VIEW, DAY, entity_id="e1", session_id="s1")
        second = derive_marker_keys(
            EventType.VIEW, date(2025, 3, 16), entity_id="e1", session_id="s1"
        )
        assert first[0] == second[0]
        assert first[1] != second[1]

    def test_storage_keys_are_distinct_per_scope(self) -> None:
        assert view_day_key("e1", "s1", DAY).storage_key() == "view_day|e1|s1|2025-03-15"
        assert view_lifetime_key("e1", "s1").storage_key() == "view_lifetime|e1|s1|"

    def test_missing_session_raises(self) -> None:
        with pytest.raises(MissingDimensionError) as exc:
            derive_marker_keys(EventType.VIEW, DAY, entity_id="e1")
        assert exc.value.field_name == "session_id"


class TestGlobalKeys:
    """SAVE and MESSAGE dedup globally."""

    def test_save_key_ignores_date(self) -> None:
        (a,) = derive_marker_keys(EventType.SAVE, DAY, entity_id="e1", actor_id="u1")
        (b,) = derive_marker_keys(
            EventType.SAVE, date(2025, 1, 1), entity_id="e1", actor_id="u1"
        )
        assert a == b == save_key("e1", "u1")

    def test_message_key_per_conversation(self) -> None:
        (a,) = derive_marker_keys(EventType.MESSAGE, DAY, entity_id="e1", conversation_id="c1")
        (b,) = derive_marker_keys(EventType.MESSAGE, DAY, entity_id="e1", conversation_id="c2")
        assert a.scope == MarkerScope.CONVERSATION
        assert a != b

    def test_missing_entity_raises(self) -> None:
        with pytest.raises(MissingDimensionError):
            derive_marker_keys(EventType.SAVE, DAY, actor_id="u1")


class TestSearchKeys:
    def test_search_has_no_dedup(self) -> None:
        assert derive_marker_keys(EventType.SEARCH, DAY, session_id="s1") == ()
