"""
Tests for event parsing, validation and timestamp assignment.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta, timezone

import pytest

from rentpulse.components.aggregation import (
    AggregationConfig,
    assign_timestamp,
    build_event_record,
    normalize_fields,
    parse_event_type,
)
from rentpulse.core.entities import EventType
from rentpulse.core.services.analytics_whitelist import create_whitelist

NOW = datetime(2025, 3, 15, 12, 0, tzinfo=UTC)


class TestAssignTimestamp:
    """assign_timestamp(now, provided) -> (timestamp, date_key)."""

    def test_absent_uses_now(self) -> None:
        assert assign_timestamp(NOW) == (NOW, date(2025, 3, 15))

    def test_iso_string_with_z(self) -> None:
        ts, day = assign_timestamp(NOW, "2025-03-10T23:30:00Z")
        assert ts == datetime(2025, 3, 10, 23, 30, tzinfo=UTC)
        assert day == date(2025, 3, 10)

    def test_offset_converted_to_utc_date(self) -> None:
        """01:00 at +08:00 falls on the previous UTC day."""
        _, day = assign_timestamp(NOW, "2025-03-10T01:00:00+08:00")
        assert day == date(2025, 3, 9)

    def test_naive_datetime_treated_as_utc(self) -> None:
        ts, _ = assign_timestamp(NOW, datetime(2025, 3, 1, 8, 0))
        assert ts.tzinfo is not None
        assert ts == datetime(2025, 3, 1, 8, 0, tzinfo=UTC)

    def test_aware_datetime_normalized(self) -> None:
        plus_two = timezone(timedelta(hours=2))
        ts, day = assign_timestamp(NOW, datetime(2025, 3, 1, 1, 0, tzinfo=plus_two))
        assert ts == datetime(2025, 2, 28, 23, 0, tzinfo=UTC)
        assert day == date(2025, 2, 28)

    def test_epoch_seconds(self) -> None:
        ts, _ = assign_timestamp(NOW, 0)
        assert ts == datetime(1970, 1, 1, tzinfo=UTC)

    def test_store_timestamp_mapping(self) -> None:
        ts, _ = assign_timestamp(NOW, {"_seconds": 86400, "_nanoseconds": 0})
        assert ts == datetime(1970, 1, 2, tzinfo=UTC)

    @pytest.mark.parametrize("provided", ["not a date", True, [1, 2], {"seconds": "x"}])
    def test_unparseable_falls_back_to_now(self, provided: object) -> None:
        assert assign_timestamp(NOW, provided) == (NOW, NOW.date())


class TestParseEventType:
    def test_wire_values(self) -> None:
        assert parse_event_type("LISTING_VIEW") == EventType.VIEW
        assert parse_event_type("SEARCH_PERFORMED") == EventType.SEARCH

    def test_member_names(self) -> None:
        assert parse_event_type("SAVE") == EventType.SAVE

    def test_unknown(self) -> None:
        assert parse_event_type("LISTING_SHARE") is None
        assert parse_event_type(3) is None


class TestNormalizeFields:
    def test_legacy_aliases_mapped(self) -> None:
        fields = normalize_fields(
            {"listingId": "l1", "landlordId": "o1", "userId": "u1", "chatId": "c1"}
        )
        assert fields == {
            "entityId": "l1",
            "ownerId": "o1",
            "actorId": "u1",
            "conversationId": "c1",
        }

    def test_canonical_key_wins(self) -> None:
        fields = normalize_fields({"entityId": "canonical", "listingId": "legacy"})
        assert fields["entityId"] == "canonical"


class TestRequiredFields:
    """Events missing identity fields for their type are dropped."""

    @pytest.mark.parametrize(
        ("data", "missing"),
        [
            ({"eventType": "LISTING_VIEW", "entityId": "e1"}, "sessionId"),
            ({"eventType": "LISTING_VIEW", "sessionId": "s1"}, "entityId"),
            ({"eventType": "LISTING_SAVE", "entityId": "e1"}, "actorId"),
            ({"eventType": "LISTING_MESSAGE", "entityId": "e1"}, "conversationId"),
        ],
    )
    def test_missing_identity_dropped(self, data: dict, missing: str) -> None:
        record, errors = build_event_record(data, NOW)
        assert record is None
        assert [e.field_name for e in errors] == [missing]
        assert errors[0].code == "missing_field"

    def test_blank_string_counts_as_missing(self) -> None:
        record, errors = build_event_record(
            {"eventType": "LISTING_VIEW", "entityId": "e1", "sessionId": "   "}, NOW
        )
        assert record is None
        assert errors[0].field_name == "sessionId"

    def test_search_needs_actor_or_session(self) -> None:
        record, errors = build_event_record({"eventType": "SEARCH_PERFORMED"}, NOW)
        assert record is None
        assert errors[0].code == "missing_identity"

        record, errors = build_event_record(
            {"eventType": "SEARCH_PERFORMED", "sessionId": "s1"}, NOW
        )
        assert record is not None
        assert errors == []

    def test_missing_event_type(self) -> None:
        record, errors = build_event_record({"entityId": "e1"}, NOW)
        assert record is None
        assert errors[0].code == "missing_event_type"

    def test_unknown_event_type(self) -> None:
        record, errors = build_event_record({"eventType": "LISTING_SHARE"}, NOW)
        assert record is None
        assert errors[0].code == "unknown_event_type"

    def test_non_mapping_payload(self) -> None:
        record, errors = build_event_record(["LISTING_VIEW"], NOW)  # type: ignore[arg-type]
        assert record is None
        assert errors[0].code == "invalid_payload"


class TestBuildEventRecord:
    """Valid events are normalized into an EventRecord."""

    def test_view_from_legacy_client_fields(self) -> None:
        record, errors = build_event_record(
            {
                "eventType": "LISTING_VIEW",
                "listingId": " l1 ",
                "landlordId": "o1",
                "sessionId": "s1",
                "price": 9000,
                "timestamp": "2025-03-14T10:00:00Z",
            },
            NOW,
        )
        assert errors == []
        assert record is not None
        assert record.event_type == EventType.VIEW
        assert record.entity_id == "l1"
        assert record.owner_id == "o1"
        assert record.event_date == date(2025, 3, 14)
        assert record.price == 9000.0

    def test_search_fields_whitelisted(self) -> None:
        record, _ = build_event_record(
            {
                "eventType": "SEARCH_PERFORMED",
                "userId": "u1",
                "filterKeys": ["query", "INVALID_KEY", "amenity:WiFi", 7],
                "amenities": ["WiFi", "Helipad"],
                "minPrice": 1000,
                "maxPrice": "lots",
            },
            NOW,
        )
        assert record is not None
        assert record.filter_keys == ("query", "amenity:WiFi")
        assert record.amenities == frozenset({"WiFi"})
        assert record.min_price == 1000.0
        assert record.max_price is None

    def test_filter_fields_ignored_for_non_search(self) -> None:
        record, _ = build_event_record(
            {
                "eventType": "LISTING_SAVE",
                "entityId": "e1",
                "actorId": "u1",
                "filterKeys": ["query"],
            },
            NOW,
        )
        assert record is not None
        assert record.filter_keys == ()

    def test_configured_whitelist_used(self) -> None:
        config = AggregationConfig(whitelist=create_whitelist(allowed_amenities=["Rooftop"]))
        record, _ = build_event_record(
            {
                "eventType": "SEARCH_PERFORMED",
                "sessionId": "s1",
                "filterKeys": ["amenity:Rooftop", "amenity:WiFi"],
            },
            NOW,
            config,
        )
        assert record is not None
        assert record.filter_keys == ("amenity:Rooftop",)
