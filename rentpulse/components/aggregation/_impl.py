"""
Event parsing and validation for the aggregation engine.

Key behaviors:
- Accepts canonical camelCase keys and the mobile client's legacy aliases
- Drops events missing the identity fields required by their type
- Assigns the ingestion timestamp and its UTC day bucket
- Whitelists free-form search fields before they reach storage
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any

from rentpulse.core.entities import EventType
from rentpulse.core.services.analytics_whitelist import (
    DEFAULT_WHITELIST,
    FilterWhitelist,
    filter_amenities,
    filter_filter_keys,
)

from .models import EventRecord, IngestionError

logger = logging.getLogger(__name__)

# --- Configuration ---


@dataclass(frozen=True)
class AggregationConfig:
    """Aggregation engine configuration from rules."""

    enabled: bool = True
    whitelist: FilterWhitelist = field(default_factory=lambda: DEFAULT_WHITELIST)

    # Transaction retries (conflicts only)
    max_attempts: int = 5
    backoff_seconds: tuple[float, ...] = (0.05, 0.1, 0.2, 0.4)


DEFAULT_CONFIG = AggregationConfig()


# --- Field names ---


FIELD_ALIASES: dict[str, str] = {
    "listingId": "entityId",
    "landlordId": "ownerId",
    "userId": "actorId",
    "chatId": "conversationId",
}

# Identity fields each event type cannot be counted without.
REQUIRED_FIELDS: dict[EventType, tuple[str, ...]] = {
    EventType.VIEW: ("entityId", "sessionId"),
    EventType.SAVE: ("entityId", "actorId"),
    EventType.MESSAGE: ("entityId", "conversationId"),
}

# SEARCH needs at least one of these.
SEARCH_IDENTITY_FIELDS: tuple[str, ...] = ("actorId", "sessionId")


# --- Coercion helpers ---


def _as_id(value: Any) -> str | None:
    """Identity strings; blank counts as absent."""
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    return float(value)


def _as_str_list(value: Any) -> list[str]:
    if not isinstance(value, list | tuple | set | frozenset):
        return []
    return [v for v in value if isinstance(v, str)]


def normalize_fields(data: dict[str, Any]) -> dict[str, Any]:
    """Map legacy aliases onto canonical keys. Canonical keys win."""
    normalized = dict(data)
    for alias, canonical in FIELD_ALIASES.items():
        if alias in normalized:
            value = normalized.pop(alias)
            if normalized.get(canonical) is None:
                normalized[canonical] = value
    return normalized


# --- Event type ---


def parse_event_type(raw: Any) -> EventType | None:
    """Parse a wire value (LISTING_VIEW) or member name (VIEW)."""
    if isinstance(raw, EventType):
        return raw
    if not isinstance(raw, str):
        return None
    try:
        return EventType(raw)
    except ValueError:
        pass
    try:
        return EventType[raw]
    except KeyError:
        return None


# --- Timestamp ---


def _parse_provided(provided: Any) -> datetime | None:
    if provided is None or isinstance(provided, bool):
        return None
    if isinstance(provided, datetime):
        ts = provided
    elif isinstance(provided, int | float):
        ts = datetime.fromtimestamp(provided, tz=UTC)
    elif isinstance(provided, str):
        text = provided.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        ts = datetime.fromisoformat(text)
    elif isinstance(provided, dict):
        # Serialized store timestamp: {"seconds": .., "nanoseconds": ..}
        seconds = provided.get("seconds", provided.get("_seconds"))
        nanos = provided.get("nanoseconds", provided.get("_nanoseconds", 0)) or 0
        if not isinstance(seconds, int | float):
            return None
        ts = datetime.fromtimestamp(seconds + nanos / 1_000_000_000, tz=UTC)
    else:
        return None

    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


def assign_timestamp(now: datetime, provided: Any = None) -> tuple[datetime, date]:
    """
    Assign an event's timestamp and UTC day key.

    Uses `provided` when it parses, otherwise `now`.
    """
    try:
        ts = _parse_provided(provided)
    except (ValueError, OverflowError, OSError):
        ts = None
        logger.debug("Unparseable event timestamp %r, using ingestion time", provided)

    if ts is None:
        ts = now if now.tzinfo is not None else now.replace(tzinfo=UTC)
        ts = ts.astimezone(UTC)

    return ts, ts.date()


# --- Validation ---


def validate_required_fields(
    event_type: EventType,
    fields: dict[str, Any],
) -> list[IngestionError]:
    """Check identity fields required by the event type."""
    if event_type == EventType.SEARCH:
        if any(_as_id(fields.get(f)) for f in SEARCH_IDENTITY_FIELDS):
            return []
        return [
            IngestionError(
                code="missing_identity",
                message="SEARCH requires actorId or sessionId",
                field_name="actorId",
            )
        ]

    return [
        IngestionError(
            code="missing_field",
            message=f"{event_type.name} requires {name}",
            field_name=name,
        )
        for name in REQUIRED_FIELDS[event_type]
        if _as_id(fields.get(name)) is None
    ]


def build_event_record(
    data: dict[str, Any],
    now: datetime,
    config: AggregationConfig = DEFAULT_CONFIG,
) -> tuple[EventRecord | None, list[IngestionError]]:
    """
    Validate raw event data and build the normalized record.

    Returns (record, []) on success or (None, errors) when the event must be
    dropped.
    """
    if not isinstance(data, dict):
        return None, [IngestionError(code="invalid_payload", message="Event must be a mapping")]

    fields = normalize_fields(data)

    raw_type = fields.get("eventType")
    if raw_type is None:
        return None, [
            IngestionError(
                code="missing_event_type",
                message="eventType is required",
                field_name="eventType",
            )
        ]

    event_type = parse_event_type(raw_type)
    if event_type is None:
        return None, [
            IngestionError(
                code="unknown_event_type",
                message=f"Unknown event type: {raw_type}",
                field_name="eventType",
            )
        ]

    errors = validate_required_fields(event_type, fields)
    if errors:
        return None, errors

    timestamp, event_date = assign_timestamp(now, fields.get("timestamp"))

    filter_keys: tuple[str, ...] = ()
    amenities: frozenset[str] = frozenset()
    if event_type == EventType.SEARCH:
        filter_keys = filter_filter_keys(_as_str_list(fields.get("filterKeys")), config.whitelist)
        amenities = filter_amenities(_as_str_list(fields.get("amenities")), config.whitelist)

    record = EventRecord(
        event_type=event_type,
        timestamp=timestamp,
        event_date=event_date,
        entity_id=_as_id(fields.get("entityId")),
        owner_id=_as_id(fields.get("ownerId")),
        actor_id=_as_id(fields.get("actorId")),
        session_id=_as_id(fields.get("sessionId")),
        conversation_id=_as_id(fields.get("conversationId")),
        filter_keys=filter_keys,
        min_price=_as_number(fields.get("minPrice")),
        max_price=_as_number(fields.get("maxPrice")),
        amenities=amenities,
        price=_as_number(fields.get("price")),
    )
    return record, []


# --- Retry backoff ---


def backoff_delay(attempt: int, config: AggregationConfig = DEFAULT_CONFIG) -> float:
    """
    Delay before retrying after the given failed attempt (1-based).

    The last configured value is reused once the schedule runs out.
    """
    if not config.backoff_seconds:
        return 0.0
    index = min(max(attempt - 1, 0), len(config.backoff_seconds) - 1)
    return config.backoff_seconds[index]
