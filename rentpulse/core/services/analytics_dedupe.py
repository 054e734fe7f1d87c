"""
Dedup key deriver - the identity that must not be counted twice.

Key behaviors:
- VIEW: (entity, session) per UTC day for daily stats, plus (entity, session)
  globally for the lifetime unique-session counter
- SAVE: (entity, actor) globally; repeated saves never re-increment
- MESSAGE: (entity, conversation) globally; counts the first message only
- SEARCH: no dedup, every valid search contributes
"""

from __future__ import annotations

from datetime import date, datetime

from rentpulse.core.entities import DedupMarker, DedupMarkerKey, EventType, MarkerScope


class MissingDimensionError(ValueError):
    """Raised when an identity field required for dedup is absent."""

    def __init__(self, event_type: EventType, field_name: str) -> None:
        self.event_type = event_type
        self.field_name = field_name
        super().__init__(f"{event_type.value} requires {field_name} for dedup")


def _require(value: str | None, event_type: EventType, field_name: str) -> str:
    if not value:
        raise MissingDimensionError(event_type, field_name)
    return value


def view_day_key(entity_id: str, session_id: str, event_date: date) -> DedupMarkerKey:
    return DedupMarkerKey(
        scope=MarkerScope.VIEW_DAY,
        entity_id=entity_id,
        dimension_id=session_id,
        event_date=event_date,
    )


def view_lifetime_key(entity_id: str, session_id: str) -> DedupMarkerKey:
    return DedupMarkerKey(
        scope=MarkerScope.VIEW_LIFETIME,
        entity_id=entity_id,
        dimension_id=session_id,
    )


def save_key(entity_id: str, actor_id: str) -> DedupMarkerKey:
    return DedupMarkerKey(scope=MarkerScope.SAVE, entity_id=entity_id, dimension_id=actor_id)


def conversation_key(entity_id: str, conversation_id: str) -> DedupMarkerKey:
    return DedupMarkerKey(
        scope=MarkerScope.CONVERSATION,
        entity_id=entity_id,
        dimension_id=conversation_id,
    )


def derive_marker_keys(
    event_type: EventType,
    event_date: date,
    entity_id: str | None = None,
    session_id: str | None = None,
    actor_id: str | None = None,
    conversation_id: str | None = None,
) -> tuple[DedupMarkerKey, ...]:
    """
    Derive the dedup marker keys guarding an event's counters.

    For VIEW the lifetime key comes first, then the day key.
    SEARCH returns an empty tuple.
    """
    if event_type == EventType.SEARCH:
        return ()

    entity = _require(entity_id, event_type, "entity_id")

    if event_type == EventType.VIEW:
        session = _require(session_id, event_type, "session_id")
        return (
            view_lifetime_key(entity, session),
            view_day_key(entity, session, event_date),
        )
    if event_type == EventType.SAVE:
        return (save_key(entity, _require(actor_id, event_type, "actor_id")),)
    if event_type == EventType.MESSAGE:
        return (conversation_key(entity, _require(conversation_id, event_type, "conversation_id")),)

    msg = f"Unknown event type: {event_type}"
    raise ValueError(msg)


def new_marker(key: DedupMarkerKey, at: datetime, event_date: date) -> DedupMarker:
    """Build the marker recording that key was first seen at `at`."""
    return DedupMarker(key=key, first_seen_at=at, event_date=event_date)
