"""
Domain entities for rentpulse.

Counter-store documents written by the aggregation engine and read by the
metrics component:
- DedupMarker: "already counted" fact for one (scope, entity, dimension[, day])
- DailyCounterBucket: authoritative per-entity, per-UTC-date counters
- EntityMetricsSnapshot: lifetime totals (derived accelerator, not authoritative)
- SearchFilterDaily: per-date filter usage histogram
- ListingRecord: read-only view of the listing owned by the CRUD surface
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "DailyCounterBucket",
    "DedupMarker",
    "DedupMarkerKey",
    "EntityMetricsSnapshot",
    "EventType",
    "ListingRecord",
    "MarkerScope",
    "SearchFilterDaily",
    "latest",
]


def latest(current: datetime | None, incoming: datetime | None) -> datetime | None:
    """Merge two "last seen" timestamps; never moves backwards."""
    if current is None:
        return incoming
    if incoming is None:
        return current
    return max(current, incoming)


# --- Event types ---


class EventType(str, Enum):
    """Allowed event types (wire values)."""

    VIEW = "LISTING_VIEW"
    SAVE = "LISTING_SAVE"
    MESSAGE = "LISTING_MESSAGE"
    SEARCH = "SEARCH_PERFORMED"


# --- Dedup markers ---


class MarkerScope(str, Enum):
    """Dimension a dedup marker guards."""

    VIEW_DAY = "view_day"
    VIEW_LIFETIME = "view_lifetime"
    SAVE = "save"
    CONVERSATION = "conversation"


class DedupMarkerKey(BaseModel):
    """
    Identity of a dedup marker.

    event_date is None for global (not day-scoped) markers.
    """

    model_config = ConfigDict(frozen=True)

    scope: MarkerScope
    entity_id: str
    dimension_id: str
    event_date: date | None = None

    @property
    def day_scoped(self) -> bool:
        return self.event_date is not None

    def storage_key(self) -> str:
        """Readable form for log and error messages; not unique across ids."""
        day = self.event_date.isoformat() if self.event_date else ""
        return f"{self.scope.value}|{self.entity_id}|{self.dimension_id}|{day}"


class DedupMarker(BaseModel):
    """
    Write-once record that a dimension has been counted.

    State machine: UNSEEN -> SEEN (terminal). Never updated, never deleted.
    """

    model_config = ConfigDict(frozen=True)

    key: DedupMarkerKey
    first_seen_at: datetime
    event_date: date


# --- Counters ---


class DailyCounterBucket(BaseModel):
    """
    Per-entity, per-UTC-date counters.

    Invariants:
    - Counters are monotonically non-decreasing
    - Created on first event of the day, merged on later events
    """

    model_config = ConfigDict(frozen=True)

    entity_id: str
    day: date
    owner_id: str | None = None
    views: int = 0
    unique_sessions: int = 0
    saves: int = 0
    messages: int = 0
    last_viewed_at: datetime | None = None
    last_saved_at: datetime | None = None
    last_message_at: datetime | None = None

    def merge(
        self,
        *,
        owner_id: str | None = None,
        views: int = 0,
        unique_sessions: int = 0,
        saves: int = 0,
        messages: int = 0,
        last_viewed_at: datetime | None = None,
        last_saved_at: datetime | None = None,
        last_message_at: datetime | None = None,
    ) -> DailyCounterBucket:
        """Return a copy with counters incremented and timestamps max-merged."""
        if min(views, unique_sessions, saves, messages) < 0:
            raise ValueError("Counter increments must be non-negative")
        return self.model_copy(
            update={
                "owner_id": self.owner_id or owner_id,
                "views": self.views + views,
                "unique_sessions": self.unique_sessions + unique_sessions,
                "saves": self.saves + saves,
                "messages": self.messages + messages,
                "last_viewed_at": latest(self.last_viewed_at, last_viewed_at),
                "last_saved_at": latest(self.last_saved_at, last_saved_at),
                "last_message_at": latest(self.last_message_at, last_message_at),
            }
        )


class EntityMetricsSnapshot(BaseModel):
    """Lifetime totals and "last seen" timestamps for one entity."""

    model_config = ConfigDict(frozen=True)

    entity_id: str
    unique_session_views: int = 0
    total_saves: int = 0
    first_message_count: int = 0
    last_viewed_at: datetime | None = None
    last_viewed_date: date | None = None
    last_saved_at: datetime | None = None
    last_saved_date: date | None = None
    last_message_at: datetime | None = None
    last_message_date: date | None = None

    def record_view(self, at: datetime, day: date) -> EntityMetricsSnapshot:
        newer = latest(self.last_viewed_at, at) == at
        return self.model_copy(
            update={
                "unique_session_views": self.unique_session_views + 1,
                "last_viewed_at": latest(self.last_viewed_at, at),
                "last_viewed_date": day if newer else self.last_viewed_date,
            }
        )

    def record_save(self, at: datetime, day: date) -> EntityMetricsSnapshot:
        newer = latest(self.last_saved_at, at) == at
        return self.model_copy(
            update={
                "total_saves": self.total_saves + 1,
                "last_saved_at": latest(self.last_saved_at, at),
                "last_saved_date": day if newer else self.last_saved_date,
            }
        )

    def record_message(self, at: datetime, day: date) -> EntityMetricsSnapshot:
        newer = latest(self.last_message_at, at) == at
        return self.model_copy(
            update={
                "first_message_count": self.first_message_count + 1,
                "last_message_at": latest(self.last_message_at, at),
                "last_message_date": day if newer else self.last_message_date,
            }
        )


class SearchFilterDaily(BaseModel):
    """
    Filter usage for one UTC date.

    Keys of filter_usage are restricted to the filter whitelist.
    """

    model_config = ConfigDict(frozen=True)

    day: date
    filter_usage: dict[str, int] = Field(default_factory=dict)
    amenities_used: frozenset[str] = Field(default_factory=frozenset)
    min_price_sample: float = 0
    max_price_sample: float = 0
    last_updated_at: datetime | None = None


# --- Listings (read-only here) ---


class ListingRecord(BaseModel):
    """Listing fields needed for authorization and summary context."""

    model_config = ConfigDict(frozen=True)

    id: str
    owner_id: str | None = None
    title: str | None = None
    location: str | None = None
    price: float | None = None
    deposit: float | None = None
