"""
Aggregation component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from rentpulse.core.entities import DedupMarkerKey, EventType

# --- Validation Error ---


@dataclass(frozen=True)
class IngestionError:
    """Reason an event was dropped at validation."""

    code: str
    message: str
    field_name: str | None = None


# --- Event Record ---


@dataclass(frozen=True)
class EventRecord:
    """
    Validated, normalized event. Immutable once built.

    timestamp is the ingestion-assigned instant; event_date is its UTC date.
    filter_keys and amenities are already whitelisted.
    """

    event_type: EventType
    timestamp: datetime
    event_date: date
    entity_id: str | None = None
    owner_id: str | None = None
    actor_id: str | None = None
    session_id: str | None = None
    conversation_id: str | None = None
    filter_keys: tuple[str, ...] = ()
    min_price: float | None = None
    max_price: float | None = None
    amenities: frozenset[str] = field(default_factory=frozenset)
    price: float | None = None


# --- Outcomes ---


class IngestOutcome(str, Enum):
    """What happened to one delivered event."""

    COUNTED = "counted"
    DUPLICATE = "duplicate"
    DROPPED_INVALID = "dropped_invalid"
    DROPPED_CONFLICT = "dropped_conflict"
    DROPPED_STORE_ERROR = "dropped_store_error"
    DROPPED_ERROR = "dropped_error"


@dataclass(frozen=True)
class ApplyResult:
    """Result of applying one record to the counter store."""

    outcome: IngestOutcome
    attempts: int = 0
    markers_created: tuple[DedupMarkerKey, ...] = ()


# --- Input Models ---


@dataclass(frozen=True)
class IngestEventInput:
    """Raw event as stored by the client (camelCase keys)."""

    data: dict[str, Any]


# --- Output Models ---


@dataclass(frozen=True)
class IngestOutput:
    """Output for one ingestion."""

    outcome: IngestOutcome
    event: EventRecord | None = None
    errors: list[IngestionError] = field(default_factory=list)
    attempts: int = 0
    markers_created: tuple[DedupMarkerKey, ...] = ()

    @property
    def accepted(self) -> bool:
        """Event passed validation."""
        return self.event is not None

    @property
    def counted(self) -> bool:
        """Event incremented at least one counter."""
        return self.outcome == IngestOutcome.COUNTED
