"""
Metrics component input/output models and errors.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any

from rentpulse.core.entities import DailyCounterBucket

# --- Errors ---


class MetricsAccessError(Exception):
    """Caller-visible error from the metrics API."""

    code = "INTERNAL"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"{self.code}: {message}")


class UnauthenticatedError(MetricsAccessError):
    code = "UNAUTHENTICATED"


class InvalidArgumentError(MetricsAccessError):
    code = "INVALID_ARGUMENT"


class EntityNotFoundError(MetricsAccessError):
    code = "NOT_FOUND"


class PermissionDeniedError(MetricsAccessError):
    code = "PERMISSION_DENIED"


# --- Rollups ---


@dataclass(frozen=True)
class WindowTotals:
    """Counter sums over one trailing window."""

    views: int = 0
    unique_sessions: int = 0
    saves: int = 0
    messages: int = 0

    def plus(self, bucket: DailyCounterBucket) -> WindowTotals:
        return WindowTotals(
            views=self.views + bucket.views,
            unique_sessions=self.unique_sessions + bucket.unique_sessions,
            saves=self.saves + bucket.saves,
            messages=self.messages + bucket.messages,
        )


@dataclass(frozen=True)
class EntityRollup:
    """7d/30d rollups for one entity as of a UTC date."""

    entity_id: str
    as_of: date
    metrics_7d: WindowTotals
    metrics_30d: WindowTotals


@dataclass(frozen=True)
class ConversionRates:
    save_per_view: float = 0.0
    message_per_view: float = 0.0
    message_per_save: float = 0.0


@dataclass(frozen=True)
class Funnel:
    """View -> save -> message chain over one window."""

    views: int = 0
    saves: int = 0
    messages: int = 0
    conversion_rates: ConversionRates = field(default_factory=ConversionRates)


@dataclass(frozen=True)
class FilterUsageItem:
    key: str
    count: int


@dataclass(frozen=True)
class ListingSnapshot:
    """Current listing fields, returned for context only."""

    price: float | None = None
    deposit: float | None = None
    location: str | None = None
    title: str | None = None


# --- Input Models ---


@dataclass(frozen=True)
class GetMetricsInput:
    """
    Metrics request.

    caller_id is None for unauthenticated callers. entity_id is left
    untyped because it comes straight from the request body.
    """

    caller_id: str | None
    entity_id: Any


@dataclass(frozen=True)
class GetSummaryInput:
    caller_id: str | None
    entity_id: Any


# --- Output Models ---


@dataclass(frozen=True)
class ListingMetricsOutput:
    entity_id: str
    owner_id: str
    metrics_7d: WindowTotals
    metrics_30d: WindowTotals
    funnel_30d: Funnel


@dataclass(frozen=True)
class ListingSummaryOutput:
    entity_id: str
    owner_id: str
    window_days: int
    metrics_7d: WindowTotals
    metrics_30d: WindowTotals
    funnel_30d: Funnel
    top_filters: list[FilterUsageItem] = field(default_factory=list)
    listing_snapshot: ListingSnapshot = field(default_factory=ListingSnapshot)
