"""
Window rollups over day-buckets.

Windows are whole UTC calendar dates: a bucket dated `day` is inside the
trailing N-day window ending `today` iff 0 <= (today - day).days < N.
Today is in every window; future-dated buckets are in none.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta

from rentpulse.core.entities import DailyCounterBucket, SearchFilterDaily

from .models import (
    ConversionRates,
    EntityRollup,
    FilterUsageItem,
    Funnel,
    WindowTotals,
)
from .ports import CounterStorePort


@dataclass(frozen=True)
class MetricsConfig:
    """Metrics configuration from rules."""

    short_window_days: int = 7
    long_window_days: int = 30
    top_filters_limit: int = 10


DEFAULT_CONFIG = MetricsConfig()


def in_trailing_window(day: date, today: date, days: int) -> bool:
    return 0 <= (today - day).days < days


def window_start(today: date, days: int) -> date:
    """Oldest date still inside the trailing window."""
    return today - timedelta(days=days - 1)


def sum_window(buckets: Iterable[DailyCounterBucket], today: date, days: int) -> WindowTotals:
    totals = WindowTotals()
    for bucket in buckets:
        if in_trailing_window(bucket.day, today, days):
            totals = totals.plus(bucket)
    return totals


def _ratio(numerator: int, denominator: int) -> float:
    return numerator / denominator if denominator > 0 else 0.0


def compute_funnel(totals: WindowTotals) -> Funnel:
    return Funnel(
        views=totals.views,
        saves=totals.saves,
        messages=totals.messages,
        conversion_rates=ConversionRates(
            save_per_view=_ratio(totals.saves, totals.views),
            message_per_view=_ratio(totals.messages, totals.views),
            message_per_save=_ratio(totals.messages, totals.saves),
        ),
    )


def aggregate_top_filters(
    docs: Iterable[SearchFilterDaily], today: date, days: int, limit: int
) -> list[FilterUsageItem]:
    """
    Sum per-day filter usage across the window.

    Sorted by count descending, then key ascending so ties are stable.
    """
    usage: dict[str, int] = {}
    for doc in docs:
        if not in_trailing_window(doc.day, today, days):
            continue
        for key, count in doc.filter_usage.items():
            usage[key] = usage.get(key, 0) + count

    ranked = sorted(usage.items(), key=lambda kv: (-kv[1], kv[0]))
    return [FilterUsageItem(key=k, count=c) for k, c in ranked[: max(0, limit)]]


class WindowRollupReader:
    """Read-only rollups over the counter store."""

    def __init__(self, store: CounterStorePort, config: MetricsConfig | None = None) -> None:
        self._store = store
        self._config = config or DEFAULT_CONFIG

    def read(self, entity_id: str, today: date) -> EntityRollup:
        """7d/30d sums for an entity, from a single bucket fetch."""
        long_days = self._config.long_window_days
        buckets = self._store.list_day_buckets(
            entity_id, since=today - timedelta(days=long_days)
        )
        return EntityRollup(
            entity_id=entity_id,
            as_of=today,
            metrics_7d=sum_window(buckets, today, self._config.short_window_days),
            metrics_30d=sum_window(buckets, today, long_days),
        )

    def top_filters(self, today: date) -> list[FilterUsageItem]:
        days = self._config.long_window_days
        docs = self._store.list_search_days(since=window_start(today, days), until=today)
        return aggregate_top_filters(docs, today, days, self._config.top_filters_limit)
