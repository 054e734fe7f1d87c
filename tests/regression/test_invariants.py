"""
Cross-cutting invariants of the counter pipeline.

Each test drives events end to end through the ingestion entry point and
checks a property that must hold whatever the delivery order.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta

import pytest

from rentpulse.adapters.clock import FixedClock
from rentpulse.adapters.memory_store import InMemoryCounterStore
from rentpulse.components.aggregation import IngestEventInput, IngestOutcome, run_ingest
from rentpulse.core.services.analytics_dedupe import (
    conversation_key,
    save_key,
    view_day_key,
    view_lifetime_key,
)

NOW = datetime(2025, 3, 15, 12, 0, tzinfo=UTC)


def ingest(store, clock, data):  # type: ignore[no-untyped-def]
    return run_ingest(
        IngestEventInput(data=data), store=store, time_port=clock, sleep=lambda _: None
    )


class TestMarkersPairedWithCounters:
    """A counter increment and its dedup marker are written together."""

    def test_every_counted_event_leaves_markers(
        self, memory_store: InMemoryCounterStore, clock: FixedClock, event
    ) -> None:
        ingest(memory_store, clock, event("LISTING_VIEW", sessionId="s1"))
        ingest(memory_store, clock, event("LISTING_SAVE", actorId="u1"))
        ingest(memory_store, clock, event("LISTING_MESSAGE", conversationId="c1"))

        today = clock.today_utc()
        for key in (
            view_day_key("listing-1", "s1", today),
            view_lifetime_key("listing-1", "s1"),
            save_key("listing-1", "u1"),
            conversation_key("listing-1", "c1"),
        ):
            assert memory_store.get_marker(key) is not None

        bucket = memory_store.get_day_bucket("listing-1", today)
        assert bucket is not None
        assert (bucket.views, bucket.saves, bucket.messages) == (1, 1, 1)

    def test_failed_commit_leaves_neither(
        self, memory_store: InMemoryCounterStore, clock: FixedClock, event
    ) -> None:
        def boom() -> None:
            raise RuntimeError("crash before commit")

        memory_store.before_commit = boom
        out = ingest(memory_store, clock, event("LISTING_SAVE", actorId="u1"))

        assert out.outcome == IngestOutcome.DROPPED_ERROR
        assert memory_store.get_marker(save_key("listing-1", "u1")) is None
        assert memory_store.get_day_bucket("listing-1", clock.today_utc()) is None


class TestCountersNeverDecrease:
    def test_mixed_redelivery_is_monotonic(
        self, memory_store: InMemoryCounterStore, clock: FixedClock, event
    ) -> None:
        deliveries = [
            event("LISTING_VIEW", sessionId="s1"),
            event("LISTING_SAVE", actorId="u1"),
            event("LISTING_VIEW", sessionId="s1"),
            event("LISTING_VIEW", sessionId="s2"),
            event("LISTING_SAVE", actorId="u1"),
            event("LISTING_MESSAGE", conversationId="c1"),
            event("LISTING_MESSAGE", conversationId="c1"),
        ]
        previous = (0, 0, 0, 0)
        for data in deliveries:
            ingest(memory_store, clock, data)
            bucket = memory_store.get_day_bucket("listing-1", clock.today_utc())
            assert bucket is not None
            current = (bucket.views, bucket.unique_sessions, bucket.saves, bucket.messages)
            assert all(c >= p for c, p in zip(current, previous, strict=True))
            previous = current

        assert previous == (2, 2, 1, 1)


class TestDayBucketing:
    def test_event_timestamp_picks_the_bucket(
        self, memory_store: InMemoryCounterStore, clock: FixedClock, event
    ) -> None:
        late = NOW.replace(hour=0, minute=0) - timedelta(seconds=1)
        ingest(memory_store, clock, event("LISTING_VIEW", sessionId="s1", timestamp=late.isoformat()))

        yesterday = clock.today_utc() - timedelta(days=1)
        assert memory_store.get_day_bucket("listing-1", yesterday) is not None
        assert memory_store.get_day_bucket("listing-1", clock.today_utc()) is None

    def test_same_session_counts_once_per_day(
        self, memory_store: InMemoryCounterStore, clock: FixedClock, event
    ) -> None:
        yesterday = (NOW - timedelta(days=1)).isoformat()
        ingest(memory_store, clock, event("LISTING_VIEW", sessionId="s1", timestamp=yesterday))
        ingest(memory_store, clock, event("LISTING_VIEW", sessionId="s1"))

        today = clock.today_utc()
        for day in (today - timedelta(days=1), today):
            bucket = memory_store.get_day_bucket("listing-1", day)
            assert bucket is not None
            assert bucket.views == 1
        snapshot = memory_store.get_snapshot("listing-1")
        assert snapshot is not None
        assert snapshot.unique_session_views == 1


class TestFilterWhitelist:
    @pytest.mark.parametrize("bad_key", ["INVALID_KEY", "amenity:Helipad", "", "amenity:"])
    def test_unknown_keys_never_stored(
        self, memory_store: InMemoryCounterStore, clock: FixedClock, event, bad_key: str
    ) -> None:
        ingest(
            memory_store,
            clock,
            event("SEARCH_PERFORMED", sessionId="s1", filterKeys=["query", bad_key]),
        )

        (doc,) = memory_store.list_search_days(clock.today_utc(), clock.today_utc())
        assert bad_key not in doc.filter_usage
        assert doc.filter_usage["query"] == 1


class TestConcurrentDelivery:
    def test_racing_duplicates_count_once(
        self, memory_store: InMemoryCounterStore, clock: FixedClock, event
    ) -> None:
        """Two deliveries that both read before either commits still count once."""
        barrier = threading.Barrier(2, timeout=5)
        calls = 0
        calls_lock = threading.Lock()

        def hold_first_two() -> None:
            nonlocal calls
            with calls_lock:
                calls += 1
                n = calls
            if n <= 2:
                barrier.wait()

        memory_store.before_commit = hold_first_two
        data = event("LISTING_SAVE", actorId="u1")

        with ThreadPoolExecutor(max_workers=2) as pool:
            outcomes = sorted(
                pool.map(lambda _: ingest(memory_store, clock, dict(data)).outcome, range(2)),
                key=lambda o: o.value,
            )

        assert outcomes == [IngestOutcome.COUNTED, IngestOutcome.DUPLICATE]
        bucket = memory_store.get_day_bucket("listing-1", clock.today_utc())
        assert bucket is not None
        assert bucket.saves == 1
        assert memory_store.conflict_count == 1
