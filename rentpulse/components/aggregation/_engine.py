"""
AggregationEngine - applies one validated event to the counter store.

Key behaviors:
- Dedup markers are read and created in the same transaction as the
  counters they guard, so "marker exists" and "counter incremented" are
  never observably inconsistent
- Every handler issues all of its reads before its first write
- Two concurrent deliveries of the same logical event increment once
- Conflicts are retried with bounded attempts and backoff; store failures
  drop the event (logged) and never propagate to the ingestion path
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from rentpulse.core.entities import (
    DailyCounterBucket,
    DedupMarkerKey,
    EntityMetricsSnapshot,
    EventType,
)
from rentpulse.core.ports.db import StoreUnavailableError, TransactionConflictError
from rentpulse.core.services.analytics_dedupe import derive_marker_keys, new_marker

from ._impl import DEFAULT_CONFIG, AggregationConfig, backoff_delay
from .models import ApplyResult, EventRecord, IngestOutcome
from .ports import CounterStorePort, CounterTransactionPort, SleepPort

logger = logging.getLogger(__name__)

Handler = Callable[[CounterTransactionPort, EventRecord], tuple[DedupMarkerKey, ...]]


def _marker_keys(event: EventRecord) -> tuple[DedupMarkerKey, ...]:
    return derive_marker_keys(
        event.event_type,
        event.event_date,
        entity_id=event.entity_id,
        session_id=event.session_id,
        actor_id=event.actor_id,
        conversation_id=event.conversation_id,
    )


def _empty_bucket(event: EventRecord) -> DailyCounterBucket:
    assert event.entity_id is not None
    return DailyCounterBucket(entity_id=event.entity_id, day=event.event_date)


def _empty_snapshot(event: EventRecord) -> EntityMetricsSnapshot:
    assert event.entity_id is not None
    return EntityMetricsSnapshot(entity_id=event.entity_id)


# --- Handlers (run inside one transaction) ---


def apply_view(tx: CounterTransactionPort, event: EventRecord) -> tuple[DedupMarkerKey, ...]:
    """
    VIEW: day-scoped dedup for daily stats, global dedup for lifetime sessions.

    A session already counted today still refreshes last_viewed_at.
    """
    lifetime_key, day_key = _marker_keys(event)
    assert event.entity_id is not None

    # Reads
    lifetime_marker = tx.get_marker(lifetime_key)
    day_marker = tx.get_marker(day_key)
    bucket = tx.get_day_bucket(event.entity_id, event.event_date) or _empty_bucket(event)
    snapshot = None
    if lifetime_marker is None:
        snapshot = tx.get_snapshot(event.entity_id) or _empty_snapshot(event)

    # Writes
    created: list[DedupMarkerKey] = []
    if lifetime_marker is None and snapshot is not None:
        tx.create_marker(new_marker(lifetime_key, event.timestamp, event.event_date))
        tx.put_snapshot(snapshot.record_view(event.timestamp, event.event_date))
        created.append(lifetime_key)

    if day_marker is None:
        tx.create_marker(new_marker(day_key, event.timestamp, event.event_date))
        bucket = bucket.merge(
            owner_id=event.owner_id,
            views=1,
            unique_sessions=1,
            last_viewed_at=event.timestamp,
        )
        created.append(day_key)
    else:
        bucket = bucket.merge(owner_id=event.owner_id, last_viewed_at=event.timestamp)
    tx.put_day_bucket(bucket)

    return tuple(created)


def apply_save(tx: CounterTransactionPort, event: EventRecord) -> tuple[DedupMarkerKey, ...]:
    """SAVE: one save per (entity, actor), ever."""
    (key,) = _marker_keys(event)
    assert event.entity_id is not None

    if tx.get_marker(key) is not None:
        return ()
    bucket = tx.get_day_bucket(event.entity_id, event.event_date) or _empty_bucket(event)
    snapshot = tx.get_snapshot(event.entity_id) or _empty_snapshot(event)

    tx.create_marker(new_marker(key, event.timestamp, event.event_date))
    tx.put_snapshot(snapshot.record_save(event.timestamp, event.event_date))
    tx.put_day_bucket(
        bucket.merge(owner_id=event.owner_id, saves=1, last_saved_at=event.timestamp)
    )
    return (key,)


def apply_message(tx: CounterTransactionPort, event: EventRecord) -> tuple[DedupMarkerKey, ...]:
    """MESSAGE: one first-message per (entity, conversation), ever."""
    (key,) = _marker_keys(event)
    assert event.entity_id is not None

    if tx.get_marker(key) is not None:
        return ()
    bucket = tx.get_day_bucket(event.entity_id, event.event_date) or _empty_bucket(event)
    snapshot = tx.get_snapshot(event.entity_id) or _empty_snapshot(event)

    tx.create_marker(new_marker(key, event.timestamp, event.event_date))
    tx.put_snapshot(snapshot.record_message(event.timestamp, event.event_date))
    tx.put_day_bucket(
        bucket.merge(owner_id=event.owner_id, messages=1, last_message_at=event.timestamp)
    )
    return (key,)


HANDLERS: dict[EventType, Handler] = {
    EventType.VIEW: apply_view,
    EventType.SAVE: apply_save,
    EventType.MESSAGE: apply_message,
}


# --- Engine ---


class AggregationEngine:
    """
    Applies events to the counter store.

    Stateless apart from its collaborators; safe to share across threads.
    """

    def __init__(
        self,
        store: CounterStorePort,
        config: AggregationConfig | None = None,
        sleep: SleepPort | None = None,
    ) -> None:
        self._store = store
        self._config = config or DEFAULT_CONFIG
        self._sleep = sleep or time.sleep

    def apply(self, event: EventRecord) -> ApplyResult:
        """Apply one event. Never raises for store conflicts or outages."""
        if event.event_type == EventType.SEARCH:
            return self._with_retry(event, lambda: self._record_search(event))

        handler = HANDLERS[event.event_type]
        return self._with_retry(
            event,
            lambda: self._store.run_in_transaction(lambda tx: handler(tx, event)),
        )

    def _record_search(self, event: EventRecord) -> tuple[DedupMarkerKey, ...]:
        self._store.record_search_usage(
            day=event.event_date,
            filter_keys=event.filter_keys,
            amenities=event.amenities,
            min_price=event.min_price or 0,
            max_price=event.max_price or 0,
            at=event.timestamp,
        )
        return ()

    def _with_retry(
        self,
        event: EventRecord,
        attempt_once: Callable[[], tuple[DedupMarkerKey, ...]],
    ) -> ApplyResult:
        max_attempts = max(1, self._config.max_attempts)
        attempt = 0

        while True:
            attempt += 1
            try:
                created = attempt_once()
            except TransactionConflictError as e:
                if attempt >= max_attempts:
                    logger.error(
                        "Dropping %s for %s after %d conflicting attempts: %s",
                        event.event_type.value,
                        event.entity_id,
                        attempt,
                        e,
                    )
                    return ApplyResult(IngestOutcome.DROPPED_CONFLICT, attempts=attempt)
                delay = backoff_delay(attempt, self._config)
                logger.debug(
                    "Conflict on %s (attempt %d/%d), retrying in %.3fs",
                    event.event_type.value,
                    attempt,
                    max_attempts,
                    delay,
                )
                self._sleep(delay)
                continue
            except StoreUnavailableError:
                logger.error(
                    "Counter store unavailable, dropping %s for %s",
                    event.event_type.value,
                    event.entity_id,
                    exc_info=True,
                )
                return ApplyResult(IngestOutcome.DROPPED_STORE_ERROR, attempts=attempt)

            if event.event_type == EventType.SEARCH or created:
                return ApplyResult(IngestOutcome.COUNTED, attempts=attempt, markers_created=created)
            return ApplyResult(IngestOutcome.DUPLICATE, attempts=attempt)


def create_aggregation_engine(
    store: CounterStorePort,
    config: AggregationConfig | None = None,
    sleep: SleepPort | None = None,
) -> AggregationEngine:
    """Create an AggregationEngine."""
    return AggregationEngine(store=store, config=config, sleep=sleep)
