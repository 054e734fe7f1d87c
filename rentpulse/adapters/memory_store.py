"""
In-memory counter store with optimistic concurrency (tests/dev).

Every document carries a version. A transaction records the version of each
document it reads and buffers its writes; commit validates the read set under
a lock and raises TransactionConflictError if any document changed.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from datetime import date, datetime
from typing import Any, TypeVar

from rentpulse.core.entities import (
    DailyCounterBucket,
    DedupMarker,
    DedupMarkerKey,
    EntityMetricsSnapshot,
    ListingRecord,
    SearchFilterDaily,
    latest,
)
from rentpulse.core.ports.db import (
    CounterTransactionPort,
    TransactionConflictError,
    TransactionUsageError,
)

T = TypeVar("T")

DocRef = tuple[Any, ...]


def _marker_ref(key: DedupMarkerKey) -> DocRef:
    return ("marker", key.scope, key.entity_id, key.dimension_id, key.event_date)


def _bucket_ref(entity_id: str, day: date) -> DocRef:
    return ("bucket", entity_id, day)


def _snapshot_ref(entity_id: str) -> DocRef:
    return ("snapshot", entity_id)


class _InMemoryTransaction:
    """Buffered transaction over an InMemoryCounterStore."""

    def __init__(self, store: InMemoryCounterStore) -> None:
        self._store = store
        self._read_versions: dict[DocRef, int] = {}
        self._writes: dict[DocRef, Any] = {}
        self._new_markers: set[DocRef] = set()

    def _read(self, ref: DocRef) -> Any:
        if self._writes:
            raise TransactionUsageError("Reads must happen before any write in a transaction")
        version, value = self._store._get(ref)
        self._read_versions.setdefault(ref, version)
        return value

    def get_marker(self, key: DedupMarkerKey) -> DedupMarker | None:
        return self._read(_marker_ref(key))

    def get_day_bucket(self, entity_id: str, day: date) -> DailyCounterBucket | None:
        return self._read(_bucket_ref(entity_id, day))

    def get_snapshot(self, entity_id: str) -> EntityMetricsSnapshot | None:
        return self._read(_snapshot_ref(entity_id))

    def create_marker(self, marker: DedupMarker) -> None:
        ref = _marker_ref(marker.key)
        if ref in self._new_markers:
            raise TransactionUsageError(f"Marker created twice: {marker.key.storage_key()}")
        self._new_markers.add(ref)
        self._writes[ref] = marker

    def put_day_bucket(self, bucket: DailyCounterBucket) -> None:
        self._writes[_bucket_ref(bucket.entity_id, bucket.day)] = bucket

    def put_snapshot(self, snapshot: EntityMetricsSnapshot) -> None:
        self._writes[_snapshot_ref(snapshot.entity_id)] = snapshot

    def commit(self) -> None:
        self._store._commit(self._read_versions, self._writes, self._new_markers)


class InMemoryCounterStore:
    """In-memory CounterStorePort implementation."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._docs: dict[DocRef, tuple[int, Any]] = {}
        self._search: dict[date, SearchFilterDaily] = {}
        # Test hook, called after the work function and before validation
        self.before_commit: Callable[[], None] | None = None
        self.commit_count = 0
        self.conflict_count = 0

    # --- internals used by transactions ---

    def _get(self, ref: DocRef) -> tuple[int, Any]:
        with self._lock:
            return self._docs.get(ref, (0, None))

    def _commit(
        self,
        read_versions: dict[DocRef, int],
        writes: dict[DocRef, Any],
        new_markers: set[DocRef],
    ) -> None:
        with self._lock:
            for ref, version in read_versions.items():
                if self._docs.get(ref, (0, None))[0] != version:
                    self.conflict_count += 1
                    raise TransactionConflictError(f"{ref[0]} changed since read")
            for ref in new_markers:
                if ref in self._docs:
                    self.conflict_count += 1
                    raise TransactionConflictError("marker already exists")

            for ref, value in writes.items():
                version = self._docs.get(ref, (0, None))[0]
                self._docs[ref] = (version + 1, value)
            self.commit_count += 1

    # --- CounterStorePort ---

    def run_in_transaction(self, work: Callable[[CounterTransactionPort], T]) -> T:
        tx = _InMemoryTransaction(self)
        result = work(tx)
        if self.before_commit is not None:
            self.before_commit()
        tx.commit()
        return result

    def record_search_usage(
        self,
        day: date,
        filter_keys: Iterable[str],
        amenities: Iterable[str],
        min_price: float,
        max_price: float,
        at: datetime,
    ) -> None:
        with self._lock:
            doc = self._search.get(day) or SearchFilterDaily(day=day)
            usage = dict(doc.filter_usage)
            for key in filter_keys:
                usage[key] = usage.get(key, 0) + 1
            self._search[day] = doc.model_copy(
                update={
                    "filter_usage": usage,
                    "amenities_used": doc.amenities_used | frozenset(amenities),
                    "min_price_sample": min_price,
                    "max_price_sample": max_price,
                    "last_updated_at": latest(doc.last_updated_at, at),
                }
            )

    def list_day_buckets(
        self, entity_id: str, since: date, until: date | None = None
    ) -> list[DailyCounterBucket]:
        with self._lock:
            buckets = [
                value
                for ref, (_, value) in self._docs.items()
                if ref[0] == "bucket"
                and ref[1] == entity_id
                and ref[2] >= since
                and (until is None or ref[2] <= until)
            ]
        return sorted(buckets, key=lambda b: b.day)

    def list_search_days(self, since: date, until: date) -> list[SearchFilterDaily]:
        with self._lock:
            docs = [doc for day, doc in self._search.items() if since <= day <= until]
        return sorted(docs, key=lambda d: d.day)

    def get_snapshot(self, entity_id: str) -> EntityMetricsSnapshot | None:
        return self._get(_snapshot_ref(entity_id))[1]

    def get_marker(self, key: DedupMarkerKey) -> DedupMarker | None:
        return self._get(_marker_ref(key))[1]

    def get_day_bucket(self, entity_id: str, day: date) -> DailyCounterBucket | None:
        return self._get(_bucket_ref(entity_id, day))[1]

    def put_day_bucket(self, bucket: DailyCounterBucket) -> None:
        """Seed a bucket directly (fixtures only)."""
        with self._lock:
            ref = _bucket_ref(bucket.entity_id, bucket.day)
            version = self._docs.get(ref, (0, None))[0]
            self._docs[ref] = (version + 1, bucket)

    def put_search_day(self, doc: SearchFilterDaily) -> None:
        """Seed a search usage doc directly (fixtures only)."""
        with self._lock:
            self._search[doc.day] = doc

    def clear(self) -> None:
        """Clear all documents (for testing)."""
        with self._lock:
            self._docs.clear()
            self._search.clear()


class InMemoryListingDirectory:
    """In-memory ListingDirectoryPort implementation."""

    def __init__(self, listings: Iterable[ListingRecord] = ()) -> None:
        self._listings: dict[str, ListingRecord] = {listing.id: listing for listing in listings}

    def get_listing(self, entity_id: str) -> ListingRecord | None:
        return self._listings.get(entity_id)

    def save(self, listing: ListingRecord) -> ListingRecord:
        self._listings[listing.id] = listing
        return listing
