"""
Counter store interfaces.

Protocol-based interfaces for the counter store and the listing directory.
Implementations: in-memory optimistic store (tests/dev), SQLite.

Invariants:
- I1: A dedup marker and the counter increment it guards commit together or not at all
- I2: Within a transaction all reads happen before any write
- I3: Only the aggregation engine writes markers, day-buckets and snapshots
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import date, datetime
from typing import Protocol, TypeVar

from rentpulse.core.entities import (
    DailyCounterBucket,
    DedupMarker,
    DedupMarkerKey,
    EntityMetricsSnapshot,
    ListingRecord,
    SearchFilterDaily,
)

T = TypeVar("T")


# -----------------------------------------------------------------------------
# Errors
# -----------------------------------------------------------------------------


class CounterStoreError(Exception):
    """Base class for counter store errors."""


class TransactionConflictError(CounterStoreError):
    """Raised at commit when another writer invalidated the read set (retryable)."""

    def __init__(self, detail: str = "write conflict") -> None:
        self.detail = detail
        super().__init__(f"Transaction conflict: {detail}")


class StoreUnavailableError(CounterStoreError):
    """Raised when the underlying storage cannot be reached or fails."""


class TransactionUsageError(CounterStoreError):
    """Raised when a transaction is used incorrectly (e.g. read after write)."""


# -----------------------------------------------------------------------------
# Transaction
# -----------------------------------------------------------------------------


class CounterTransactionPort(Protocol):
    """
    One atomic unit of work over markers, day-buckets and snapshots.

    Reads must all be issued before the first write (I2); implementations
    raise TransactionUsageError otherwise.
    """

    def get_marker(self, key: DedupMarkerKey) -> DedupMarker | None:
        """Read a dedup marker, or None if the dimension is unseen."""
        ...

    def get_day_bucket(self, entity_id: str, day: date) -> DailyCounterBucket | None:
        """Read the day-bucket for (entity, date)."""
        ...

    def get_snapshot(self, entity_id: str) -> EntityMetricsSnapshot | None:
        """Read the lifetime snapshot for an entity."""
        ...

    def create_marker(self, marker: DedupMarker) -> None:
        """Create a marker. Must not already exist."""
        ...

    def put_day_bucket(self, bucket: DailyCounterBucket) -> None:
        """Write the merged day-bucket."""
        ...

    def put_snapshot(self, snapshot: EntityMetricsSnapshot) -> None:
        """Write the merged lifetime snapshot."""
        ...


# -----------------------------------------------------------------------------
# Counter Store
# -----------------------------------------------------------------------------


class CounterStorePort(Protocol):
    """Counter store with optimistic multi-document transactions."""

    def run_in_transaction(self, work: Callable[[CounterTransactionPort], T]) -> T:
        """
        Run work inside one transaction and commit.

        Raises TransactionConflictError if the commit lost a race (nothing is
        applied), StoreUnavailableError on infrastructure failure.
        """
        ...

    def record_search_usage(
        self,
        day: date,
        filter_keys: Iterable[str],
        amenities: Iterable[str],
        min_price: float,
        max_price: float,
        at: datetime,
    ) -> None:
        """Commutatively increment filter usage for a date (no dedup)."""
        ...

    def list_day_buckets(
        self, entity_id: str, since: date, until: date | None = None
    ) -> list[DailyCounterBucket]:
        """Day-buckets for an entity with since <= day (<= until), sorted by day."""
        ...

    def list_search_days(self, since: date, until: date) -> list[SearchFilterDaily]:
        """Search usage docs with since <= day <= until, sorted by day."""
        ...

    def get_snapshot(self, entity_id: str) -> EntityMetricsSnapshot | None:
        """Read the lifetime snapshot outside a transaction."""
        ...

    def get_marker(self, key: DedupMarkerKey) -> DedupMarker | None:
        """Read a dedup marker outside a transaction."""
        ...


# -----------------------------------------------------------------------------
# Listing Directory
# -----------------------------------------------------------------------------


class ListingDirectoryPort(Protocol):
    """Read access to listings (owned by the CRUD surface)."""

    def get_listing(self, entity_id: str) -> ListingRecord | None:
        """Get a listing by id, or None if absent."""
        ...
