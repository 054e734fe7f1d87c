"""
SQLite counter store adapter.

Implements CounterStorePort and ListingDirectoryPort on SQLite.

Transactions take the write lock up front (BEGIN IMMEDIATE), so two
deliveries of the same event are serialized: the loser either waits and then
sees the marker, or times out on the lock and gets TransactionConflictError
(retried by the engine). A marker INSERT that hits the primary key is also
reported as a conflict.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable, Iterable
from datetime import UTC, date, datetime
from typing import Any, TypeVar

from rentpulse.core.entities import (
    DailyCounterBucket,
    DedupMarker,
    DedupMarkerKey,
    EntityMetricsSnapshot,
    ListingRecord,
    MarkerScope,
    SearchFilterDaily,
    latest,
)
from rentpulse.core.ports.db import (
    CounterStoreError,
    CounterTransactionPort,
    StoreUnavailableError,
    TransactionConflictError,
    TransactionUsageError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """Convert SQLite row to dictionary."""
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def parse_dt(s: str | None) -> datetime | None:
    """Parse ISO datetime string."""
    return datetime.fromisoformat(s) if s else None


def parse_date(s: str | None) -> date | None:
    """Parse ISO date string."""
    return date.fromisoformat(s) if s else None


def format_dt(dt: datetime | None) -> str | None:
    """Format a datetime as fixed-width UTC ISO text (sortable as a string)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat(timespec="microseconds")


def format_date(d: date | None) -> str | None:
    return d.isoformat() if d else None


def _is_lock_error(e: sqlite3.OperationalError) -> bool:
    message = str(e).lower()
    return "locked" in message or "busy" in message


def translate_error(e: sqlite3.Error) -> CounterStoreError:
    """Map a sqlite3 error onto the counter store error hierarchy."""
    if isinstance(e, sqlite3.IntegrityError):
        return TransactionConflictError(str(e))
    if isinstance(e, sqlite3.OperationalError) and _is_lock_error(e):
        return TransactionConflictError(str(e))
    return StoreUnavailableError(str(e))


# -----------------------------------------------------------------------------
# Base SQLite Repository
# -----------------------------------------------------------------------------


class SQLiteRepoBase:
    """Base class for SQLite repositories."""

    def __init__(
        self,
        db_path: str,
        connection: sqlite3.Connection | None = None,
        busy_timeout: float = 5.0,
    ):
        self.db_path = db_path
        self.busy_timeout = busy_timeout
        self._external_conn = connection

    def _get_conn(self) -> sqlite3.Connection:
        """Get database connection (uses external if provided)."""
        if self._external_conn is not None:
            return self._external_conn

        # Autocommit mode; transactions are opened explicitly
        try:
            conn = sqlite3.connect(
                self.db_path, timeout=self.busy_timeout, isolation_level=None
            )
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Cannot open {self.db_path}: {e}") from e
        conn.row_factory = dict_factory
        try:
            conn.execute("PRAGMA foreign_keys = ON;")
        except sqlite3.Error as e:
            conn.close()
            raise StoreUnavailableError(f"Cannot open {self.db_path}: {e}") from e
        return conn

    def _should_close(self) -> bool:
        """Whether to close connection after use."""
        return self._external_conn is None

    def _release(self, conn: sqlite3.Connection) -> None:
        if self._should_close():
            conn.close()


# -----------------------------------------------------------------------------
# Row mapping
# -----------------------------------------------------------------------------


def _map_marker(row: dict[str, Any]) -> DedupMarker:
    event_date = parse_date(row["event_date"])
    return DedupMarker(
        key=DedupMarkerKey(
            scope=MarkerScope(row["scope"]),
            entity_id=row["entity_id"],
            dimension_id=row["dimension_id"],
            event_date=event_date,
        ),
        first_seen_at=datetime.fromisoformat(row["first_seen_at"]),
        event_date=date.fromisoformat(row["first_seen_date"]),
    )


def _map_bucket(row: dict[str, Any]) -> DailyCounterBucket:
    return DailyCounterBucket(
        entity_id=row["entity_id"],
        day=date.fromisoformat(row["date"]),
        owner_id=row["owner_id"],
        views=row["views"],
        unique_sessions=row["unique_sessions"],
        saves=row["saves"],
        messages=row["messages"],
        last_viewed_at=parse_dt(row["last_viewed_at"]),
        last_saved_at=parse_dt(row["last_saved_at"]),
        last_message_at=parse_dt(row["last_message_at"]),
    )


def _map_snapshot(row: dict[str, Any]) -> EntityMetricsSnapshot:
    return EntityMetricsSnapshot(
        entity_id=row["entity_id"],
        unique_session_views=row["unique_session_views"],
        total_saves=row["total_saves"],
        first_message_count=row["first_message_count"],
        last_viewed_at=parse_dt(row["last_viewed_at"]),
        last_viewed_date=parse_date(row["last_viewed_date"]),
        last_saved_at=parse_dt(row["last_saved_at"]),
        last_saved_date=parse_date(row["last_saved_date"]),
        last_message_at=parse_dt(row["last_message_at"]),
        last_message_date=parse_date(row["last_message_date"]),
    )


def _select_marker(conn: sqlite3.Connection, key: DedupMarkerKey) -> DedupMarker | None:
    row = conn.execute(
        """
        SELECT * FROM dedup_markers
        WHERE scope = ? AND entity_id = ? AND dimension_id = ? AND event_date = ?
        """,
        (key.scope.value, key.entity_id, key.dimension_id, format_date(key.event_date) or ""),
    ).fetchone()
    return _map_marker(row) if row else None


def _select_bucket(
    conn: sqlite3.Connection, entity_id: str, day: date
) -> DailyCounterBucket | None:
    row = conn.execute(
        "SELECT * FROM entity_daily_stats WHERE entity_id = ? AND date = ?",
        (entity_id, day.isoformat()),
    ).fetchone()
    return _map_bucket(row) if row else None


def _select_snapshot(conn: sqlite3.Connection, entity_id: str) -> EntityMetricsSnapshot | None:
    row = conn.execute(
        "SELECT * FROM entity_metrics WHERE entity_id = ?", (entity_id,)
    ).fetchone()
    return _map_snapshot(row) if row else None


def _rollback(conn: sqlite3.Connection) -> None:
    if conn.in_transaction:
        try:
            conn.execute("ROLLBACK")
        except sqlite3.Error:
            logger.warning("Rollback failed", exc_info=True)


# -----------------------------------------------------------------------------
# Transaction
# -----------------------------------------------------------------------------


class _SQLiteCounterTransaction:
    """Reads go straight to the connection; writes are buffered until flush."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._markers: list[DedupMarker] = []
        self._buckets: dict[tuple[str, date], DailyCounterBucket] = {}
        self._snapshots: dict[str, EntityMetricsSnapshot] = {}

    @property
    def _has_writes(self) -> bool:
        return bool(self._markers or self._buckets or self._snapshots)

    def _check_read(self) -> None:
        if self._has_writes:
            raise TransactionUsageError("Reads must happen before any write in a transaction")

    def get_marker(self, key: DedupMarkerKey) -> DedupMarker | None:
        self._check_read()
        return _select_marker(self._conn, key)

    def get_day_bucket(self, entity_id: str, day: date) -> DailyCounterBucket | None:
        self._check_read()
        return _select_bucket(self._conn, entity_id, day)

    def get_snapshot(self, entity_id: str) -> EntityMetricsSnapshot | None:
        self._check_read()
        return _select_snapshot(self._conn, entity_id)

    def create_marker(self, marker: DedupMarker) -> None:
        if any(m.key == marker.key for m in self._markers):
            raise TransactionUsageError(f"Marker created twice: {marker.key.storage_key()}")
        self._markers.append(marker)

    def put_day_bucket(self, bucket: DailyCounterBucket) -> None:
        self._buckets[(bucket.entity_id, bucket.day)] = bucket

    def put_snapshot(self, snapshot: EntityMetricsSnapshot) -> None:
        self._snapshots[snapshot.entity_id] = snapshot

    def flush(self) -> None:
        for marker in self._markers:
            key = marker.key
            self._conn.execute(
                """
                INSERT INTO dedup_markers (
                    scope, entity_id, dimension_id, event_date, first_seen_at, first_seen_date
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    key.scope.value,
                    key.entity_id,
                    key.dimension_id,
                    format_date(key.event_date) or "",
                    format_dt(marker.first_seen_at),
                    marker.event_date.isoformat(),
                ),
            )

        for bucket in self._buckets.values():
            self._conn.execute(
                """
                INSERT OR REPLACE INTO entity_daily_stats (
                    entity_id, date, owner_id, views, unique_sessions, saves, messages,
                    last_viewed_at, last_saved_at, last_message_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    bucket.entity_id,
                    bucket.day.isoformat(),
                    bucket.owner_id,
                    bucket.views,
                    bucket.unique_sessions,
                    bucket.saves,
                    bucket.messages,
                    format_dt(bucket.last_viewed_at),
                    format_dt(bucket.last_saved_at),
                    format_dt(bucket.last_message_at),
                ),
            )

        for snapshot in self._snapshots.values():
            self._conn.execute(
                """
                INSERT OR REPLACE INTO entity_metrics (
                    entity_id, unique_session_views, total_saves, first_message_count,
                    last_viewed_at, last_viewed_date, last_saved_at, last_saved_date,
                    last_message_at, last_message_date
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    snapshot.entity_id,
                    snapshot.unique_session_views,
                    snapshot.total_saves,
                    snapshot.first_message_count,
                    format_dt(snapshot.last_viewed_at),
                    format_date(snapshot.last_viewed_date),
                    format_dt(snapshot.last_saved_at),
                    format_date(snapshot.last_saved_date),
                    format_dt(snapshot.last_message_at),
                    format_date(snapshot.last_message_date),
                ),
            )


# -----------------------------------------------------------------------------
# Counter Store
# -----------------------------------------------------------------------------


class SQLiteCounterStore(SQLiteRepoBase):
    """SQLite implementation of CounterStorePort."""

    def run_in_transaction(self, work: Callable[[CounterTransactionPort], T]) -> T:
        conn = self._get_conn()
        try:
            try:
                conn.execute("BEGIN IMMEDIATE")
                tx = _SQLiteCounterTransaction(conn)
                result = work(tx)
                tx.flush()
                conn.execute("COMMIT")
                return result
            except sqlite3.Error as e:
                _rollback(conn)
                raise translate_error(e) from e
            except BaseException:
                _rollback(conn)
                raise
        finally:
            self._release(conn)

    def record_search_usage(
        self,
        day: date,
        filter_keys: Iterable[str],
        amenities: Iterable[str],
        min_price: float,
        max_price: float,
        at: datetime,
    ) -> None:
        conn = self._get_conn()
        day_key = day.isoformat()
        try:
            try:
                conn.execute("BEGIN IMMEDIATE")
                row = conn.execute(
                    "SELECT last_updated_at FROM search_metrics WHERE date = ?", (day_key,)
                ).fetchone()
                current = parse_dt(row["last_updated_at"]) if row else None
                conn.execute(
                    """
                    INSERT OR REPLACE INTO search_metrics (
                        date, last_updated_at, min_price_sample, max_price_sample
                    ) VALUES (?, ?, ?, ?)
                    """,
                    (day_key, format_dt(latest(current, at)), min_price, max_price),
                )
                for key in filter_keys:
                    conn.execute(
                        """
                        INSERT INTO search_filter_usage (date, filter_key, count)
                        VALUES (?, ?, 1)
                        ON CONFLICT(date, filter_key) DO UPDATE SET count = count + 1
                        """,
                        (day_key, key),
                    )
                for label in amenities:
                    conn.execute(
                        "INSERT OR IGNORE INTO search_amenities_used (date, label) VALUES (?, ?)",
                        (day_key, label),
                    )
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                _rollback(conn)
                raise translate_error(e) from e
        finally:
            self._release(conn)

    def list_day_buckets(
        self, entity_id: str, since: date, until: date | None = None
    ) -> list[DailyCounterBucket]:
        query = "SELECT * FROM entity_daily_stats WHERE entity_id = ? AND date >= ?"
        params: list[Any] = [entity_id, since.isoformat()]
        if until is not None:
            query += " AND date <= ?"
            params.append(until.isoformat())
        query += " ORDER BY date ASC"
        rows = self._read(lambda conn: conn.execute(query, params).fetchall())
        return [_map_bucket(r) for r in rows]

    def list_search_days(self, since: date, until: date) -> list[SearchFilterDaily]:
        def load(conn: sqlite3.Connection) -> list[SearchFilterDaily]:
            params = (since.isoformat(), until.isoformat())
            rows = conn.execute(
                """
                SELECT * FROM search_metrics
                WHERE date >= ? AND date <= ?
                ORDER BY date ASC
                """,
                params,
            ).fetchall()
            usage: dict[str, dict[str, int]] = {}
            for r in conn.execute(
                "SELECT * FROM search_filter_usage WHERE date >= ? AND date <= ?", params
            ).fetchall():
                usage.setdefault(r["date"], {})[r["filter_key"]] = r["count"]
            amenities: dict[str, set[str]] = {}
            for r in conn.execute(
                "SELECT * FROM search_amenities_used WHERE date >= ? AND date <= ?", params
            ).fetchall():
                amenities.setdefault(r["date"], set()).add(r["label"])

            return [
                SearchFilterDaily(
                    day=date.fromisoformat(r["date"]),
                    filter_usage=usage.get(r["date"], {}),
                    amenities_used=frozenset(amenities.get(r["date"], set())),
                    min_price_sample=r["min_price_sample"],
                    max_price_sample=r["max_price_sample"],
                    last_updated_at=parse_dt(r["last_updated_at"]),
                )
                for r in rows
            ]

        return self._read(load)

    def get_snapshot(self, entity_id: str) -> EntityMetricsSnapshot | None:
        return self._read(lambda conn: _select_snapshot(conn, entity_id))

    def get_marker(self, key: DedupMarkerKey) -> DedupMarker | None:
        return self._read(lambda conn: _select_marker(conn, key))

    def get_day_bucket(self, entity_id: str, day: date) -> DailyCounterBucket | None:
        return self._read(lambda conn: _select_bucket(conn, entity_id, day))

    def _read(self, load: Callable[[sqlite3.Connection], T]) -> T:
        conn = self._get_conn()
        try:
            return load(conn)
        except sqlite3.Error as e:
            raise StoreUnavailableError(str(e)) from e
        finally:
            self._release(conn)


# -----------------------------------------------------------------------------
# Listing Directory
# -----------------------------------------------------------------------------


class SQLiteListingDirectory(SQLiteRepoBase):
    """SQLite implementation of ListingDirectoryPort."""

    def get_listing(self, entity_id: str) -> ListingRecord | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM listings WHERE id = ?", (entity_id,)).fetchone()
        except sqlite3.Error as e:
            raise StoreUnavailableError(str(e)) from e
        finally:
            self._release(conn)
        return self._map_row(row) if row else None

    def save(self, listing: ListingRecord) -> ListingRecord:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT OR REPLACE INTO listings (id, owner_id, title, location, price, deposit)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    listing.id,
                    listing.owner_id,
                    listing.title,
                    listing.location,
                    listing.price,
                    listing.deposit,
                ),
            )
            # No-op in autocommit; needed for a caller-supplied connection
            conn.commit()
        except sqlite3.Error as e:
            raise StoreUnavailableError(str(e)) from e
        finally:
            self._release(conn)
        return listing

    def _map_row(self, row: dict[str, Any]) -> ListingRecord:
        return ListingRecord(
            id=row["id"],
            owner_id=row["owner_id"],
            title=row["title"],
            location=row["location"],
            price=row["price"],
            deposit=row["deposit"],
        )
