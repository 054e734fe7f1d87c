from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

from rentpulse.adapters.clock import FixedClock
from rentpulse.adapters.memory_store import InMemoryCounterStore, InMemoryListingDirectory
from rentpulse.adapters.sqlite.migrator import SQLiteMigrator
from rentpulse.adapters.sqlite_db import SQLiteCounterStore, SQLiteListingDirectory
from rentpulse.core.entities import ListingRecord
from rentpulse.rules.loader import load_rules
from rentpulse.rules.models import Rules

ROOT = Path(__file__).resolve().parents[1]
MIGRATIONS_DIR = ROOT / "migrations"

NOW = datetime(2025, 3, 15, 12, 0, tzinfo=UTC)

EventFactory = Callable[..., dict[str, Any]]


@pytest.fixture
def rules() -> Rules:
    """Real rules from the project root."""
    return load_rules(ROOT / "rules.yaml")


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def no_sleep() -> list[float]:
    """Records requested backoff delays instead of sleeping."""
    return []


@pytest.fixture
def memory_store() -> InMemoryCounterStore:
    return InMemoryCounterStore()


@pytest.fixture
def sample_listing() -> ListingRecord:
    return ListingRecord(
        id="listing-1",
        owner_id="owner-1",
        title="Sunny studio near campus",
        location="Cebu City",
        price=8500,
        deposit=17000,
    )


@pytest.fixture
def listings(sample_listing: ListingRecord) -> InMemoryListingDirectory:
    return InMemoryListingDirectory(
        [
            sample_listing,
            ListingRecord(id="listing-orphan", owner_id=None, title="No owner"),
        ]
    )


@pytest.fixture
def sqlite_db_path(tmp_path: Path) -> str:
    """Migrated SQLite database in a temp dir."""
    db_path = str(tmp_path / "rentpulse.db")
    SQLiteMigrator(db_path, str(MIGRATIONS_DIR)).run_migrations()
    return db_path


@pytest.fixture
def sqlite_store(sqlite_db_path: str) -> SQLiteCounterStore:
    return SQLiteCounterStore(sqlite_db_path, busy_timeout=5.0)


@pytest.fixture
def sqlite_listings(sqlite_db_path: str, sample_listing: ListingRecord) -> SQLiteListingDirectory:
    directory = SQLiteListingDirectory(sqlite_db_path)
    directory.save(sample_listing)
    return directory


@pytest.fixture
def event() -> EventFactory:
    """Build raw wire events with sensible defaults."""

    def _make(event_type: str, **fields: Any) -> dict[str, Any]:
        data: dict[str, Any] = {"eventType": event_type, "timestamp": NOW.isoformat()}
        if event_type != "SEARCH_PERFORMED":
            data["entityId"] = "listing-1"
            data["ownerId"] = "owner-1"
        data.update(fields)
        return data

    return _make


@pytest.fixture
def migrations_dir() -> str:
    return str(MIGRATIONS_DIR)
