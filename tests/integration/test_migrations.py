import sqlite3

from rentpulse.adapters.sqlite.migrator import SQLiteMigrator

EXPECTED_TABLES = {
    "listings",
    "dedup_markers",
    "entity_daily_stats",
    "entity_metrics",
    "search_metrics",
    "search_filter_usage",
    "search_amenities_used",
}


def _tables(db_path: str) -> set[str]:
    conn = sqlite3.connect(db_path)
    try:
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    finally:
        conn.close()
    return {r[0] for r in rows}


def test_migrator_creates_counter_tables(tmp_path, migrations_dir):
    db_path = str(tmp_path / "m.db")
    applied = SQLiteMigrator(db_path, migrations_dir).run_migrations()

    assert applied == ["001_counters.sql"]
    assert EXPECTED_TABLES <= _tables(db_path)
    assert "_migrations" in _tables(db_path)


def test_migrator_is_idempotent(tmp_path, migrations_dir):
    db_path = str(tmp_path / "m.db")
    migrator = SQLiteMigrator(db_path, migrations_dir)

    migrator.run_migrations()
    assert migrator.run_migrations() == []
    assert migrator.pending() == []

    conn = sqlite3.connect(db_path)
    count = conn.execute(
        "SELECT count(*) FROM _migrations WHERE filename='001_counters.sql'"
    ).fetchone()[0]
    conn.close()
    assert count == 1


def test_down_section_not_applied(tmp_path):
    migrations = tmp_path / "migrations"
    migrations.mkdir()
    (migrations / "001_t.sql").write_text(
        "-- Up\nCREATE TABLE t (id INTEGER);\n-- Down\nDROP TABLE t;\n"
    )
    db_path = str(tmp_path / "m.db")

    SQLiteMigrator(db_path, str(migrations)).run_migrations()

    assert "t" in _tables(db_path)
