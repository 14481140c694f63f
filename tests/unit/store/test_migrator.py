import sqlite3

import pytest

from leaselock.store import MigrationError, Migrator, auto_migrate, get_migration_status


def _tables(db_path):
    conn = sqlite3.connect(str(db_path))
    try:
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    finally:
        conn.close()
    return {row[0] for row in rows}


def test_auto_migrate_is_idempotent(tmp_path):
    db_path = tmp_path / "nested" / "locks.sqlite"

    assert auto_migrate(db_path) == 1
    assert auto_migrate(db_path) == 0
    assert {"database_locks", "schema_version"} <= _tables(db_path)


def test_status(tmp_path):
    db_path = tmp_path / "locks.sqlite"
    auto_migrate(db_path)

    status = get_migration_status(db_path)
    assert status["current_version"] == 1
    assert status["latest_version"] == 1
    assert status["pending_count"] == 0
    assert status["applied_migrations"] == ["v01"]
    assert status["pending_migrations"] == []


def test_status_of_missing_database(tmp_path):
    status = get_migration_status(tmp_path / "missing.sqlite")
    assert status["current_version"] == 0
    assert status["error"] == "Database not found"


def test_migrations_run_in_version_order(tmp_path):
    migrations = tmp_path / "migrations"
    migrations.mkdir()
    (migrations / "v02_add_index.sql").write_text(
        "CREATE INDEX idx_things_name ON things(name);", encoding="utf-8"
    )
    (migrations / "v01_things.sql").write_text(
        "CREATE TABLE things (name TEXT);", encoding="utf-8"
    )
    (migrations / "README.txt").write_text("not a migration", encoding="utf-8")

    migrator = Migrator(tmp_path / "db.sqlite", migrations)
    assert [v for v, _ in migrator.get_available_migrations()] == [1, 2]
    assert migrator.migrate() == 2
    assert migrator.status()["applied_migrations"] == ["v01", "v02"]


def test_failed_migration_raises(tmp_path):
    migrations = tmp_path / "migrations"
    migrations.mkdir()
    (migrations / "v01_broken.sql").write_text("CREATE TABLE (;", encoding="utf-8")

    migrator = Migrator(tmp_path / "db.sqlite", migrations)
    with pytest.raises(MigrationError, match="v01"):
        migrator.migrate()
    assert migrator.status()["current_version"] == 0
