import sqlite3

import pytest

from leaselock.core.locks import Lease, LockStorageError, SQLiteLockStore


def _lease(name="job", owner="a", now=1000.0, timeout=60, lock_id=None, metadata=None) -> Lease:
    return Lease(
        lock_name=name,
        lock_id=lock_id or f"id-{name}-{owner}-{now}",
        owner=owner,
        acquired_at=now,
        expires_at=now + timeout,
        timeout_seconds=timeout,
        heartbeat_at=now,
        metadata=metadata or {},
    )


def test_schema_created_on_open(db_path):
    SQLiteLockStore(db_path)

    conn = sqlite3.connect(db_path)
    try:
        tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    finally:
        conn.close()
    assert "database_locks" in tables
    assert "schema_version" in tables


def test_insert_rejects_second_row_for_same_name(store):
    assert store.insert(_lease(owner="a"))
    assert not store.insert(_lease(owner="b"))
    assert store.get("job").owner == "a"


def test_metadata_round_trip(store):
    store.insert(_lease(metadata={"job": "nightly", "attempt": 2}))
    assert store.get("job").metadata == {"job": "nightly", "attempt": 2}


def test_get_missing_returns_none(store):
    assert store.get("nope") is None


def test_list_leases_live_filter(store):
    store.insert(_lease(name="old", now=900.0, timeout=50))
    store.insert(_lease(name="new", now=1000.0, timeout=60))

    assert [lease.lock_name for lease in store.list_leases()] == ["new", "old"]
    assert [lease.lock_name for lease in store.list_leases(live_at=1000.0)] == ["new"]


def test_delete_owned_checks_owner(store):
    store.insert(_lease(owner="a"))

    assert store.delete_owned("job", "b") is None
    removed = store.delete_owned("job", "a")
    assert removed is not None
    assert removed.owner == "a"
    assert store.get("job") is None


def test_delete_ignores_owner(store):
    store.insert(_lease(owner="a"))
    assert store.delete("job").owner == "a"
    assert store.delete("job") is None


def test_delete_if_stale_keeps_live_rows(store):
    store.insert(_lease(now=1000.0, timeout=60))

    assert not store.delete_if_stale("job", now=1030.0)
    assert store.get("job") is not None
    assert store.delete_if_stale("job", now=1060.0)
    assert store.get("job") is None


def test_delete_stale_uses_expiry_and_heartbeat(store):
    store.insert(_lease(name="expired", now=1000.0, timeout=10))
    store.insert(_lease(name="live", now=1000.0, timeout=600))
    store.insert(_lease(name="quiet", now=1000.0, timeout=30))
    conn = sqlite3.connect(store.db_path)
    try:
        # Far future expiry; "quiet" has not heartbeated for over 2 x timeout
        conn.execute(
            "UPDATE database_locks SET expires_at = 99999 WHERE lock_name IN ('live', 'quiet')"
        )
        conn.commit()
    finally:
        conn.close()

    assert store.delete_stale(now=1100.0) == 2
    assert [lease.lock_name for lease in store.list_leases()] == ["live"]


def test_extend_only_live_and_owned(store):
    store.insert(_lease(owner="a", now=1000.0, timeout=60))

    assert not store.extend("job", "b", 10, now=1010.0)
    assert store.extend("job", "a", 10, now=1010.0)
    lease = store.get("job")
    assert lease.expires_at == 1070.0
    assert lease.timeout_seconds == 70

    assert not store.extend("job", "a", 10, now=1070.0)
    assert store.get("job").expires_at == 1070.0


def test_touch_refreshes_heartbeat_only(store):
    store.insert(_lease(owner="a", now=1000.0, timeout=60))

    assert not store.touch("job", "b", now=1020.0)
    assert store.touch("job", "a", now=1020.0)
    lease = store.get("job")
    assert lease.heartbeat_at == 1020.0
    assert lease.expires_at == 1060.0


def test_delete_by_owner(store):
    store.insert(_lease(name="one", owner="a"))
    store.insert(_lease(name="two", owner="a"))
    store.insert(_lease(name="three", owner="b"))

    assert store.delete_by_owner("a") == 2
    assert store.delete_by_owner("a") == 0
    assert [lease.lock_name for lease in store.list_leases()] == ["three"]


def test_count_acquired_since(store):
    store.insert(_lease(name="yesterday", now=500.0))
    store.insert(_lease(name="today", now=1500.0))
    assert store.count_acquired_since(1000.0) == 1


def test_storage_failure_is_wrapped(store):
    conn = sqlite3.connect(store.db_path)
    try:
        conn.execute("DROP TABLE database_locks")
        conn.commit()
    finally:
        conn.close()

    with pytest.raises(LockStorageError):
        store.get("job")
    with pytest.raises(LockStorageError):
        store.insert(_lease())


def test_unopenable_database_raises_storage_error(tmp_path):
    # Parent "directory" is a regular file
    blocker = tmp_path / "blocker"
    blocker.write_text("x", encoding="utf-8")

    with pytest.raises(LockStorageError):
        SQLiteLockStore(blocker / "locks.sqlite")


def test_insert_rejects_unserializable_metadata(store):
    with pytest.raises(ValueError, match="job"):
        store.insert(_lease(metadata={"handle": object()}))
    assert store.get("job") is None
