import multiprocessing
import threading
import time
from pathlib import Path

from leaselock.core.locks import CleanupMarker, LockManager, SQLiteLockStore, StaticIdentity


def test_only_one_of_many_concurrent_acquirers_wins(make_manager):
    workers = 8
    barrier = threading.Barrier(workers)
    results = {}
    errors = []

    def contend(owner):
        manager = make_manager(owner)
        barrier.wait()
        try:
            results[owner] = manager.acquire("report-job", timeout=60)
        except Exception as e:  # surfaced by the assertion below
            errors.append(e)

    threads = [
        threading.Thread(target=contend, args=(f"worker-{i}",)) for i in range(workers)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert errors == []
    winners = [owner for owner, won in results.items() if won]
    assert len(winners) == 1
    assert make_manager("observer").get_lock_info("report-job").owner == winners[0]


def test_concurrent_release_and_reacquire_keep_single_holder(make_manager):
    rounds = 20
    acquisitions = []
    violations = []
    barrier = threading.Barrier(2)

    def worker(owner):
        manager = make_manager(owner)
        barrier.wait()
        for _ in range(rounds):
            if manager.acquire("shared", timeout=60):
                acquisitions.append(owner)
                holder = manager.get_lock_info("shared").owner
                if holder != owner:
                    violations.append((owner, holder))
                manager.release("shared")

    threads = [threading.Thread(target=worker, args=(name,)) for name in ("a", "b")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert acquisitions
    assert violations == []
    assert make_manager("observer").get_lock_info("shared") is None


def test_lease_expires_in_real_time(store, tmp_path):
    marker = CleanupMarker(tmp_path / "marker")
    a = LockManager(store, StaticIdentity("a"), cleanup_marker=marker)
    b = LockManager(store, StaticIdentity("b"), cleanup_marker=marker)

    assert a.acquire("job", timeout=1)
    assert not b.acquire("job", timeout=1)

    time.sleep(1.2)
    assert b.acquire("job", timeout=1)
    assert b.get_lock_info("job").owner == "b"


def _race_in_process(db_path, owner, barrier, results):
    # Runs in a freshly spawned interpreter: opens the store itself
    try:
        barrier.wait(timeout=60)
        manager = LockManager(
            SQLiteLockStore(Path(db_path)),
            StaticIdentity(owner),
            cleanup_marker=CleanupMarker(Path(db_path).with_suffix(".marker")),
        )
        results.put((owner, manager.acquire("report-job", timeout=60), None))
    except Exception as e:
        results.put((owner, False, repr(e)))


def test_only_one_process_wins_on_a_new_database(tmp_path):
    processes = 8
    ctx = multiprocessing.get_context("spawn")
    barrier = ctx.Barrier(processes)
    results = ctx.Queue()
    db_path = tmp_path / "shared" / "locks.sqlite"

    workers = [
        ctx.Process(target=_race_in_process, args=(str(db_path), f"proc-{i}", barrier, results))
        for i in range(processes)
    ]
    for worker in workers:
        worker.start()
    outcomes = [results.get(timeout=120) for _ in workers]
    for worker in workers:
        worker.join(timeout=30)

    errors = [(owner, error) for owner, _, error in outcomes if error]
    assert errors == []
    winners = [owner for owner, won, _ in outcomes if won]
    assert len(winners) == 1

    store = SQLiteLockStore(db_path)
    assert store.get("report-job").owner == winners[0]
