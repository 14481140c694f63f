from pathlib import Path

import pytest

from leaselock.core.locks import CleanupMarker, LockManager, SQLiteLockStore, StaticIdentity


class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, start: float = 1_760_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "locks.sqlite"


@pytest.fixture
def store(db_path: Path) -> SQLiteLockStore:
    return SQLiteLockStore(db_path)


@pytest.fixture
def make_manager(store, clock, tmp_path):
    """Build managers that share one store, one clock and one sweep marker."""
    marker_path = tmp_path / "cleanup_marker"

    def _make(owner: str = "worker-a", **kwargs) -> LockManager:
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("cleanup_marker", CleanupMarker(marker_path))
        return LockManager(store, StaticIdentity(owner), **kwargs)

    return _make
