"""Lease-based named locks shared between processes."""

from leaselock.core.locks.exceptions import LockError, LockStorageError, LockUnavailable
from leaselock.core.locks.heartbeat import LeaseHeartbeat
from leaselock.core.locks.identity import ProcessIdentity, StaticIdentity
from leaselock.core.locks.lease import Lease
from leaselock.core.locks.manager import LockManager
from leaselock.core.locks.stats import LockStatistics
from leaselock.core.locks.store import LockStore, SQLiteLockStore
from leaselock.core.locks.sweep import CleanupMarker

__all__ = [
    "CleanupMarker",
    "Lease",
    "LeaseHeartbeat",
    "LockError",
    "LockManager",
    "LockStatistics",
    "LockStorageError",
    "LockStore",
    "LockUnavailable",
    "ProcessIdentity",
    "SQLiteLockStore",
    "StaticIdentity",
]
