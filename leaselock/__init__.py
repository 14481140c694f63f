"""leaselock - lease-based distributed locks over a shared SQLite store."""

from leaselock.core.config import LeaseLockConfig, get_config
from leaselock.core.locks import (
    CleanupMarker,
    Lease,
    LeaseHeartbeat,
    LockError,
    LockManager,
    LockStatistics,
    LockStorageError,
    LockStore,
    LockUnavailable,
    ProcessIdentity,
    SQLiteLockStore,
    StaticIdentity,
)

__version__ = "0.1.0"

__all__ = [
    "CleanupMarker",
    "Lease",
    "LeaseHeartbeat",
    "LeaseLockConfig",
    "LockError",
    "LockManager",
    "LockStatistics",
    "LockStorageError",
    "LockStore",
    "LockUnavailable",
    "ProcessIdentity",
    "SQLiteLockStore",
    "StaticIdentity",
    "get_config",
]
