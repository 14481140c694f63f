"""Lock Manager - lease-based named locks over a shared store

Lets independent processes (web workers, scheduled jobs, CLI invocations)
take turns on a named resource. There is no lock server and no in-process
mutex: exclusion comes entirely from the store's atomic insert.

Design:
- acquire() is a single INSERT guarded by UNIQUE(lock_name); the preliminary
  read only avoids pointless writes
- A conflicting row that is already stale is reclaimed and the insert is
  retried once
- release/extend/heartbeat are single owner-checked statements; a caller
  that is not the owner simply gets False
- Stale rows are swept at most once per cleanup_interval, opportunistically
  from acquire()
"""

from __future__ import annotations

import atexit
import logging
import math
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar

from ulid import ULID

from leaselock.core.config import LeaseLockConfig, get_config
from leaselock.core.locks.exceptions import LockError, LockUnavailable
from leaselock.core.locks.heartbeat import LeaseHeartbeat
from leaselock.core.locks.identity import ProcessIdentity
from leaselock.core.locks.lease import Lease
from leaselock.core.locks.stats import LockStatistics
from leaselock.core.locks.store import LockStore, SQLiteLockStore
from leaselock.core.locks.sweep import CleanupMarker
from leaselock.core.storage.paths import default_cleanup_marker_path
from leaselock.core.time import epoch_now, utc_midnight

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LockManager:
    """Acquire, hold and release named leases

    Example:
        >>> manager = LockManager.from_config()
        >>> if manager.acquire("cron_scheduler_execution", timeout=50):
        ...     try:
        ...         run_jobs()
        ...     finally:
        ...         manager.release("cron_scheduler_execution")

        >>> manager.with_lock("report-job", build_report, timeout=120)
    """

    def __init__(
        self,
        store: LockStore,
        identity=None,
        *,
        default_timeout: int = 300,
        cleanup_interval: int = 3600,
        cleanup_marker: Optional[CleanupMarker] = None,
        wait_poll_interval: float = 1.0,
        clock: Callable[[], float] = epoch_now,
    ):
        """Initialize lock manager

        Args:
            store: Shared lock store
            identity: Object with owner() -> str (default: host:user:pid)
            default_timeout: Lease duration when acquire() gets none
            cleanup_interval: Minimum seconds between two sweeps
            cleanup_marker: Where the last sweep time is recorded
            wait_poll_interval: Seconds between attempts in wait_and_acquire()
            clock: Epoch-seconds clock used for every lease comparison
        """
        if default_timeout < 0:
            raise ValueError("default_timeout must be >= 0")
        if wait_poll_interval <= 0:
            raise ValueError("wait_poll_interval must be positive")

        self.store = store
        self.identity = identity if identity is not None else ProcessIdentity()
        self.default_timeout = default_timeout
        self.cleanup_interval = cleanup_interval
        self.cleanup_marker = cleanup_marker or CleanupMarker(
            default_cleanup_marker_path(getattr(store, "db_path", None))
        )
        self.wait_poll_interval = wait_poll_interval
        self._clock = clock
        self._shutdown_hook_registered = False

    @classmethod
    def from_config(
        cls,
        config: Optional[LeaseLockConfig] = None,
        identity=None,
        db_path: Optional[Path] = None,
    ) -> "LockManager":
        """Build a manager (and its SQLite store) from settings"""
        config = config or get_config()
        db_path = db_path or config.resolved_db_path
        store = SQLiteLockStore(
            db_path,
            busy_timeout_ms=config.sqlite_busy_timeout,
        )
        return cls(
            store,
            identity,
            default_timeout=config.default_timeout,
            cleanup_interval=config.cleanup_interval,
            cleanup_marker=CleanupMarker(
                config.cleanup_marker_path or default_cleanup_marker_path(db_path)
            ),
            wait_poll_interval=config.wait_poll_interval,
        )

    @property
    def owner(self) -> str:
        """Identity this manager proves ownership with"""
        return self.identity.owner()

    def _resolve_timeout(self, timeout: Optional[int]) -> int:
        if timeout is None:
            return self.default_timeout
        if timeout < 0:
            raise ValueError(f"timeout must be >= 0, got {timeout}")
        # Round up: a fractional lease must never be shorter than requested
        return math.ceil(timeout)

    @staticmethod
    def _check_name(lock_name: str) -> None:
        if not lock_name:
            raise ValueError("lock_name must be a non-empty string")

    def _new_lease(self, lock_name: str, timeout: int, metadata: Dict[str, Any]) -> Lease:
        now = self._clock()
        return Lease(
            lock_name=lock_name,
            lock_id=str(ULID()),
            owner=self.owner,
            acquired_at=now,
            expires_at=now + timeout,
            timeout_seconds=timeout,
            heartbeat_at=now,
            metadata=metadata,
        )

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def _acquire(
        self,
        lock_name: str,
        timeout: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[Lease]:
        self._check_name(lock_name)
        timeout = self._resolve_timeout(timeout)
        metadata = dict(metadata or {})

        self.cleanup_stale_locks()

        existing = self.store.get(lock_name)
        if existing is not None and existing.is_live(self._clock()):
            logger.debug(
                f"Lock busy: lock={lock_name}, owner={existing.owner}, "
                f"lock_id={existing.lock_id}"
            )
            return None

        lease = self._new_lease(lock_name, timeout, metadata)
        if not self.store.insert(lease):
            # Someone holds the name; reclaim it only if that row is dead
            if not self.store.delete_if_stale(lock_name, self._clock()):
                logger.debug(f"Lock busy: lock={lock_name} (lost insert race)")
                return None

            logger.info(f"Reclaimed stale lock: lock={lock_name}")
            lease = self._new_lease(lock_name, timeout, metadata)
            if not self.store.insert(lease):
                logger.debug(f"Lock busy: lock={lock_name} (lost race after reclaim)")
                return None

        logger.info(
            f"Lock acquired: lock={lock_name}, lock_id={lease.lock_id}, "
            f"owner={lease.owner}, timeout={timeout}s"
        )
        return lease

    def acquire(
        self,
        lock_name: str,
        timeout: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Try to take the lock without blocking

        Args:
            lock_name: Resource to lock
            timeout: Lease duration in seconds (default: default_timeout)
            metadata: Opaque context stored with the lease

        Returns:
            True if this caller now holds the lock, False if it is busy

        Raises:
            LockStorageError: If the store fails
        """
        return self._acquire(lock_name, timeout, metadata) is not None

    def release(self, lock_name: str) -> bool:
        """Release a lock held by this caller

        A stale row still carrying this caller's identity is removed as well,
        but reported as False since the lease had already lapsed.

        Returns:
            True if a live lease owned by this caller was released
        """
        owner = self.owner
        removed = self.store.delete_owned(lock_name, owner)

        if removed is None:
            logger.debug(f"Lock release skipped - not held: lock={lock_name}, owner={owner}")
            return False

        now = self._clock()
        if removed.is_stale(now):
            logger.warning(
                f"Released lapsed lease: lock={lock_name}, lock_id={removed.lock_id}"
            )
            return False

        logger.info(
            f"Lock released: lock={lock_name}, lock_id={removed.lock_id}, "
            f"held_duration={removed.held_for(now):.1f}s"
        )
        return True

    def force_release(self, lock_name: str) -> bool:
        """Remove a lock regardless of owner (operator use)"""
        removed = self.store.delete(lock_name)
        if removed is None:
            return False

        logger.warning(
            f"Lock force released: lock={lock_name}, lock_id={removed.lock_id}, "
            f"original_owner={removed.owner}, forced_by={self.owner}"
        )
        return True

    def extend(self, lock_name: str, additional_seconds: int) -> bool:
        """Push the expiry of a live lease held by this caller

        Both expires_at and timeout_seconds grow by additional_seconds.

        Returns:
            False if the lease is missing, expired or owned by someone else
        """
        if additional_seconds < 0:
            raise ValueError(f"additional_seconds must be >= 0, got {additional_seconds}")

        extended = self.store.extend(lock_name, self.owner, math.ceil(additional_seconds), self._clock())
        if extended:
            logger.info(f"Lock extended: lock={lock_name}, additional_seconds={additional_seconds}")
        else:
            logger.debug(f"Lock extend rejected: lock={lock_name}")
        return extended

    def heartbeat(self, lock_name: str) -> bool:
        """Prove liveness of a held lease without moving its deadline"""
        alive = self.store.touch(lock_name, self.owner, self._clock())
        if not alive:
            logger.debug(f"Heartbeat rejected: lock={lock_name}")
        return alive

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_locked(self, lock_name: str) -> bool:
        lease = self.store.get(lock_name)
        return lease is not None and lease.is_live(self._clock())

    def get_lock_info(self, lock_name: str) -> Optional[Lease]:
        """Stored lease for lock_name, even if it has lapsed"""
        return self.store.get(lock_name)

    def get_active_locks(self) -> List[Lease]:
        """Live leases, most recently acquired first"""
        return self.store.list_leases(live_at=self._clock())

    def get_statistics(self) -> LockStatistics:
        now = self._clock()
        return LockStatistics.from_leases(
            self.store.list_leases(live_at=now),
            now,
            total_today=self.store.count_acquired_since(utc_midnight(now)),
        )

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    def cleanup_stale_locks(self, force: bool = False) -> int:
        """Delete leases that expired or stopped heartbeating

        Runs at most once per cleanup_interval unless force is set.

        Returns:
            Number of leases deleted (0 when the sweep was not due)
        """
        now = self._clock()
        if not force and not self.cleanup_marker.is_due(now, self.cleanup_interval):
            return 0

        deleted = self.store.delete_stale(now)
        if deleted > 0:
            logger.info(f"Cleaned up stale locks: count={deleted}")

        self.cleanup_marker.record(now)
        return deleted

    # ------------------------------------------------------------------
    # Convenience wrappers
    # ------------------------------------------------------------------

    @contextmanager
    def hold(
        self,
        lock_name: str,
        timeout: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
        heartbeat_interval: Optional[float] = None,
    ) -> Iterator[Lease]:
        """Hold a lock for the duration of a with-block

        Args:
            heartbeat_interval: If set, heartbeat in the background every N seconds

        Raises:
            LockUnavailable: If the lock is held by someone else
        """
        lease = self._acquire(lock_name, timeout, metadata)
        if lease is None:
            current = self.store.get(lock_name)
            raise LockUnavailable(lock_name, owner=current.owner if current else None)

        keeper = None
        try:
            if heartbeat_interval:
                keeper = LeaseHeartbeat(self, lock_name, interval_seconds=heartbeat_interval)
                keeper.start()
            yield lease
        finally:
            if keeper is not None:
                keeper.stop()
            self.release(lock_name)

    def with_lock(
        self,
        lock_name: str,
        callback: Callable[[], T],
        timeout: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
        heartbeat_interval: Optional[float] = None,
    ) -> T:
        """Run callback while holding the lock; release on every exit path

        Raises:
            LockUnavailable: If the lock cannot be acquired (callback not run)
        """
        with self.hold(lock_name, timeout, metadata, heartbeat_interval):
            return callback()

    def try_with_lock(
        self,
        lock_name: str,
        callback: Callable[[], T],
        timeout: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[T]:
        """Like with_lock(), but return None instead of raising when busy"""
        if not self.acquire(lock_name, timeout, metadata):
            return None

        try:
            return callback()
        finally:
            self.release(lock_name)

    def wait_and_acquire(
        self,
        lock_name: str,
        timeout: Optional[int] = None,
        wait_timeout: float = 60,
        metadata: Optional[Dict[str, Any]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> bool:
        """Poll acquire() until it succeeds or wait_timeout runs out

        No ordering between waiters: whoever polls first after a release wins.

        Args:
            wait_timeout: Overall bound in seconds (monotonic clock)
            cancel_event: Setting it ends the wait early

        Returns:
            True once acquired, False on timeout or cancellation
        """
        waiter = cancel_event if cancel_event is not None else threading.Event()
        started = time.monotonic()
        deadline = started + wait_timeout

        while True:
            if self.acquire(lock_name, timeout, metadata):
                return True

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break

            if waiter.wait(min(self.wait_poll_interval, remaining)):
                logger.info(f"Wait and acquire cancelled: lock={lock_name}")
                return False

        logger.warning(
            f"Wait and acquire timeout: lock={lock_name}, wait_timeout={wait_timeout}s, "
            f"elapsed={time.monotonic() - started:.1f}s"
        )
        return False

    def release_all_owned_locks(self) -> int:
        """Drop every lease held under this manager's identity

        Intended for graceful shutdown; calling it again returns 0.
        """
        owner = self.owner
        deleted = self.store.delete_by_owner(owner)
        if deleted > 0:
            logger.info(f"Released all owned locks: count={deleted}, owner={owner}")
        return deleted

    # ------------------------------------------------------------------
    # Process lifecycle
    # ------------------------------------------------------------------

    def register_shutdown_hook(self) -> None:
        """Release this process's leases at interpreter exit"""
        if self._shutdown_hook_registered:
            return
        atexit.register(self._release_on_shutdown)
        self._shutdown_hook_registered = True

    def _release_on_shutdown(self) -> None:
        try:
            self.release_all_owned_locks()
        except LockError as e:
            logger.error(f"Failed to release owned locks on shutdown: {e}")

    def __enter__(self) -> "LockManager":
        return self

    def __exit__(self, *args: object) -> None:
        self.release_all_owned_locks()
