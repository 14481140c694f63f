"""Heartbeat Thread - keeps a held lease provably alive

A lease whose holder stops heartbeating for twice its timeout is reclaimed by
the sweep. Long-running holders either call LockManager.heartbeat() from
their own loop or run this thread next to their work.

Design:
- One daemon thread per held lock
- Heartbeat only refreshes heartbeat_at; it never extends expires_at
- Stops on stop(), on lease loss, or after max_failures storage errors
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Callable, Optional

from leaselock.core.locks.exceptions import LockStorageError

if TYPE_CHECKING:
    from leaselock.core.locks.manager import LockManager

logger = logging.getLogger(__name__)


class LeaseHeartbeat:
    """Background thread that sends periodic heartbeats for one lock

    Example:
        >>> keeper = LeaseHeartbeat(manager, "nightly-report", interval_seconds=30)
        >>> keeper.start()
        >>> # ... do work ...
        >>> keeper.stop()
    """

    def __init__(
        self,
        manager: "LockManager",
        lock_name: str,
        interval_seconds: float = 30,
        max_failures: int = 3,
        on_lease_lost: Optional[Callable[[], None]] = None
    ):
        """Initialize heartbeat thread

        Args:
            manager: LockManager holding the lock
            lock_name: Lock to heartbeat
            interval_seconds: How often to send heartbeats
            max_failures: Consecutive storage errors before giving up
            on_lease_lost: Optional callback when the lease is lost
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self.manager = manager
        self.lock_name = lock_name
        self.interval_seconds = interval_seconds
        self.max_failures = max_failures
        self.on_lease_lost = on_lease_lost

        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._failure_count = 0
        self.lease_lost = False

    def start(self) -> None:
        """Start the heartbeat thread"""
        if self.is_running():
            logger.warning(f"Heartbeat already running for {self.lock_name}")
            return

        self._stop_event.clear()
        self._failure_count = 0
        self.lease_lost = False

        self._thread = threading.Thread(
            target=self._heartbeat_loop,
            name=f"Heartbeat-{self.lock_name}",
            daemon=True
        )
        self._thread.start()

        logger.debug(
            f"Heartbeat started: lock={self.lock_name}, "
            f"interval={self.interval_seconds}s"
        )

    def stop(self, wait: bool = True, timeout: float = 5.0) -> None:
        """Stop the heartbeat thread

        Args:
            wait: Whether to wait for the thread to finish
            timeout: Maximum time to wait in seconds
        """
        self._stop_event.set()

        if wait and self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning(
                    f"Heartbeat thread for {self.lock_name} did not stop within timeout"
                )

        logger.debug(f"Heartbeat stopped: lock={self.lock_name}")

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _heartbeat_loop(self) -> None:
        while not self._stop_event.wait(timeout=self.interval_seconds):
            try:
                alive = self.manager.heartbeat(self.lock_name)
            except LockStorageError as e:
                self._handle_failure(str(e))
                continue

            if alive:
                self._failure_count = 0
            else:
                self._handle_lease_lost("heartbeat rejected (expired or not owner)")

    def _handle_failure(self, reason: str) -> None:
        self._failure_count += 1
        logger.warning(
            f"Heartbeat failure ({self._failure_count}/{self.max_failures}) "
            f"for {self.lock_name}: {reason}"
        )

        if self._failure_count >= self.max_failures:
            self._handle_lease_lost(f"Max failures: {reason}")

    def _handle_lease_lost(self, reason: str) -> None:
        logger.error(f"Lease lost for {self.lock_name}: {reason}")
        self.lease_lost = True
        self._stop_event.set()

        if self.on_lease_lost:
            try:
                self.on_lease_lost()
            except Exception as e:
                logger.exception(f"Error in lease lost callback: {e}")
