"""Lock-related exceptions."""

from __future__ import annotations

from typing import Optional


class LockError(RuntimeError):
    """Base exception for lock manager failures."""


class LockUnavailable(LockError):
    """Raised by scoped acquisition when the lock is held by someone else."""

    def __init__(
        self,
        lock_name: str,
        owner: Optional[str] = None,
        message: Optional[str] = None,
    ):
        """
        Initialize lock unavailable exception.

        Args:
            lock_name: Lock that could not be acquired
            owner: Current owner of the lock (if known)
            message: Optional custom message
        """
        self.lock_name = lock_name
        self.owner = owner

        if message is None:
            message = f"Could not acquire lock: {lock_name}"
            if owner:
                message += f", owner={owner}"

        super().__init__(message)


class LockStorageError(LockError):
    """Raised when the lock store is unreachable or fails unexpectedly."""
