"""Lease record stored in the lock table."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict

from leaselock.core.time import from_epoch_s, iso_z

# A holder that stops heartbeating is considered gone after this many
# multiples of its lease timeout.
HEARTBEAT_GRACE_FACTOR = 2


@dataclass(frozen=True)
class Lease:
    """A time-bounded claim on a named resource

    Attributes:
        lock_name: Resource being protected (unique in the store)
        lock_id: Identifier of this particular acquisition
        owner: Identity of the holding process
        acquired_at: Epoch seconds when the lease was created
        expires_at: Epoch seconds when the lease runs out
        timeout_seconds: Lease duration, grows when extended
        heartbeat_at: Epoch seconds of the last liveness proof
        metadata: Caller supplied context, not interpreted
    """
    lock_name: str
    lock_id: str
    owner: str
    acquired_at: float
    expires_at: float
    timeout_seconds: int
    heartbeat_at: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def is_heartbeat_stale(self, now: float) -> bool:
        return (now - self.heartbeat_at) >= HEARTBEAT_GRACE_FACTOR * self.timeout_seconds

    def is_live(self, now: float) -> bool:
        """Check whether the lease still excludes other holders"""
        return not self.is_expired(now) and not self.is_heartbeat_stale(now)

    def is_stale(self, now: float) -> bool:
        return not self.is_live(now)

    def held_for(self, now: float) -> float:
        """Seconds since acquisition"""
        return max(0.0, now - self.acquired_at)

    @property
    def acquired_dt(self) -> datetime:
        return from_epoch_s(self.acquired_at)

    @property
    def expires_dt(self) -> datetime:
        return from_epoch_s(self.expires_at)

    @property
    def heartbeat_dt(self) -> datetime:
        return from_epoch_s(self.heartbeat_at)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "lock_name": self.lock_name,
            "lock_id": self.lock_id,
            "owner": self.owner,
            "acquired_at": iso_z(self.acquired_at),
            "expires_at": iso_z(self.expires_at),
            "timeout_seconds": self.timeout_seconds,
            "heartbeat_at": iso_z(self.heartbeat_at),
            "metadata": dict(self.metadata),
        }
