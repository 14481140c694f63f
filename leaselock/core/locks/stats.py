"""Lock statistics snapshot."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional

from leaselock.core.locks.lease import Lease
from leaselock.core.time import iso_z


@dataclass
class LockStatistics:
    """Aggregate view of the active leases

    Attributes:
        total_active_locks: Number of live leases
        locks_by_owner: Live lease count per owner
        average_lock_duration: Mean seconds the live leases have been held
        longest_held_lock: Name, owner, duration and acquired_at of the oldest live lease
        total_locks_today: Rows acquired since UTC midnight (live or not)
    """
    total_active_locks: int = 0
    locks_by_owner: Dict[str, int] = field(default_factory=dict)
    average_lock_duration: float = 0.0
    longest_held_lock: Optional[Dict[str, Any]] = None
    total_locks_today: int = 0

    @classmethod
    def from_leases(cls, active: Iterable[Lease], now: float, total_today: int = 0) -> "LockStatistics":
        stats = cls(total_locks_today=total_today)
        durations = []

        for lease in active:
            stats.locks_by_owner[lease.owner] = stats.locks_by_owner.get(lease.owner, 0) + 1

            held = lease.held_for(now)
            durations.append(held)
            if stats.longest_held_lock is None or held > stats.longest_held_lock["duration"]:
                stats.longest_held_lock = {
                    "lock_name": lease.lock_name,
                    "owner": lease.owner,
                    "duration": held,
                    "acquired_at": iso_z(lease.acquired_at),
                }

        stats.total_active_locks = len(durations)
        if durations:
            stats.average_lock_duration = sum(durations) / len(durations)
        return stats

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_active_locks": self.total_active_locks,
            "locks_by_owner": dict(self.locks_by_owner),
            "average_lock_duration": self.average_lock_duration,
            "longest_held_lock": self.longest_held_lock,
            "total_locks_today": self.total_locks_today,
        }
