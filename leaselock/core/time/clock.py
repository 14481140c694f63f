"""
Unified clock for leaselock

Rules:
1. Internal time is always UTC
2. Lease timestamps are stored as epoch seconds (REAL) so that expiry and
   heartbeat windows can be compared with plain arithmetic inside SQL
3. Do not call datetime.now() / time.time() elsewhere; use this module
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Current UTC time (timezone-aware)

    Returns:
        datetime: aware UTC datetime object
    """
    return datetime.now(timezone.utc)


def epoch_now() -> float:
    """
    Current UTC time as epoch seconds

    This is the default clock of LockManager.

    Returns:
        float: seconds since 1970-01-01T00:00:00Z
    """
    return utc_now().timestamp()


def from_epoch_s(s: float) -> datetime:
    """
    Convert epoch seconds to an aware UTC datetime

    Example:
        >>> from_epoch_s(1769860800).year
        2026
    """
    return datetime.fromtimestamp(s, tz=timezone.utc)


def to_epoch_s(dt: datetime) -> float:
    """
    Convert a datetime to epoch seconds

    Note:
        Naive datetimes are declared UTC, not converted.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def utc_midnight(now: Optional[float] = None) -> float:
    """
    Epoch seconds of the most recent UTC midnight

    Args:
        now: reference time in epoch seconds (default: current time)
    """
    dt = from_epoch_s(now) if now is not None else utc_now()
    midnight = dt.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight.timestamp()


def iso_z(value) -> Optional[str]:
    """
    Format a datetime or epoch seconds as ISO 8601 with a Z suffix

    Args:
        value: aware/naive datetime, epoch seconds, or None

    Returns:
        'YYYY-MM-DDTHH:MM:SS.ffffffZ' or None
    """
    if value is None:
        return None
    if isinstance(value, (int, float)):
        value = from_epoch_s(value)
    elif value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.%fZ')
