"""
leaselock time module

Every lease comparison goes through these helpers so that the whole package
agrees on one notion of "now".

Usage:
    from leaselock.core.time import epoch_now, from_epoch_s

    now = epoch_now()  # float epoch seconds, UTC
    dt = from_epoch_s(now)  # aware UTC datetime
"""

from .clock import (
    utc_now,
    epoch_now,
    from_epoch_s,
    to_epoch_s,
    utc_midnight,
    iso_z,
)

__all__ = [
    'utc_now',
    'epoch_now',
    'from_epoch_s',
    'to_epoch_s',
    'utc_midnight',
    'iso_z',
]
