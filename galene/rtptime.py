"""RTP and NTP time manipulation.

Durations are integer nanoseconds; wall-clock times are integer
nanoseconds since the Unix epoch, as returned by time.time_ns().
"""

from __future__ import annotations

import time

NANOSECONDS_PER_SECOND = 1_000_000_000

# The number of jiffies in a second: the LCM of 48000, 96000 and 65536.
JIFFIES_PER_SEC = 24_576_000

# The origin of NTP time (1900-01-01 UTC), in Unix nanoseconds.
NTP_EPOCH_NS = -2_208_988_800 * NANOSECONDS_PER_SECOND

_MASK32 = 0xFFFFFFFF
_MASK64 = 0xFFFFFFFFFFFFFFFF

# Arbitrary origin of the local clocks.
_EPOCH_MONOTONIC_NS = time.monotonic_ns()
_EPOCH_WALL_NS = time.time_ns()


def from_duration(d: int, hz: int) -> int:
    """Convert a duration in nanoseconds into units of 1/hz."""
    if d < 0:
        return -from_duration(-d, hz)
    return d * hz // NANOSECONDS_PER_SECOND


def to_duration(tm: int, hz: int) -> int:
    """Convert units of 1/hz into a duration in nanoseconds."""
    if tm < 0:
        return -to_duration(-tm, hz)
    return tm * NANOSECONDS_PER_SECOND // hz


def now(hz: int) -> int:
    """Current time in units of 1/hz from an arbitrary origin."""
    elapsed = time.monotonic_ns() - _EPOCH_MONOTONIC_NS
    return from_duration(elapsed, hz) & _MASK64


def microseconds() -> int:
    """Like now, in microseconds."""
    return now(1_000_000)


def jiffies() -> int:
    """Current time in jiffies."""
    return now(JIFFIES_PER_SEC)


def time_to_jiffies(tm: int) -> int:
    """Convert a wall-clock time in Unix nanoseconds into jiffies."""
    return from_duration(tm - _EPOCH_WALL_NS, JIFFIES_PER_SEC) & _MASK64


def ntp_to_time(ntp: int) -> int:
    """Convert a 64-bit NTP timestamp into Unix nanoseconds."""
    sec = (ntp >> 32) & _MASK32
    frac = ntp & _MASK32
    return (
        NTP_EPOCH_NS
        + sec * NANOSECONDS_PER_SECOND
        + ((frac * NANOSECONDS_PER_SECOND) >> 32)
    )


def time_to_ntp(tm: int) -> int:
    """Convert Unix nanoseconds into a 64-bit NTP timestamp."""
    d = tm - NTP_EPOCH_NS
    sec, frac = divmod(abs(d), NANOSECONDS_PER_SECOND)
    if d < 0:
        sec, frac = -sec, -frac
    sec &= _MASK32
    frac &= _MASK32
    return ((sec << 32) + ((frac << 32) // NANOSECONDS_PER_SECOND)) & _MASK64