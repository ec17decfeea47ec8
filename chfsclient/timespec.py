"""Seconds/nanoseconds time values, their formatting and difference."""

from __future__ import annotations

import time
from dataclasses import dataclass

NSEC_PER_SEC = 1_000_000_000


@dataclass(frozen=True, order=True)
class Timespec:
    """A point or span of time as whole seconds plus nanoseconds."""

    sec: int
    nsec: int = 0

    @classmethod
    def now(cls) -> "Timespec":
        """The current wall-clock time."""
        return cls(*divmod(time.time_ns(), NSEC_PER_SEC))


def timespec_str(ts: Timespec) -> str:
    """Format as ``YYYY-mm-dd HH:MM:SS.nnnnnnnnn +zzzz`` in local time."""
    tm = time.localtime(ts.sec)
    stamp = time.strftime("%Y-%m-%d %H:%M:%S", tm)
    return f"{stamp}.{ts.nsec:09d} {time.strftime('%z', tm)}"


def timespec_sub(t1: Timespec, t2: Timespec) -> Timespec:
    """Return ``t2 - t1``."""
    nsec = t2.nsec - t1.nsec
    borrow = 0
    if nsec < 0:
        nsec += NSEC_PER_SEC
        borrow = 1
    return Timespec(t2.sec - borrow - t1.sec, nsec)