"""
Time helpers shared by logging, session bookkeeping and thought timestamps.

- Durations use the monotonic clock (immune to wall-clock changes)
- Records carry timezone-aware UTC datetimes / ISO strings
"""
from __future__ import annotations

import time
from datetime import datetime, timezone

_PROCESS_START_MONOTONIC = time.monotonic()
_PROCESS_START_WALL = time.time()


def monotonic_seconds() -> float:
    """Current monotonic time in seconds."""
    return time.monotonic()


def uptime_seconds() -> float:
    """Seconds since process start based on monotonic clock."""
    return time.monotonic() - _PROCESS_START_MONOTONIC


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime, ms: bool = True) -> str:
    """ISO-8601 UTC string with a trailing Z (e.g., 2025-08-25T12:34:56.789Z)."""
    dt = dt.astimezone(timezone.utc)
    if ms:
        return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return dt.isoformat().replace("+00:00", "Z")


def now_utc_iso(ms: bool = True) -> str:
    return to_iso(now_utc(), ms=ms)


def process_start_utc_iso() -> str:
    """UTC ISO for process start time (approx; uses wall clock at import)."""
    return to_iso(datetime.fromtimestamp(_PROCESS_START_WALL, tz=timezone.utc))

