"""
Time sources for lockstep.

Lock TTLs, breaker cooldowns, and retry backoff all read time through a
:class:`Clock` so that tests can drive them deterministically instead of
sleeping. Production code uses :class:`SystemClock`.

Two readings are exposed:

- ``time()`` is wall-clock epoch seconds. Lock ``expires_at`` values use
  it because they are meaningful across processes.
- ``monotonic()`` is for in-process intervals (breaker cooldown, sweep
  cadence) and never jumps backwards.
"""

from __future__ import annotations

import time as _time
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Injectable time source."""

    def time(self) -> float:
        """Wall-clock seconds since the epoch."""
        ...

    def monotonic(self) -> float:
        """Monotonic seconds, for measuring intervals."""
        ...

    def sleep(self, seconds: float) -> None:
        """Block the caller for ``seconds``."""
        ...


class SystemClock:
    """Clock backed by the ``time`` module."""

    def time(self) -> float:
        return _time.time()

    def monotonic(self) -> float:
        return _time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            _time.sleep(seconds)


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def from_epoch(ts: float) -> datetime:
    """Convert epoch seconds to an aware UTC datetime."""
    return datetime.fromtimestamp(ts, UTC)


__all__ = ["Clock", "SystemClock", "utc_now", "from_epoch"]
