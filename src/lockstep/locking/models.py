"""Lock handle returned by a successful acquisition."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from lockstep.core.timestamps import from_epoch


class LockBackend(str, Enum):
    """Which store granted a lock."""

    SHARED = "shared"    # Distributed key-value store
    LOCAL = "local"      # Process-local fallback table


@dataclass(frozen=True)
class Lock:
    """A held lock.

    ``holder_token`` is unique per acquisition; only the holder of the
    token can release or extend the lock. ``expires_at`` is epoch seconds.
    """

    resource: str
    holder_token: str
    expires_at: float
    backend: LockBackend = LockBackend.SHARED

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def remaining(self, now: float) -> float:
        return max(0.0, self.expires_at - now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "resource": self.resource,
            "holder_token": self.holder_token,
            "expires_at": from_epoch(self.expires_at).isoformat(),
            "backend": self.backend.value,
        }


__all__ = ["Lock", "LockBackend"]
