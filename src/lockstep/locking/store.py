"""
Lock stores: atomic set-if-absent / compare-and-delete primitives.

Manifesto:
    Mutual exclusion is only as strong as the store's atomic primitives.
    A store never decides *whether* to lock; it exposes four operations
    and the :class:`~lockstep.locking.manager.LockManager` composes them:

    - ``set_if_absent``   claim a key with a TTL, only if no live entry
    - ``get``             current holder token (``None`` if free/expired)
    - ``delete_if_match`` release only if the caller's token still holds
    - ``extend_if_match`` refresh the TTL only if the token still holds

Architecture:
    ::

        LockStore (protocol)
        ├── RedisLockStore      SET NX PX + Lua compare-and-delete/extend
        │                       errors -> StoreUnavailableError
        └── InMemoryLockStore   dict guarded by threading.Lock
                                lazy expiry + opportunistic sweep

Tags:
    locking, redis, lua, ttl, in-memory, lockstep
"""

from __future__ import annotations

import threading
from typing import Protocol, runtime_checkable

import redis
from redis.exceptions import RedisError

from lockstep.core.errors import StoreUnavailableError
from lockstep.core.logging import get_logger
from lockstep.core.timestamps import Clock, SystemClock

logger = get_logger(__name__)


@runtime_checkable
class LockStore(Protocol):
    """Atomic primitives a lock backend must provide."""

    def set_if_absent(self, key: str, token: str, ttl_seconds: float) -> bool: ...

    def get(self, key: str) -> str | None: ...

    def delete_if_match(self, key: str, token: str) -> bool: ...

    def extend_if_match(self, key: str, token: str, ttl_seconds: float) -> bool: ...

    def ping(self) -> bool: ...


def _ttl_ms(ttl_seconds: float) -> int:
    return max(1, int(ttl_seconds * 1000))


# =============================================================================
# REDIS
# =============================================================================

# Both scripts compare the stored token before touching the key, so a
# holder whose lock expired and was re-acquired cannot affect the new holder.
RELEASE_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
else
    return 0
end
"""

EXTEND_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("PEXPIRE", KEYS[1], ARGV[2])
else
    return 0
end
"""


class RedisLockStore:
    """Lock store backed by a shared Redis instance.

    Args:
        client: Existing ``redis.Redis`` client (takes precedence)
        url: Connection URL (``redis://host:port/db``) when no client is given
        socket_timeout: Seconds before a blocked Redis call gives up

    Every Redis failure is re-raised as :class:`StoreUnavailableError` so
    the manager can decide whether to fall back.
    """

    def __init__(
        self,
        client: redis.Redis | None = None,
        *,
        url: str | None = None,
        socket_timeout: float = 2.0,
    ):
        if client is None:
            if not url:
                raise ValueError("RedisLockStore requires either a client or a url")
            client = redis.from_url(
                url,
                decode_responses=True,
                socket_timeout=socket_timeout,
                socket_connect_timeout=socket_timeout,
            )
        self._client = client
        self._release = client.register_script(RELEASE_SCRIPT)
        self._extend = client.register_script(EXTEND_SCRIPT)

    @property
    def client(self) -> redis.Redis:
        return self._client

    def _unavailable(self, operation: str, key: str, exc: Exception) -> StoreUnavailableError:
        return StoreUnavailableError(
            f"Lock store unavailable during {operation}: {exc}",
            cause=exc,
        ).with_context(resource=key, operation=operation)

    def set_if_absent(self, key: str, token: str, ttl_seconds: float) -> bool:
        try:
            return bool(self._client.set(key, token, nx=True, px=_ttl_ms(ttl_seconds)))
        except (RedisError, OSError) as e:
            raise self._unavailable("set", key, e) from e

    def get(self, key: str) -> str | None:
        try:
            value = self._client.get(key)
        except (RedisError, OSError) as e:
            raise self._unavailable("get", key, e) from e
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def delete_if_match(self, key: str, token: str) -> bool:
        try:
            return bool(self._release(keys=[key], args=[token]))
        except (RedisError, OSError) as e:
            raise self._unavailable("release", key, e) from e

    def extend_if_match(self, key: str, token: str, ttl_seconds: float) -> bool:
        try:
            return bool(self._extend(keys=[key], args=[token, _ttl_ms(ttl_seconds)]))
        except (RedisError, OSError) as e:
            raise self._unavailable("extend", key, e) from e

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except (RedisError, OSError) as e:
            logger.debug("lock_store_ping_failed", error=str(e))
            return False

    def close(self) -> None:
        self._client.close()


# =============================================================================
# IN-MEMORY
# =============================================================================


class InMemoryLockStore:
    """Process-local lock table with TTL.

    Entries are ``key -> (token, expires_at)`` with ``expires_at`` in epoch
    seconds from ``clock.time()``. Every read checks expiry, so a stale
    entry is never reported as held even if no sweep has run. Mutations
    additionally sweep the whole table once ``sweep_interval`` seconds have
    passed since the previous sweep.
    """

    def __init__(self, clock: Clock | None = None, sweep_interval: float = 60.0):
        self._clock = clock or SystemClock()
        self._sweep_interval = sweep_interval
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = self._clock.monotonic()

    def _live(self, key: str, now: float) -> tuple[str, float] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if now >= entry[1]:
            del self._entries[key]
            return None
        return entry

    def _sweep_locked(self, now: float) -> int:
        expired = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        self._last_sweep = self._clock.monotonic()
        return len(expired)

    def _maybe_sweep(self, now: float) -> None:
        if self._clock.monotonic() - self._last_sweep >= self._sweep_interval:
            removed = self._sweep_locked(now)
            if removed:
                logger.debug("local_locks_swept", removed=removed)

    def set_if_absent(self, key: str, token: str, ttl_seconds: float) -> bool:
        with self._lock:
            now = self._clock.time()
            self._maybe_sweep(now)
            if self._live(key, now) is not None:
                return False
            self._entries[key] = (token, now + ttl_seconds)
            return True

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._live(key, self._clock.time())
            return entry[0] if entry else None

    def delete_if_match(self, key: str, token: str) -> bool:
        with self._lock:
            now = self._clock.time()
            self._maybe_sweep(now)
            entry = self._live(key, now)
            if entry is None or entry[0] != token:
                return False
            del self._entries[key]
            return True

    def extend_if_match(self, key: str, token: str, ttl_seconds: float) -> bool:
        with self._lock:
            now = self._clock.time()
            entry = self._live(key, now)
            if entry is None or entry[0] != token:
                return False
            self._entries[key] = (token, now + ttl_seconds)
            return True

    def sweep(self) -> int:
        """Remove every expired entry; returns how many were removed."""
        with self._lock:
            return self._sweep_locked(self._clock.time())

    def active(self) -> dict[str, tuple[str, float]]:
        """Snapshot of live entries as ``key -> (token, expires_at)``."""
        with self._lock:
            now = self._clock.time()
            return {
                key: entry for key, entry in self._entries.items() if now < entry[1]
            }

    def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        return len(self.active())


__all__ = [
    "EXTEND_SCRIPT",
    "InMemoryLockStore",
    "LockStore",
    "RELEASE_SCRIPT",
    "RedisLockStore",
]
