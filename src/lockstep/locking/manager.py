"""
Lock Manager: mutual exclusion over named resources across processes.

Manifesto:
    Two workers syncing the same destination must never interleave.
    The manager grants at most one live lock per resource, identified by a
    fresh random token per acquisition, and always bounded by a TTL so a
    crashed holder cannot block others forever.

    Locking degrades rather than fails: when the shared store is
    unreachable, the acquisition falls back to a process-local table.
    Exclusion then only holds within this process; that trade-off is
    logged loudly (``lock_store_unavailable``).

Architecture:
    ::

        with_lock(resource, ttl, work)
          ├── acquire ×attempts   (delay + uniform(0, jitter) between tries)
          │     ├── shared store  set_if_absent(key, token, ttl)
          │     └── local store   on StoreUnavailableError
          ├── work()
          └── release (finally)   compare-and-delete on the granting store

Examples:
    >>> manager = LockManager()                       # local only
    >>> manager.with_lock("lock:global", 5.0, lambda: "done")
    'done'
    >>> with manager.hold(LockKeys.escrow("esc-1"), ttl=10.0) as lock:
    ...     lock.backend.value
    'local'

Tags:
    locking, distributed-lock, redis, ttl, fallback, lockstep
"""

from __future__ import annotations

import random
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, TypeVar

from lockstep.core.errors import LockTimeoutError, StoreUnavailableError, ValidationError
from lockstep.core.keys import validate_key
from lockstep.core.logging import get_logger
from lockstep.core.timestamps import Clock, SystemClock
from lockstep.execution.retry import JitteredConstantBackoff
from lockstep.locking.models import Lock, LockBackend
from lockstep.locking.store import InMemoryLockStore, LockStore, RedisLockStore

if TYPE_CHECKING:
    from lockstep.core.settings import LockstepSettings

T = TypeVar("T")

logger = get_logger(__name__)


class LockManager:
    """Acquire, release, and scope TTL locks.

    Args:
        store: Shared lock store; ``None`` means local-only locking
        local_store: Fallback table (created from ``clock`` if omitted)
        clock: Time source for expiry and retry sleeps
        attempts: Acquisition attempts made by ``with_lock``
        retry_delay: Base wait between attempts, in seconds
        retry_jitter: Upper bound of the uniform extra wait, in seconds
        default_ttl: TTL used when callers pass none
        rng: Random source for jitter
    """

    def __init__(
        self,
        store: LockStore | None = None,
        *,
        local_store: InMemoryLockStore | None = None,
        clock: Clock | None = None,
        attempts: int = 3,
        retry_delay: float = 0.2,
        retry_jitter: float = 0.2,
        default_ttl: float = 30.0,
        rng: random.Random | None = None,
    ):
        if attempts < 1:
            raise ValidationError("attempts must be >= 1", field="attempts", value=attempts)
        if default_ttl <= 0:
            raise ValidationError("default_ttl must be > 0", field="default_ttl", value=default_ttl)
        self._clock = clock or SystemClock()
        self._store = store
        self._local = local_store if local_store is not None else InMemoryLockStore(self._clock)
        self._default_ttl = default_ttl
        self._retry = JitteredConstantBackoff(
            max_attempts=attempts,
            delay=retry_delay,
            jitter=retry_jitter,
            rng=rng or random.Random(),
        )

    @classmethod
    def from_settings(
        cls,
        settings: LockstepSettings,
        *,
        clock: Clock | None = None,
    ) -> LockManager:
        """Build a manager from settings; Redis-backed when ``redis_url`` is set."""
        clock = clock or SystemClock()
        store: LockStore | None = None
        if settings.uses_redis:
            store = RedisLockStore(
                url=settings.redis_url,
                socket_timeout=settings.redis_socket_timeout,
            )
        return cls(
            store,
            local_store=InMemoryLockStore(
                clock, sweep_interval=settings.lock_sweep_interval_ms / 1000
            ),
            clock=clock,
            attempts=settings.lock_attempts,
            retry_delay=settings.lock_retry_delay_ms / 1000,
            retry_jitter=settings.lock_retry_jitter_ms / 1000,
            default_ttl=settings.lock_ttl_seconds,
        )

    # ── Properties ───────────────────────────────────────────────

    @property
    def attempts(self) -> int:
        return self._retry.max_attempts

    @property
    def default_ttl(self) -> float:
        return self._default_ttl

    @property
    def local_store(self) -> InMemoryLockStore:
        return self._local

    @property
    def store(self) -> LockStore | None:
        return self._store

    @property
    def distributed_available(self) -> bool:
        """True when a shared store is configured and answers a ping."""
        return self._store is not None and self._store.ping()

    # ── Single-attempt primitives ────────────────────────────────

    def _resolve_ttl(self, ttl: float | None) -> float:
        ttl = self._default_ttl if ttl is None else ttl
        if ttl <= 0:
            raise ValidationError("Lock TTL must be > 0", field="ttl", value=ttl)
        return ttl

    def acquire(self, resource: str, ttl: float | None = None) -> Lock | None:
        """Single non-blocking attempt; returns ``None`` if the resource is held."""
        validate_key(resource)
        ttl = self._resolve_ttl(ttl)
        token = uuid.uuid4().hex

        if self._store is not None:
            try:
                if not self._store.set_if_absent(resource, token, ttl):
                    return None
                return Lock(resource, token, self._clock.time() + ttl, LockBackend.SHARED)
            except StoreUnavailableError as e:
                logger.warning(
                    "lock_store_unavailable",
                    resource=resource,
                    operation="acquire",
                    fallback="local",
                    error=str(e),
                )

        if not self._local.set_if_absent(resource, token, ttl):
            return None
        return Lock(resource, token, self._clock.time() + ttl, LockBackend.LOCAL)

    def _store_for(self, lock: Lock) -> LockStore:
        if lock.backend == LockBackend.SHARED and self._store is not None:
            return self._store
        return self._local

    def release(self, lock: Lock) -> bool:
        """Release ``lock`` if its token still holds; stale releases return False."""
        try:
            released = self._store_for(lock).delete_if_match(lock.resource, lock.holder_token)
        except StoreUnavailableError as e:
            # TTL reclaims the entry
            logger.warning(
                "lock_release_failed",
                resource=lock.resource,
                backend=lock.backend.value,
                error=str(e),
            )
            return False
        if not released:
            logger.debug("lock_release_stale", resource=lock.resource, backend=lock.backend.value)
        return released

    def extend(self, lock: Lock, ttl: float | None = None) -> Lock | None:
        """Refresh the TTL of a held lock; ``None`` if it is no longer held."""
        ttl = self._resolve_ttl(ttl)
        try:
            extended = self._store_for(lock).extend_if_match(
                lock.resource, lock.holder_token, ttl
            )
        except StoreUnavailableError as e:
            logger.warning(
                "lock_extend_failed",
                resource=lock.resource,
                backend=lock.backend.value,
                error=str(e),
            )
            return None
        if not extended:
            return None
        return Lock(lock.resource, lock.holder_token, self._clock.time() + ttl, lock.backend)

    # ── Inspection ───────────────────────────────────────────────

    def holder(self, resource: str) -> str | None:
        """Token currently holding ``resource`` (shared store first, then local)."""
        validate_key(resource)
        if self._store is not None:
            try:
                token = self._store.get(resource)
                if token is not None:
                    return token
            except StoreUnavailableError as e:
                logger.debug("lock_store_unavailable", resource=resource, operation="get", error=str(e))
        return self._local.get(resource)

    def is_locked(self, resource: str) -> bool:
        return self.holder(resource) is not None

    # ── Scoped locking ───────────────────────────────────────────

    def _acquire_with_retry(self, resource: str, ttl: float | None) -> Lock:
        attempt = 0
        while True:
            attempt += 1
            lock = self.acquire(resource, ttl)
            if lock is not None:
                if attempt > 1:
                    logger.debug("lock_acquired_after_retry", resource=resource, attempt=attempt)
                return lock
            if not self._retry.should_retry(attempt):
                break
            delay = self._retry.next_delay(attempt)
            logger.debug("lock_contended", resource=resource, attempt=attempt, retry_in=delay)
            self._clock.sleep(delay)

        logger.warning("lock_timeout", resource=resource, attempts=attempt)
        raise LockTimeoutError(resource, attempts=attempt)

    def with_lock(self, resource: str, ttl: float | None, work: Callable[[], T]) -> T:
        """Run ``work`` while holding ``resource``.

        Raises:
            LockTimeoutError: if every acquisition attempt found the lock held
        """
        lock = self._acquire_with_retry(resource, ttl)
        try:
            return work()
        finally:
            self.release(lock)

    @contextmanager
    def hold(self, resource: str, ttl: float | None = None) -> Iterator[Lock]:
        """Context-manager form of :meth:`with_lock` yielding the held lock."""
        lock = self._acquire_with_retry(resource, ttl)
        try:
            yield lock
        finally:
            self.release(lock)


__all__ = ["LockManager"]
