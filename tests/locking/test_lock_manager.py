"""Tests for LockManager: acquisition, scoping, retries, and fallback."""

import random
import threading
from unittest.mock import MagicMock

import pytest

from lockstep.core.errors import LockTimeoutError, StoreUnavailableError, ValidationError
from lockstep.core.settings import LockstepSettings
from lockstep.locking.manager import LockManager
from lockstep.locking.models import Lock, LockBackend
from lockstep.locking.store import InMemoryLockStore, RedisLockStore


class TestAcquire:
    """Single non-blocking acquisition."""

    def test_second_acquire_returns_none(self, lock_manager):
        """Acquiring lock:test twice with TTL 5 s yields one lock and one None."""
        first = lock_manager.acquire("lock:test", 5.0)
        second = lock_manager.acquire("lock:test", 5.0)
        assert first is not None
        assert second is None

    def test_tokens_unique_per_acquisition(self, lock_manager):
        a = lock_manager.acquire("lock:a", 5.0)
        b = lock_manager.acquire("lock:b", 5.0)
        lock_manager.release(a)
        c = lock_manager.acquire("lock:a", 5.0)
        assert len({a.holder_token, b.holder_token, c.holder_token}) == 3

    def test_expiry_set_from_clock(self, lock_manager, clock):
        lock = lock_manager.acquire("lock:test", 5.0)
        assert lock.expires_at == clock.time() + 5.0
        assert lock.backend == LockBackend.LOCAL

    def test_available_after_ttl(self, lock_manager, clock):
        lock_manager.acquire("lock:test", 5.0)
        clock.advance(5.0)
        assert lock_manager.acquire("lock:test", 5.0) is not None

    def test_default_ttl(self, clock):
        manager = LockManager(clock=clock, default_ttl=12.0)
        lock = manager.acquire("lock:test")
        assert lock.remaining(clock.time()) == 12.0

    @pytest.mark.parametrize("ttl", [0, -1.0])
    def test_non_positive_ttl_rejected(self, lock_manager, ttl):
        with pytest.raises(ValidationError):
            lock_manager.acquire("lock:test", ttl)

    def test_invalid_key_rejected(self, lock_manager):
        with pytest.raises(ValidationError):
            lock_manager.acquire("", 5.0)

    def test_concurrent_acquire_single_winner(self):
        manager = LockManager()
        barrier = threading.Barrier(8)
        results = []

        def worker():
            barrier.wait()
            results.append(manager.acquire("lock:race", 5.0))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert sum(1 for r in results if r is not None) == 1


class TestRelease:
    def test_release_frees_resource(self, lock_manager):
        lock = lock_manager.acquire("lock:test", 5.0)
        assert lock_manager.release(lock) is True
        assert lock_manager.is_locked("lock:test") is False

    def test_stale_release_is_noop(self, lock_manager, clock):
        stale = lock_manager.acquire("lock:test", 1.0)
        clock.advance(2.0)
        current = lock_manager.acquire("lock:test", 5.0)
        assert lock_manager.release(stale) is False
        assert lock_manager.holder("lock:test") == current.holder_token

    def test_double_release(self, lock_manager):
        lock = lock_manager.acquire("lock:test", 5.0)
        assert lock_manager.release(lock) is True
        assert lock_manager.release(lock) is False


class TestExtend:
    def test_extend_refreshes_expiry(self, lock_manager, clock):
        lock = lock_manager.acquire("lock:test", 5.0)
        clock.advance(4.0)
        extended = lock_manager.extend(lock, 5.0)
        assert extended.expires_at == clock.time() + 5.0
        clock.advance(4.0)
        assert lock_manager.holder("lock:test") == lock.holder_token

    def test_extend_lost_lock(self, lock_manager, clock):
        lock = lock_manager.acquire("lock:test", 1.0)
        clock.advance(2.0)
        assert lock_manager.extend(lock, 5.0) is None


class TestWithLock:
    """Scoped acquisition with bounded retries."""

    def test_returns_work_result_and_releases(self, lock_manager):
        result = lock_manager.with_lock("lock:test", 5.0, lambda: 42)
        assert result == 42
        assert lock_manager.is_locked("lock:test") is False

    def test_work_runs_while_locked(self, lock_manager):
        seen = lock_manager.with_lock("lock:test", 5.0, lambda: lock_manager.is_locked("lock:test"))
        assert seen is True

    def test_releases_on_exception(self, lock_manager):
        def work():
            raise RuntimeError("work failed")

        with pytest.raises(RuntimeError, match="work failed"):
            lock_manager.with_lock("lock:test", 5.0, work)
        assert lock_manager.is_locked("lock:test") is False

    def test_timeout_after_attempts(self, lock_manager, clock):
        lock_manager.acquire("lock:test", 60.0)
        calls = []
        with pytest.raises(LockTimeoutError) as exc_info:
            lock_manager.with_lock("lock:test", 5.0, lambda: calls.append(1))
        assert calls == []
        assert exc_info.value.attempts == 3
        assert exc_info.value.resource == "lock:test"
        # two waits between three attempts, each 200 ms plus up to 200 ms jitter
        assert len(clock.sleeps) == 2
        assert all(0.2 <= s <= 0.4 for s in clock.sleeps)

    def test_acquires_once_holder_expires(self, clock, local_store):
        manager = LockManager(
            local_store=local_store, clock=clock, retry_delay=1.0, retry_jitter=0.0
        )
        manager.acquire("lock:test", 1.5)
        assert manager.with_lock("lock:test", 5.0, lambda: "got it") == "got it"
        assert clock.sleeps == [1.0, 1.0]

    def test_hold_context_manager(self, lock_manager):
        with lock_manager.hold("lock:test", 5.0) as lock:
            assert isinstance(lock, Lock)
            assert lock_manager.holder("lock:test") == lock.holder_token
        assert lock_manager.is_locked("lock:test") is False

    def test_nested_different_resources(self, lock_manager):
        def outer():
            return lock_manager.with_lock("lock:b", 5.0, lambda: "inner")

        assert lock_manager.with_lock("lock:a", 5.0, outer) == "inner"


class TestSharedStoreFallback:
    """Shared-store failures degrade to local locking per acquisition."""

    @pytest.fixture
    def shared(self):
        return MagicMock(spec=RedisLockStore)

    @pytest.fixture
    def manager(self, shared, clock, local_store):
        return LockManager(shared, local_store=local_store, clock=clock, rng=random.Random(0))

    def test_uses_shared_store(self, manager, shared, local_store):
        shared.set_if_absent.return_value = True
        lock = manager.acquire("lock:test", 5.0)
        assert lock.backend == LockBackend.SHARED
        shared.set_if_absent.assert_called_once_with("lock:test", lock.holder_token, 5.0)
        assert local_store.active() == {}

    def test_held_in_shared_store(self, manager, shared):
        shared.set_if_absent.return_value = False
        assert manager.acquire("lock:test", 5.0) is None

    def test_falls_back_to_local(self, manager, shared, local_store):
        shared.set_if_absent.side_effect = StoreUnavailableError("down")
        lock = manager.acquire("lock:test", 5.0)
        assert lock.backend == LockBackend.LOCAL
        assert local_store.get("lock:test") == lock.holder_token

    def test_fallback_still_exclusive(self, manager, shared):
        shared.set_if_absent.side_effect = StoreUnavailableError("down")
        assert manager.acquire("lock:test", 5.0) is not None
        assert manager.acquire("lock:test", 5.0) is None

    def test_next_acquisition_retries_shared(self, manager, shared):
        shared.set_if_absent.side_effect = [StoreUnavailableError("down"), True]
        assert manager.acquire("lock:a", 5.0).backend == LockBackend.LOCAL
        assert manager.acquire("lock:b", 5.0).backend == LockBackend.SHARED

    def test_release_routes_to_granting_store(self, manager, shared, local_store):
        shared.set_if_absent.side_effect = StoreUnavailableError("down")
        lock = manager.acquire("lock:test", 5.0)
        assert manager.release(lock) is True
        shared.delete_if_match.assert_not_called()

        shared.set_if_absent.side_effect = None
        shared.set_if_absent.return_value = True
        shared.delete_if_match.return_value = True
        lock = manager.acquire("lock:test", 5.0)
        assert manager.release(lock) is True
        shared.delete_if_match.assert_called_once_with("lock:test", lock.holder_token)

    def test_release_error_swallowed(self, manager, shared):
        shared.set_if_absent.return_value = True
        shared.delete_if_match.side_effect = StoreUnavailableError("down")
        lock = manager.acquire("lock:test", 5.0)
        assert manager.release(lock) is False

    def test_release_error_does_not_mask_work_error(self, manager, shared):
        shared.set_if_absent.return_value = True
        shared.delete_if_match.side_effect = StoreUnavailableError("down")

        def work():
            raise KeyError("original")

        with pytest.raises(KeyError, match="original"):
            manager.with_lock("lock:test", 5.0, work)

    def test_holder_checks_shared_then_local(self, manager, shared, local_store):
        shared.get.return_value = None
        local_store.set_if_absent("lock:test", "local-token", 5.0)
        assert manager.holder("lock:test") == "local-token"
        shared.get.return_value = "shared-token"
        assert manager.holder("lock:test") == "shared-token"

    def test_distributed_available(self, manager, shared, lock_manager):
        shared.ping.return_value = True
        assert manager.distributed_available is True
        shared.ping.return_value = False
        assert manager.distributed_available is False
        assert lock_manager.distributed_available is False


class TestFromSettings:
    def test_local_only_without_redis(self):
        manager = LockManager.from_settings(LockstepSettings(_env_file=None))
        assert manager.store is None
        assert manager.attempts == 3
        assert manager.default_ttl == 30.0

    def test_redis_backed(self, monkeypatch: pytest.MonkeyPatch):
        import redis

        monkeypatch.setattr(redis, "from_url", MagicMock(return_value=MagicMock()))
        settings = LockstepSettings(_env_file=None, redis_url="redis://cache:6379/0", lock_attempts=5)
        manager = LockManager.from_settings(settings)
        assert isinstance(manager.store, RedisLockStore)
        assert manager.attempts == 5
        assert isinstance(manager.local_store, InMemoryLockStore)

    def test_sweep_interval_from_settings(self):
        settings = LockstepSettings(_env_file=None, lock_sweep_interval_ms=5_000)
        manager = LockManager.from_settings(settings)
        assert manager.local_store._sweep_interval == 5.0


class TestSharedLocalTable:
    """Managers handed the same in-process table exclude each other."""

    def test_empty_table_is_kept(self, clock):
        table = InMemoryLockStore(clock)
        manager = LockManager(local_store=table, clock=clock)
        assert len(table) == 0
        assert manager.local_store is table

    def test_two_managers_exclude_each_other(self, clock):
        table = InMemoryLockStore(clock)
        first = LockManager(local_store=table, clock=clock)
        second = LockManager(local_store=table, clock=clock)
        assert first.acquire("lock:test", 5.0) is not None
        assert second.acquire("lock:test", 5.0) is None
        assert second.is_locked("lock:test")
