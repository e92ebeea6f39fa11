"""Tests for the Lock handle."""

from dataclasses import FrozenInstanceError

import pytest

from lockstep.locking.models import Lock, LockBackend


class TestLock:
    def test_expiry(self):
        lock = Lock("lock:test", "tok", expires_at=100.0)
        assert lock.is_expired(99.9) is False
        assert lock.is_expired(100.0) is True
        assert lock.remaining(95.0) == 5.0
        assert lock.remaining(120.0) == 0.0

    def test_frozen(self):
        lock = Lock("lock:test", "tok", expires_at=100.0)
        with pytest.raises(FrozenInstanceError):
            lock.holder_token = "other"  # type: ignore[misc]

    def test_to_dict(self):
        data = Lock("lock:test", "tok", 0.0, LockBackend.LOCAL).to_dict()
        assert data["backend"] == "local"
        assert data["expires_at"].startswith("1970-01-01T00:00:00")
