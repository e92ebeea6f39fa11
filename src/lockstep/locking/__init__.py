"""lockstep.locking: TTL locks over a shared store with local fallback."""

from lockstep.locking.manager import LockManager
from lockstep.locking.models import Lock, LockBackend
from lockstep.locking.store import InMemoryLockStore, LockStore, RedisLockStore

__all__ = [
    "InMemoryLockStore",
    "Lock",
    "LockBackend",
    "LockManager",
    "LockStore",
    "RedisLockStore",
]
