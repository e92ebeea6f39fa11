"""
lockstep: resilient distributed synchronization core.

Three cooperating pieces:

- :class:`~lockstep.locking.LockManager` grants TTL-bounded mutual
  exclusion over named resources through a shared Redis store, degrading
  to a process-local table when Redis is unreachable.
- :class:`~lockstep.execution.CircuitBreaker` stops calls to a failing
  dependency after consecutive failures and probes it again after a
  cooldown.
- :class:`~lockstep.sync.BatchSyncEngine` splits rows into batches and
  dispatches them, serialized per destination, with bounded retries and
  exponential backoff.
"""

from lockstep.core.errors import (
    AppendError,
    BatchDispatchError,
    CircuitOpenError,
    LockstepError,
    LockTimeoutError,
    ValidationError,
)
from lockstep.core.keys import LockKeys
from lockstep.execution.circuit_breaker import CircuitBreaker, CircuitState
from lockstep.locking.manager import LockManager
from lockstep.locking.models import Lock
from lockstep.sync.batching import split_into_batches
from lockstep.sync.engine import BatchSyncEngine
from lockstep.sync.models import AppendOptions, SyncResult

__version__ = "0.1.0"

__all__ = [
    "AppendError",
    "AppendOptions",
    "BatchDispatchError",
    "BatchSyncEngine",
    "CircuitBreaker",
    "CircuitOpenError",
    "CircuitState",
    "Lock",
    "LockKeys",
    "LockManager",
    "LockTimeoutError",
    "LockstepError",
    "SyncResult",
    "ValidationError",
    "__version__",
    "split_into_batches",
]
