"""lockstep.sync: batch splitting and lock-serialized bulk dispatch."""

from lockstep.sync.batching import Batch, iter_batches, normalize_rows, split_into_batches
from lockstep.sync.engine import BatchSyncEngine
from lockstep.sync.models import AppendOptions, BatchOutcome, SyncResult
from lockstep.sync.sheets import AppendClient, SheetsClient

__all__ = [
    "AppendClient",
    "AppendOptions",
    "Batch",
    "BatchOutcome",
    "BatchSyncEngine",
    "SheetsClient",
    "SyncResult",
    "iter_batches",
    "normalize_rows",
    "split_into_batches",
]
