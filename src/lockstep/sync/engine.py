"""
Batch Sync Engine: bounded, serialized, fault-tolerant bulk dispatch.

Manifesto:
    Large row sets are pushed to the bulk-append API in fixed-size
    batches. Three guarantees shape the design:

    - **Serialized per destination:** the whole sync runs under one lock
      keyed by the destination, so concurrent syncs never interleave rows.
    - **Bounded retries:** each batch gets at most ``retry.max_attempts``
      tries with exponential backoff; retries stop as soon as the circuit
      breaker opens.
    - **Best-effort per batch:** a failed batch is recorded in the
      :class:`~lockstep.sync.models.SyncResult` and the next batch is
      still attempted. Only lock contention aborts the whole call.

Architecture:
    ::

        sync(destination, rows)
          ├── rows empty?            -> SyncResult.empty (no lock)
          ├── split_into_batches     (ValidationError on bad size)
          └── with_lock(lock:google-sheets:<destination>, 60s)
                └── for batch in order:
                      attempt 1..N:
                        breaker.execute(client.append, ...)
                        failure -> breaker open? stop : sleep(backoff(i))
                      -> BatchOutcome

Examples:
    >>> engine = BatchSyncEngine(client, LockManager())
    >>> result = engine.sync("spreadsheet-id", rows)
    >>> result.success, result.batches_processed
    (True, 2)

Tags:
    batching, retry, backoff, circuit-breaker, distributed-lock, lockstep
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Any

from lockstep.core.errors import BatchDispatchError, CircuitOpenError
from lockstep.core.keys import LockKeys
from lockstep.core.logging import LogContext, get_logger
from lockstep.core.timestamps import Clock, SystemClock
from lockstep.execution.circuit_breaker import (
    BreakerNames,
    CircuitBreaker,
    CircuitState,
    get_circuit_breaker,
)
from lockstep.execution.retry import ExponentialBackoff, RetryStrategy
from lockstep.locking.manager import LockManager
from lockstep.sync.batching import Batch, Row, normalize_rows, split_into_batches, validate_batch_size
from lockstep.sync.models import AppendOptions, BatchOutcome, SyncResult
from lockstep.sync.sheets import AppendClient, SheetsClient

if TYPE_CHECKING:
    from lockstep.core.settings import LockstepSettings

logger = get_logger(__name__)


class BatchSyncEngine:
    """Split rows into batches and dispatch them under a destination lock.

    Args:
        client: Bulk-append API
        lock_manager: Serializes syncs per destination
        breaker: Breaker guarding both ``client.append`` and ``client.batch_update``
        batch_size: Default rows per batch
        lock_ttl: TTL of the destination lock, in seconds; keep it above the
            expected duration of a full sync since work is not cancelled
            when the lock expires
        retry: Per-batch attempt budget and backoff schedule
        clock: Sleeps between retries
    """

    def __init__(
        self,
        client: AppendClient,
        lock_manager: LockManager,
        breaker: CircuitBreaker | None = None,
        *,
        batch_size: int = 100,
        lock_ttl: float = 60.0,
        retry: RetryStrategy | None = None,
        clock: Clock | None = None,
    ):
        self._client = client
        self._locks = lock_manager
        self._breaker = breaker or CircuitBreaker(BreakerNames.SHEETS_APPEND)
        self._batch_size = validate_batch_size(batch_size)
        self._lock_ttl = lock_ttl
        self._retry = retry or ExponentialBackoff(max_attempts=3, base_delay=1.0)
        self._clock = clock or SystemClock()
        self._owned_client: SheetsClient | None = None

    @classmethod
    def from_settings(
        cls,
        settings: LockstepSettings,
        client: AppendClient | None = None,
        *,
        lock_manager: LockManager | None = None,
        clock: Clock | None = None,
    ) -> BatchSyncEngine:
        """Wire an engine from settings, sharing the breaker through the default registry."""
        clock = clock or SystemClock()
        owned: SheetsClient | None = None
        if client is None:
            client = owned = SheetsClient(
                access_token=settings.sheets_access_token,
                base_url=settings.sheets_base_url,
                timeout=settings.sheets_timeout,
            )
        engine = cls(
            client,
            lock_manager or LockManager.from_settings(settings, clock=clock),
            get_circuit_breaker(
                BreakerNames.SHEETS_APPEND,
                failure_threshold=settings.breaker_failure_threshold,
                cooldown=settings.breaker_cooldown_seconds,
            ),
            batch_size=settings.batch_size,
            lock_ttl=settings.sync_lock_ttl_seconds,
            retry=ExponentialBackoff(
                max_attempts=settings.max_retries,
                base_delay=settings.base_delay_seconds,
            ),
            clock=clock,
        )
        engine._owned_client = owned
        return engine

    def close(self) -> None:
        """Close the API client if this engine built it."""
        if self._owned_client is not None:
            self._owned_client.close()

    def __enter__(self) -> BatchSyncEngine:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def batch_size(self) -> int:
        return self._batch_size

    # ── Public API ───────────────────────────────────────────────

    def sync(
        self,
        destination_key: str,
        rows: Sequence[Row],
        batch_size: int | None = None,
        *,
        options: AppendOptions | None = None,
    ) -> SyncResult:
        """Dispatch ``rows`` to ``destination_key`` in ordered batches.

        Raises:
            ValidationError: if ``batch_size`` is not a positive integer
            LockTimeoutError: if the destination lock could not be acquired;
                no batch is dispatched in that case
        """
        if not rows:
            return SyncResult.empty(destination_key)

        batches = split_into_batches(rows, self._batch_size if batch_size is None else batch_size)
        options = options or AppendOptions(spreadsheet_id=destination_key)
        resource = LockKeys.sheets_sync(destination_key)

        def work() -> SyncResult:
            with LogContext(destination=destination_key):
                return self._dispatch_all(destination_key, len(rows), batches, options)

        return self._locks.with_lock(resource, self._lock_ttl, work)

    def batch_append(self, options: AppendOptions, rows: Iterable[Any]) -> SyncResult:
        """Normalize records (mappings, sequences, scalars) and sync them."""
        return self.sync(options.spreadsheet_id, normalize_rows(rows), options=options)

    def batch_update(self, destination_key: str, requests: Sequence[dict[str, Any]]) -> bool:
        """Apply structural update requests through the append breaker and retry policy.

        Returns False once the attempt budget is spent or the breaker opens.
        """
        if not requests:
            return True
        attempt = 0
        while True:
            attempt += 1
            try:
                self._breaker.execute(self._client.batch_update, destination_key, requests)
                logger.info(
                    "batch_update_succeeded",
                    destination=destination_key,
                    requests=len(requests),
                    attempt=attempt,
                )
                return True
            except Exception as e:
                if not self._may_retry(self._breaker, attempt, e):
                    logger.error(
                        "batch_update_failed",
                        destination=destination_key,
                        attempts=attempt,
                        error=str(e),
                    )
                    return False
                delay = self._retry.next_delay(attempt)
                logger.warning(
                    "batch_update_attempt_failed",
                    destination=destination_key,
                    attempt=attempt,
                    retry_in=delay,
                    error=str(e),
                )
                self._clock.sleep(delay)

    # ── Internals ────────────────────────────────────────────────

    def _dispatch_all(
        self,
        destination_key: str,
        total_rows: int,
        batches: list[Batch],
        options: AppendOptions,
    ) -> SyncResult:
        total = len(batches)
        logger.info("sync_started", total_rows=total_rows, batches=total)

        outcomes = [self._dispatch(batch, total, options) for batch in batches]

        result = SyncResult.from_outcomes(destination_key, total_rows, outcomes)
        log = logger.info if result.success else logger.warning
        log(
            "sync_completed",
            success=result.success,
            batches_processed=result.batches_processed,
            failed_batches=result.failed_batches,
        )
        return result

    def _may_retry(self, breaker: CircuitBreaker, attempt: int, error: Exception) -> bool:
        # Retrying into an open circuit is pointless
        if isinstance(error, CircuitOpenError) or breaker.state == CircuitState.OPEN:
            return False
        return self._retry.should_retry(attempt, error)

    def _dispatch(self, batch: Batch, total: int, options: AppendOptions) -> BatchOutcome:
        logger.debug("batch_started", batch=batch.number, total=total, rows=len(batch))
        attempt = 0
        while True:
            attempt += 1
            try:
                self._breaker.execute(
                    self._client.append,
                    options.spreadsheet_id,
                    options.full_range,
                    options.value_input_option,
                    [list(row) for row in batch.rows],
                )
            except Exception as e:
                if self._may_retry(self._breaker, attempt, e):
                    delay = self._retry.next_delay(attempt)
                    logger.warning(
                        "batch_attempt_failed",
                        batch=batch.number,
                        total=total,
                        attempt=attempt,
                        retry_in=delay,
                        error=str(e),
                    )
                    self._clock.sleep(delay)
                    continue

                failure = BatchDispatchError(batch.index, attempts=attempt, cause=e)
                logger.error(
                    "batch_failed",
                    batch=batch.number,
                    total=total,
                    attempts=attempt,
                    circuit_open=isinstance(e, CircuitOpenError),
                    error=str(e),
                )
                return BatchOutcome(
                    index=batch.index,
                    row_count=len(batch),
                    success=False,
                    attempts=attempt,
                    error=failure.message,
                )

            logger.info("batch_succeeded", batch=batch.number, total=total, attempt=attempt)
            return BatchOutcome(
                index=batch.index, row_count=len(batch), success=True, attempts=attempt
            )


__all__ = ["BatchSyncEngine"]
