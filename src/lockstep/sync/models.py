"""
Result and option types for batch sync.

A sync is best-effort per batch: one failed batch never prevents the
others from being attempted. :class:`SyncResult` is therefore the only
place a caller learns about partial failure, and it always accounts for
every batch (``batches_processed + failed_batches`` equals the batch count).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from lockstep.core.errors import BatchDispatchError, ValidationError

VALUE_INPUT_OPTIONS = frozenset({"RAW", "USER_ENTERED"})


@dataclass(frozen=True)
class BatchOutcome:
    """What happened to one batch."""

    index: int
    row_count: int
    success: bool
    attempts: int
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "row_count": self.row_count,
            "success": self.success,
            "attempts": self.attempts,
            "error": self.error,
        }


@dataclass(frozen=True)
class SyncResult:
    """Aggregate outcome of a sync.

    Attributes:
        destination: Destination key the rows were sent to
        total_rows: Number of input rows
        batches_processed: Batches dispatched successfully
        failed_batches: Batches that failed after retries
        errors: One message per failed batch, in batch order
        outcomes: Per-batch detail, in batch order
    """

    destination: str
    total_rows: int
    batches_processed: int
    failed_batches: int
    errors: tuple[str, ...] = ()
    outcomes: tuple[BatchOutcome, ...] = field(default=(), repr=False)

    @property
    def success(self) -> bool:
        return self.failed_batches == 0

    @property
    def batch_count(self) -> int:
        return self.batches_processed + self.failed_batches

    @property
    def failed_indices(self) -> list[int]:
        return [o.index for o in self.outcomes if not o.success]

    @classmethod
    def empty(cls, destination: str) -> SyncResult:
        return cls(destination=destination, total_rows=0, batches_processed=0, failed_batches=0)

    @classmethod
    def from_outcomes(
        cls, destination: str, total_rows: int, outcomes: list[BatchOutcome]
    ) -> SyncResult:
        failed = [o for o in outcomes if not o.success]
        return cls(
            destination=destination,
            total_rows=total_rows,
            batches_processed=len(outcomes) - len(failed),
            failed_batches=len(failed),
            errors=tuple(o.error or f"Batch {o.index + 1} failed" for o in failed),
            outcomes=tuple(outcomes),
        )

    def raise_for_failure(self) -> None:
        """Raise :class:`BatchDispatchError` for the first failed batch, if any."""
        for outcome in self.outcomes:
            if not outcome.success:
                raise BatchDispatchError(
                    outcome.index,
                    attempts=outcome.attempts,
                    message=outcome.error,
                ).with_context(resource=self.destination, failed_batches=self.failed_batches)
        if self.failed_batches:
            raise BatchDispatchError(0, attempts=0, message="; ".join(self.errors))

    def to_dict(self) -> dict[str, Any]:
        return {
            "destination": self.destination,
            "success": self.success,
            "total_rows": self.total_rows,
            "batches_processed": self.batches_processed,
            "failed_batches": self.failed_batches,
            "errors": list(self.errors),
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


@dataclass(frozen=True)
class AppendOptions:
    """Where and how rows are appended in a spreadsheet."""

    spreadsheet_id: str
    sheet_name: str = "Sheet1"
    range: str | None = None
    value_input_option: str = "RAW"

    def __post_init__(self) -> None:
        if not self.spreadsheet_id:
            raise ValidationError("spreadsheet_id is required", field="spreadsheet_id")
        if self.value_input_option not in VALUE_INPUT_OPTIONS:
            raise ValidationError(
                f"value_input_option must be one of {sorted(VALUE_INPUT_OPTIONS)}",
                field="value_input_option",
                value=self.value_input_option,
            )

    @property
    def full_range(self) -> str:
        """A1 range appended to; defaults to columns A-Z of the sheet."""
        return f"{self.sheet_name}!{self.range or 'A:Z'}"


__all__ = ["AppendOptions", "BatchOutcome", "SyncResult", "VALUE_INPUT_OPTIONS"]
