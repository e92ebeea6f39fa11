"""Batch splitting for bulk dispatch.

Rows are cut into contiguous, order-preserving batches: every batch holds
exactly ``batch_size`` rows except the last, which holds the remainder.
Concatenating the batches in index order reproduces the input.

    >>> [len(b) for b in split_into_batches(list(range(150)), 100)]
    [100, 50]
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from itertools import islice
from typing import Any

from lockstep.core.errors import ValidationError

Row = list[Any]


@dataclass(frozen=True)
class Batch:
    """A contiguous slice of rows; ``index`` is 0-based."""

    index: int
    rows: tuple[Row, ...]

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def number(self) -> int:
        """1-based position, as used in log and error messages."""
        return self.index + 1


def validate_batch_size(batch_size: Any) -> int:
    # bool is an int subclass; True must not pass as 1
    if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size < 1:
        raise ValidationError(
            "batch_size must be a positive integer",
            field="batch_size",
            value=batch_size,
        )
    return batch_size


def split_into_batches(rows: Sequence[Row], batch_size: int) -> list[Batch]:
    """Split ``rows`` into ``ceil(len(rows) / batch_size)`` batches.

    Raises:
        ValidationError: if ``batch_size`` is not a positive integer
    """
    validate_batch_size(batch_size)
    return [
        Batch(index=i, rows=tuple(rows[start : start + batch_size]))
        for i, start in enumerate(range(0, len(rows), batch_size))
    ]


def iter_batches(rows: Iterable[Row], batch_size: int) -> Iterator[Batch]:
    """Lazy variant of :func:`split_into_batches` for any iterable."""
    validate_batch_size(batch_size)
    iterator = iter(rows)
    index = 0
    while chunk := tuple(islice(iterator, batch_size)):
        yield Batch(index=index, rows=chunk)
        index += 1


def normalize_row(row: Any) -> Row:
    if isinstance(row, Mapping):
        return list(row.values())
    if isinstance(row, (str, bytes)):
        return [row]
    if isinstance(row, Iterable):
        return list(row)
    return [row]


def normalize_rows(rows: Iterable[Any]) -> list[Row]:
    """Coerce records into rows of cell values.

    Mappings contribute their values in insertion order, sequences are
    copied, and scalars (including strings) become one-cell rows.
    """
    return [normalize_row(row) for row in rows]


__all__ = [
    "Batch",
    "Row",
    "iter_batches",
    "normalize_row",
    "normalize_rows",
    "split_into_batches",
    "validate_batch_size",
]
