"""Row builders for batching and sync tests."""

from __future__ import annotations


def make_rows(n: int, width: int = 3) -> list[list[object]]:
    """``n`` rows whose first cell is the row number."""
    return [[i] + [f"c{i}-{j}" for j in range(1, width)] for i in range(n)]
