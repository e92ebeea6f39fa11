"""
CLI utility helpers: output formatting, input loading, and wiring.
"""

from __future__ import annotations

import csv
import json
from dataclasses import asdict
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from lockstep.core.errors import LockstepError, ValidationError
from lockstep.core.settings import get_settings
from lockstep.locking.manager import LockManager
from lockstep.sync.batching import Row, normalize_rows
from lockstep.sync.engine import BatchSyncEngine

console = Console()
err_console = Console(stderr=True)


# ── Wiring ───────────────────────────────────────────────────────────────


def make_lock_manager() -> LockManager:
    """Lock manager for the current settings (Redis when configured)."""
    return LockManager.from_settings(get_settings())


def make_engine() -> BatchSyncEngine:
    """Sync engine for the current settings."""
    settings = get_settings()
    return BatchSyncEngine.from_settings(settings, lock_manager=make_lock_manager())


# ── Input ────────────────────────────────────────────────────────────────


def load_rows(path: Path, *, skip_header: bool = False) -> list[Row]:
    """Read rows from CSV, or NDJSON when the extension is ``.ndjson``/``.jsonl``.

    Raises:
        ValidationError: if the file is not UTF-8 or a line is not valid JSON
    """
    try:
        if path.suffix.lower() in {".ndjson", ".jsonl"}:
            with path.open(encoding="utf-8") as fh:
                records = [json.loads(line) for line in fh if line.strip()]
            return normalize_rows(records)

        with path.open(newline="", encoding="utf-8") as fh:
            rows = [row for row in csv.reader(fh)]
    except (UnicodeDecodeError, json.JSONDecodeError, csv.Error) as e:
        raise ValidationError(f"Cannot read rows from {path.name}: {e}", field="file", value=str(path)) from e
    return rows[1:] if skip_header else rows


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def print_json(data: Any) -> None:
    payload = [_to_dict(d) for d in data] if isinstance(data, (list, tuple)) else _to_dict(data)
    console.print_json(json.dumps(payload, default=str))


def print_table(items: list[Any], *, title: str = "") -> None:
    """Render a list of dataclasses/dicts as a Rich table."""
    if not items:
        console.print("[dim]No items.[/dim]")
        return
    first = _to_dict(items[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in first:
        table.add_column(col, overflow="fold")
    for item in items:
        d = _to_dict(item)
        table.add_row(*("" if v is None else str(v) for v in d.values()))
    console.print(table)


def print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")


def fail(error: LockstepError | str, *, code: int = 1) -> None:
    """Print an error to stderr and exit with ``code``."""
    if isinstance(error, LockstepError):
        err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {error.message}")
    else:
        err_console.print(f"[bold red]Error[/bold red]: {error}")
    raise typer.Exit(code=code)
