"""
CLI: ``lockstep sync``: push a file of rows to a spreadsheet.

Exit codes:
    0  every batch dispatched
    1  at least one batch failed (or invalid input)
    2  the destination lock is held elsewhere
"""

from __future__ import annotations

from pathlib import Path

import typer

from lockstep.cli.utils import console, fail, load_rows, make_engine, print_json, print_table
from lockstep.core.errors import LockTimeoutError, ValidationError
from lockstep.core.settings import get_settings
from lockstep.sync.batching import split_into_batches
from lockstep.sync.models import AppendOptions, SyncResult

app = typer.Typer(no_args_is_help=True)


def _render(result: SyncResult) -> None:
    status = "[green]success[/green]" if result.success else "[red]partial failure[/red]"
    console.print(
        f"[bold]{result.destination}[/bold]: {status} "
        f"({result.total_rows} rows, {result.batches_processed} batches ok, "
        f"{result.failed_batches} failed)"
    )
    if result.outcomes:
        print_table(list(result.outcomes), title="Batches")
    for message in result.errors:
        console.print(f"  [red]•[/red] {message}")


@app.command("run")
def sync_run(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="CSV or NDJSON file"),
    destination: str = typer.Option(..., "--destination", "-d", help="Spreadsheet ID"),
    sheet: str = typer.Option("Sheet1", "--sheet", help="Sheet (tab) name"),
    batch_size: int | None = typer.Option(None, "--batch-size", "-b", help="Rows per batch"),
    mode: str = typer.Option("RAW", "--mode", help="Value input option: RAW or USER_ENTERED"),
    skip_header: bool = typer.Option(False, "--skip-header", help="Drop the first CSV row"),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Sync the rows of FILE to a spreadsheet under the destination lock."""
    try:
        rows = load_rows(file, skip_header=skip_header)
        options = AppendOptions(
            spreadsheet_id=destination, sheet_name=sheet, value_input_option=mode.upper()
        )
        with make_engine() as engine:
            result = engine.sync(destination, rows, batch_size, options=options)
    except ValidationError as e:
        fail(e)
        return
    except LockTimeoutError as e:
        fail(e, code=2)
        return

    if as_json:
        print_json(result)
    else:
        _render(result)

    if not result.success:
        raise typer.Exit(code=1)


@app.command("plan")
def sync_plan(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="CSV or NDJSON file"),
    batch_size: int | None = typer.Option(None, "--batch-size", "-b", help="Rows per batch"),
    skip_header: bool = typer.Option(False, "--skip-header", help="Drop the first CSV row"),
) -> None:
    """Dry run: show how FILE would be split, without locking or sending."""
    size = batch_size if batch_size is not None else get_settings().batch_size
    try:
        rows = load_rows(file, skip_header=skip_header)
        batches = split_into_batches(rows, size)
    except ValidationError as e:
        fail(e)
        return
    console.print(f"{len(rows)} rows -> {len(batches)} batches of up to {size}")
    print_table(
        [{"batch": b.number, "rows": len(b)} for b in batches],
        title="Plan",
    )
