"""
CLI: ``lockstep config``: configuration inspection.
"""

from __future__ import annotations

import typer
from rich.table import Table

from lockstep.cli.utils import console
from lockstep.core.settings import get_settings

app = typer.Typer(no_args_is_help=True)

_SECRET_FIELDS = {"sheets_access_token"}


@app.command("show")
def show_config(
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Show the effective configuration (secrets masked)."""
    settings = get_settings()
    values = settings.model_dump()
    for key in _SECRET_FIELDS:
        if values.get(key):
            values[key] = "****"

    if as_json:
        console.print_json(data=values)
        return

    table = Table(title="lockstep settings")
    table.add_column("Setting")
    table.add_column("Env var")
    table.add_column("Value")
    for key, value in sorted(values.items()):
        table.add_row(key, f"LOCKSTEP_{key.upper()}", str(value))
    console.print(table)
