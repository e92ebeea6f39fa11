"""
Root Typer application for the lockstep CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from lockstep.core.logging import configure_logging
from lockstep.core.settings import get_settings

app = Typer(
    name="lockstep",
    help="lockstep: distributed locks, circuit breaking, and batched sheet sync.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from lockstep import __version__

        typer.echo(f"lockstep {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        help="Override LOCKSTEP_LOG_LEVEL (DEBUG, INFO, WARNING, ERROR).",
    ),
) -> None:
    """lockstep CLI: inspect locks, plan and run batch syncs."""
    settings = get_settings()
    configure_logging(
        level=(log_level or settings.log_level).upper(),
        json_format=settings.json_logs,
    )


# ── Sub-command registration ─────────────────────────────────────────────

from lockstep.cli.config import app as config_app  # noqa: E402
from lockstep.cli.lock import app as lock_app  # noqa: E402
from lockstep.cli.sync import app as sync_app  # noqa: E402

app.add_typer(lock_app, name="lock", help="Lock inspection and manual control.")
app.add_typer(sync_app, name="sync", help="Batch sync to spreadsheets.")
app.add_typer(config_app, name="config", help="Configuration inspection.")
