"""lockstep command line interface (typer + rich)."""

from lockstep.cli.app import app

__all__ = ["app"]
