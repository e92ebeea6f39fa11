"""
CLI: ``lockstep lock``: inspect, acquire and release locks.

Only meaningful against a shared store (``LOCKSTEP_REDIS_URL``); with
local-only locking every CLI invocation has its own empty table.
"""

from __future__ import annotations

import typer

from lockstep.cli.utils import console, err_console, fail, make_lock_manager, print_dict, print_json
from lockstep.core.errors import ValidationError

app = typer.Typer(no_args_is_help=True)


@app.command("status")
def lock_status(
    resource: str = typer.Argument(..., help="Lock key, e.g. lock:google-sheets:<id>"),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Show whether a resource is locked and by which token."""
    manager = make_lock_manager()
    try:
        holder = manager.holder(resource)
    except ValidationError as e:
        fail(e)
        return
    data = {
        "resource": resource,
        "locked": holder is not None,
        "holder_token": holder,
        "distributed": manager.distributed_available,
    }
    if as_json:
        print_json(data)
    else:
        print_dict(data, title="Lock status")


@app.command("acquire")
def lock_acquire(
    resource: str = typer.Argument(..., help="Lock key"),
    ttl: float = typer.Option(30.0, "--ttl", help="Lock TTL in seconds"),
) -> None:
    """Make a single acquisition attempt and print the holder token."""
    manager = make_lock_manager()
    try:
        lock = manager.acquire(resource, ttl)
    except ValidationError as e:
        fail(e)
        return
    if lock is None:
        err_console.print(f"[yellow]Resource '{resource}' is already locked[/yellow]")
        raise typer.Exit(code=1)
    if lock.backend.value == "local":
        err_console.print("[yellow]Warning:[/yellow] lock is process-local and ends with this command")
    console.print(lock.holder_token)


@app.command("release")
def lock_release(
    resource: str = typer.Argument(..., help="Lock key"),
    token: str = typer.Argument(..., help="Holder token printed by 'lock acquire'"),
) -> None:
    """Release a lock if the token still holds it."""
    from lockstep.locking.models import Lock

    manager = make_lock_manager()
    lock = Lock(resource=resource, holder_token=token, expires_at=0.0)
    if not manager.release(lock):
        err_console.print(f"[yellow]Lock '{resource}' not held by that token[/yellow]")
        raise typer.Exit(code=1)
    console.print(f"[green]Released[/green] {resource}")
