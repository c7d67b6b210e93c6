"""sharedlock clean: evict a stale claim."""

from __future__ import annotations

import typer

from sharedlocks.cli import _exitcodes as ec
from sharedlocks.cli._output import print_error, print_object
from sharedlocks.cli._store import open_coordinator


def clean_cmd(name: str = typer.Argument(..., help="Lock name")) -> None:
    """Remove the claim on NAME if it expired or its holder died."""
    from sharedlocks.cli import state

    try:
        coordinator = open_coordinator()
    except Exception as e:
        print_error(f"Cannot open store: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)

    try:
        removed = coordinator.clean(name)
    except Exception as e:
        print_error(str(e))
        raise typer.Exit(ec.DATABASE_ERROR)
    finally:
        coordinator.close()

    print_object({"name": name, "removed": removed}, json_mode=state.json_output)
