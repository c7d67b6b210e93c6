"""sharedlock init: create the lock table."""

from __future__ import annotations

import typer

from sharedlocks.cli import _exitcodes as ec
from sharedlocks.cli._output import print_error, print_object
from sharedlocks.cli._store import open_coordinator


def init_cmd() -> None:
    """Create the lock table if it does not exist."""
    from sharedlocks.cli import state

    try:
        coordinator = open_coordinator()
    except Exception as e:
        print_error(f"Cannot open store: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)

    try:
        coordinator.create_table()
        data = {
            "table": coordinator.config.table,
            "status": "ready",
            **coordinator.gateway.storage_info(),
        }
        print_object(data, json_mode=state.json_output)
    except Exception as e:
        print_error(f"Cannot create lock table: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)
    finally:
        coordinator.close()
