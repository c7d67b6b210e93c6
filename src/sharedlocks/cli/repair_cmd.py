"""sharedlock repair: repair a damaged lock table."""

from __future__ import annotations

import typer

from sharedlocks.cli import _exitcodes as ec
from sharedlocks.cli._output import print_error, print_object
from sharedlocks.cli._store import open_coordinator
from sharedlocks.errors import TableRepairError


def repair_cmd() -> None:
    """Repair the lock table."""
    from sharedlocks.cli import state

    try:
        coordinator = open_coordinator()
    except Exception as e:
        print_error(f"Cannot open store: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)

    try:
        coordinator.repair_table()
    except TableRepairError as e:
        print_error(str(e))
        raise typer.Exit(ec.EXECUTION_FAILURE)
    finally:
        coordinator.close()

    print_object({"table": coordinator.config.table, "status": "OK"}, json_mode=state.json_output)
