"""sharedlock list: show current lock claims."""

from __future__ import annotations

from datetime import datetime, timezone

import typer

from sharedlocks.cli import _exitcodes as ec
from sharedlocks.cli._output import print_error, print_table
from sharedlocks.cli._store import open_coordinator
from sharedlocks.registry import LockRecord


def _status(record: LockRecord) -> str:
    if record.stale:
        return "stale"
    if record.confirmed:
        return "held"
    return "pending"


def list_cmd(
    stale: bool = typer.Option(False, "--stale", help="Only show stale claims"),
) -> None:
    """List lock claims with remaining TTL and liveness."""
    from sharedlocks.cli import state

    json_mode = state.json_output
    try:
        coordinator = open_coordinator()
    except Exception as e:
        print_error(f"Cannot open store: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)

    try:
        records = coordinator.list_locks()
    except Exception as e:
        print_error(f"Cannot read lock table: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)
    finally:
        coordinator.close()

    if stale:
        records = [r for r in records if r.stale]

    headers = ["name", "created", "ttl", "remaining", "connection_id", "acquired", "status"]
    rows = [
        [
            r.name,
            datetime.fromtimestamp(r.created, tz=timezone.utc).isoformat(),
            r.ttl,
            r.remaining_ttl,
            r.connection_id,
            r.lock_acquired,
            _status(r),
        ]
        for r in records
    ]
    if not rows and not json_mode:
        print("No locks.")
        return
    print_table(headers, rows, json_mode=json_mode)
