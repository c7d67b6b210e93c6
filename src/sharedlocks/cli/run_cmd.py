"""sharedlock run: run a command while holding a lock."""

from __future__ import annotations

import subprocess
from typing import List

import typer

from sharedlocks.cli import _exitcodes as ec
from sharedlocks.cli._output import print_error
from sharedlocks.cli._store import open_coordinator
from sharedlocks.errors import LockTimeoutError, ReleaseError, SharedLockError


def run_cmd(
    name: str = typer.Argument(..., help="Lock name"),
    command: List[str] = typer.Argument(..., help="Command to run (after --)"),
    timeout: float = typer.Option(0.0, "--timeout", "-t", help="Seconds to wait for the lock"),
    ttl: int = typer.Option(300, "--ttl", help="Maximum seconds the lock is held"),
) -> None:
    """Acquire NAME, run COMMAND, release NAME and exit with COMMAND's status."""
    try:
        coordinator = open_coordinator()
    except Exception as e:
        print_error(f"Cannot open store: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)

    try:
        try:
            handle = coordinator.lock(name, timeout, ttl)
        except LockTimeoutError as e:
            print_error(str(e))
            raise typer.Exit(ec.LOCK_TIMEOUT)
        except SharedLockError as e:
            print_error(str(e))
            raise typer.Exit(ec.LOCK_ERROR)

        returncode = 0
        try:
            returncode = subprocess.call(command)
        except OSError as e:
            print_error(f"Cannot run {command[0]!r}: {e}")
            returncode = ec.EXECUTION_FAILURE
        finally:
            try:
                handle.release()
            except ReleaseError as e:
                print_error(str(e))
                returncode = returncode or ec.LOCK_ERROR
    finally:
        coordinator.close()

    raise typer.Exit(returncode)
