"""Shared fixtures for CLI tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from typer.testing import CliRunner

from sharedlocks import SharedLockConfig, connect
from sharedlocks.cli import app

if TYPE_CHECKING:
    from click.testing import Result


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def cli_store(tmp_path):
    """Store URI of a temp SQLite database."""
    return f"sqlite:///{tmp_path / 'cli_locks.db'}"


@pytest.fixture
def ready_store(cli_store):
    """Store with an existing lock table."""
    with connect(cli_store) as coordinator:
        coordinator.create_table()
    return cli_store


@pytest.fixture
def holder(ready_store):
    """Coordinator holding the lock ``job`` for the duration of the test."""
    coordinator = connect(
        ready_store,
        config=SharedLockConfig(poll_interval_seconds=0.01, kill_retry_sleep_seconds=0.01),
    )
    coordinator.lock("job", 0, 300)
    yield coordinator
    coordinator.close()


def invoke(runner: CliRunner, args: list[str], store: str | None = None) -> "Result":
    """Invoke CLI with the store selected."""
    if store:
        # Inject --store before subcommand
        args = ["--store", store] + args
    result = runner.invoke(app, args, catch_exceptions=False)
    return result
