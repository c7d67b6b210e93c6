"""Shared test fixtures for shared lock tests."""

from __future__ import annotations

import threading

import pytest

from sharedlocks import LockCoordinator, SharedLockConfig
from sharedlocks.gateway_sqlite import SqliteGateway


class FakeClock:
    """Controllable unix clock shared by several gateways."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self._now = start
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> None:
        with self._lock:
            self._now += seconds


@pytest.fixture
def tmp_db(tmp_path):
    """Create a temporary SQLite database path."""
    return str(tmp_path / "locks.db")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fast_config():
    """Config with short poll and kill intervals."""
    return SharedLockConfig(
        poll_interval_seconds=0.01,
        kill_attempts=5,
        kill_retry_sleep_seconds=0.01,
    )


@pytest.fixture
def make_gateway(tmp_db):
    """Factory for independent sessions on the same database."""
    created: list[SqliteGateway] = []

    def _make(clock=None) -> SqliteGateway:
        gw = SqliteGateway(tmp_db, clock=clock)
        created.append(gw)
        return gw

    yield _make
    for gw in created:
        gw.close()


@pytest.fixture
def make_coordinator(make_gateway, fast_config):
    """Factory for coordinators, each with its own session on the same database."""

    def _make(clock=None, config: SharedLockConfig | None = None) -> LockCoordinator:
        coordinator = LockCoordinator(make_gateway(clock), config or fast_config)
        coordinator.create_table()
        return coordinator

    return _make


@pytest.fixture
def coordinator(make_coordinator):
    return make_coordinator()
