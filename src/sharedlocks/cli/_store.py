"""CLI helpers for building a coordinator from global options."""

from __future__ import annotations

from sharedlocks.config import ConnectionConfig, SharedLockConfig, load_config_file
from sharedlocks.coordinator import LockCoordinator, connect
from sharedlocks.gateway import DEFAULT_STORE_URI
from sharedlocks.sql import QuoteStyle


def resolve_settings() -> tuple[SharedLockConfig, str | None, ConnectionConfig | None]:
    """Return (config, store_uri, connection) from the config file, env and CLI state.

    An explicit ``--store`` wins over the ``store`` section of the config file.
    """
    from sharedlocks.cli import state

    store_uri: str | None = None
    connection: ConnectionConfig | None = None
    if state.config:
        loaded = load_config_file(state.config)
        cfg = loaded.locks
        store_uri = loaded.store_uri
        connection = loaded.connection
    else:
        cfg = SharedLockConfig.from_env()

    if state.store:
        store_uri = state.store
        connection = None
    if state.table:
        cfg.table = state.table
    if state.ansi_quotes:
        cfg.quote_style = QuoteStyle.ANSI
    if store_uri is None and connection is None:
        store_uri = DEFAULT_STORE_URI
    return cfg, store_uri, connection


def open_coordinator() -> LockCoordinator:
    """Open a coordinator using global CLI store selection."""
    cfg, store_uri, connection = resolve_settings()
    return connect(store_uri, connection=connection, config=cfg)
