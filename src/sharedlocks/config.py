"""Configuration for shared locks and store connections."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError

from sharedlocks.errors import StoreConfigError
from sharedlocks.sql import QuoteStyle


@dataclass
class SharedLockConfig:
    """Configuration for the lock coordinator."""

    table: str = "shared_locks"
    quote_style: QuoteStyle = QuoteStyle.BACKTICK
    poll_interval_seconds: float = 0.1
    kill_attempts: int = 20
    kill_retry_sleep_seconds: float = 0.2
    table_engine: str = "MyISAM"

    def __post_init__(self) -> None:
        self.quote_style = QuoteStyle.parse(self.quote_style)

    @classmethod
    def from_env(cls) -> SharedLockConfig:
        cfg = cls()
        table = os.getenv("SHAREDLOCK_TABLE")
        if table:
            cfg.table = table
        style = os.getenv("SHAREDLOCK_QUOTE_STYLE")
        if style:
            cfg.quote_style = QuoteStyle.parse(style)
        poll = os.getenv("SHAREDLOCK_POLL_INTERVAL")
        if poll:
            cfg.poll_interval_seconds = float(poll)
        return cfg


@dataclass
class ConnectionConfig:
    """Connection parameters for a MySQL store."""

    host: str
    database: str
    user: str
    password: str = ""
    charset: str = "utf8mb4"
    port: int | None = None
    options: dict[str, Any] = field(default_factory=dict)


class _StoreSection(BaseModel):
    model_config = ConfigDict(extra="forbid")

    uri: Optional[str] = None
    host: Optional[str] = None
    database: Optional[str] = None
    user: Optional[str] = None
    password: str = ""
    charset: str = "utf8mb4"
    port: Optional[int] = None
    options: dict[str, Any] = {}


class _LocksSection(BaseModel):
    model_config = ConfigDict(extra="forbid")

    table: str = "shared_locks"
    quote_style: QuoteStyle = QuoteStyle.BACKTICK
    poll_interval_seconds: float = 0.1
    kill_attempts: int = 20
    kill_retry_sleep_seconds: float = 0.2
    table_engine: str = "MyISAM"


class _ConfigFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    store: Optional[_StoreSection] = None
    locks: _LocksSection = _LocksSection()


@dataclass
class LoadedConfig:
    """Result of reading a config file."""

    locks: SharedLockConfig
    store_uri: str | None = None
    connection: ConnectionConfig | None = None


def load_config_file(path: str | Path) -> LoadedConfig:
    """Read and validate a YAML config file with ``store`` and ``locks`` sections."""
    try:
        raw = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        raise StoreConfigError("load_config_file", f"Cannot read '{path}': {e}") from e
    if not isinstance(raw, dict):
        raise StoreConfigError("load_config_file", f"'{path}' must contain a mapping")

    try:
        parsed = _ConfigFile.model_validate(raw)
    except ValidationError as e:
        raise StoreConfigError("load_config_file", f"Invalid config '{path}': {e}") from e

    locks = SharedLockConfig(**parsed.locks.model_dump())
    store = parsed.store
    if store is None:
        return LoadedConfig(locks=locks)
    if store.uri:
        return LoadedConfig(locks=locks, store_uri=store.uri)
    if not (store.host and store.database and store.user):
        raise StoreConfigError(
            "load_config_file",
            "store section needs either 'uri' or 'host', 'database' and 'user'",
        )
    connection = ConnectionConfig(
        host=store.host,
        database=store.database,
        user=store.user,
        password=store.password,
        charset=store.charset,
        port=store.port,
        options=dict(store.options),
    )
    return LoadedConfig(locks=locks, connection=connection)
