"""sharedlocks: named, TTL-bounded locks coordinated through a relational store."""

__version__ = "0.4.0"

from sharedlocks.config import ConnectionConfig, SharedLockConfig, load_config_file
from sharedlocks.coordinator import LockCoordinator, LockHandle, connect
from sharedlocks.errors import (
    AcquireError,
    LockTimeoutError,
    ReleaseError,
    RemainingTTLError,
    SharedLockError,
    StoreConfigError,
    TableRepairError,
)
from sharedlocks.gateway import StoreGatewayProtocol, open_gateway, parse_store_uri
from sharedlocks.registry import LockRecord, LockRegistry
from sharedlocks.sql import QuoteStyle, quote_identifier

__all__ = [
    "__version__",
    "LockCoordinator",
    "LockHandle",
    "connect",
    "SharedLockConfig",
    "ConnectionConfig",
    "load_config_file",
    "SharedLockError",
    "AcquireError",
    "LockTimeoutError",
    "ReleaseError",
    "RemainingTTLError",
    "TableRepairError",
    "StoreConfigError",
    "StoreGatewayProtocol",
    "open_gateway",
    "parse_store_uri",
    "LockRecord",
    "LockRegistry",
    "QuoteStyle",
    "quote_identifier",
]
