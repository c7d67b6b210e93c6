"""Lock acquisition, release and TTL assertion.

A claim needs two things. The first is a row in the lock table, whose
primary key decides who wins when callers race. The second is the store's
native session lock of the same name, which the store drops when the
holder's connection dies. Other callers use the missing native lock to spot a
dead holder and evict its row right away instead of waiting for its TTL.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager, suppress
from typing import Any

from sharedlocks.config import ConnectionConfig, SharedLockConfig
from sharedlocks.errors import (
    AcquireError,
    LockTimeoutError,
    ReleaseError,
    RemainingTTLError,
    TableRepairError,
)
from sharedlocks.gateway import StoreGatewayProtocol, open_gateway
from sharedlocks.registry import LockRecord, LockRegistry


class LockHandle:
    """An acquired lock. Releasing it is the caller's job."""

    def __init__(self, coordinator: LockCoordinator, name: str) -> None:
        self._coordinator = coordinator
        self.name = name

    def release(self) -> None:
        self._coordinator.unlock(self.name)

    def assert_ttl(self, min_remaining: float = 1) -> None:
        self._coordinator.assert_ttl(self.name, min_remaining)

    def __enter__(self) -> LockHandle:
        return self

    def __exit__(self, exc_type: Any, exc_value: Any, traceback: Any) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"LockHandle(name={self.name!r})"


class LockCoordinator:
    """Named, TTL-bounded locks shared by every process using the same store.

    One coordinator owns one gateway session. Create as many as needed; they
    share nothing in-process.
    """

    def __init__(
        self,
        gateway: StoreGatewayProtocol,
        config: SharedLockConfig | None = None,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config or SharedLockConfig()
        self.gateway = gateway
        self.logger = logger or logging.getLogger(__name__)
        self.registry = LockRegistry(gateway, self.config.table, self.config.quote_style)

    # --- Public API ---

    def lock(self, name: str, timeout: float, ttl: int) -> LockHandle:
        """Acquire ``name`` within ``timeout`` seconds, holding it for at most ``ttl`` seconds.

        Raises:
            LockTimeoutError: the timeout elapsed while another caller held the lock.
            AcquireError: any other failure, with the underlying error as cause.
        """
        try:
            start = time.monotonic()
            while True:
                if self._try_acquire(name, ttl):
                    break

                if self.registry.clean_obsolete(name):
                    self.logger.debug("Removed stale claim on lock %s", name)
                    continue

                elapsed = time.monotonic() - start
                if elapsed >= timeout:
                    raise LockTimeoutError(name, timeout)

                remaining_ttl = self.registry.remaining_ttl(name)
                wait = min(
                    timeout - elapsed,
                    max(remaining_ttl, self.config.poll_interval_seconds),
                )
                self.logger.debug("Lock %s is held; waiting up to %.2fs", name, wait)
                self._sleep_until_release(name, wait)
        except AcquireError:
            raise
        except TableRepairError as e:
            raise AcquireError(name, str(e)) from e
        except Exception as e:
            raise AcquireError(name) from e

        self.logger.debug("Acquired lock %s (ttl=%ss)", name, ttl)
        return LockHandle(self, name)

    def unlock(self, name: str) -> None:
        """Release ``name``.

        Raises:
            ReleaseError: no claim owned by this session existed. The lock must be
                assumed lost (for example evicted as stale by another caller).
        """
        try:
            released = self.registry.deregister(name)
            while self.gateway.release_native(name):
                pass
        except TableRepairError as e:
            raise ReleaseError(name, str(e)) from e
        except Exception as e:
            raise ReleaseError(name) from e

        if not released:
            raise ReleaseError(name)
        self.logger.debug("Released lock %s", name)

    def assert_ttl(self, name: str, min_remaining: float = 1) -> None:
        """Check that this session still owns ``name`` with ``min_remaining`` seconds left."""
        try:
            ok = self.registry.has_remaining_ttl(name, min_remaining)
        except TableRepairError as e:
            raise RemainingTTLError(name, min_remaining, str(e)) from e
        except Exception as e:
            raise RemainingTTLError(name, min_remaining) from e

        if not ok:
            raise RemainingTTLError(name, min_remaining)

    def repair_table(self) -> None:
        self.registry.repair_table()

    @contextmanager
    def locked(self, name: str, timeout: float, ttl: int) -> Iterator[LockHandle]:
        handle = self.lock(name, timeout, ttl)
        try:
            yield handle
        finally:
            handle.release()

    def create_table(self) -> None:
        self.registry.create_table()

    def list_locks(self) -> list[LockRecord]:
        return self.registry.list_records()

    def clean(self, name: str) -> bool:
        return self.registry.clean_obsolete(name)

    def close(self) -> None:
        self.gateway.close()

    def __enter__(self) -> LockCoordinator:
        return self

    def __exit__(self, exc_type: Any, exc_value: Any, traceback: Any) -> None:
        self.close()

    # --- Acquisition internals ---

    def _try_acquire(self, name: str, ttl: int) -> bool:
        if not self.registry.register(name, ttl):
            return False

        # We own the row now, so no other session is entitled to the native
        # lock. Whoever still holds it is an orphan and gets terminated.
        holds_native = False
        try:
            attempts = 0
            while not self.gateway.acquire_native(name, 0):
                holder = self.gateway.native_holder(name)
                if holder:
                    self.logger.warning(
                        "Terminating session %s holding native lock %s", holder, name
                    )
                    # The session may already be gone.
                    with suppress(*self.gateway.errors):
                        self.gateway.terminate_session(holder)
                else:
                    time.sleep(self.config.kill_retry_sleep_seconds)

                attempts += 1
                if attempts >= self.config.kill_attempts:
                    raise AcquireError(
                        name,
                        f"Could not acquire lock '{name}'. Other session holds it "
                        "and does not terminate.",
                    )
            holds_native = True

            if not self.registry.mark_acquired(name):
                raise AcquireError(
                    name,
                    f"Could not acquire lock '{name}'. Could not mark claim as acquired.",
                )
        except Exception:
            with suppress(Exception):
                self.registry.deregister(name)
            # A native lock kept after rollback would get this session killed
            # by the next claimant.
            if holds_native:
                with suppress(Exception):
                    self.gateway.release_native(name)
            raise

        return True

    def _sleep_until_release(self, name: str, timeout: float) -> None:
        # Only used to notice a release; the native lock is handed back at once.
        if self.gateway.acquire_native(name, timeout):
            self.gateway.release_native(name)
            time.sleep(max(0.0, min(self.config.poll_interval_seconds, timeout)))


def connect(
    store_uri: str | None = None,
    *,
    connection: ConnectionConfig | None = None,
    config: SharedLockConfig | None = None,
    logger: logging.Logger | None = None,
) -> LockCoordinator:
    """Open a gateway and return a coordinator that owns it."""
    cfg = config or SharedLockConfig()
    gateway = open_gateway(store_uri, connection=connection, table_engine=cfg.table_engine)
    return LockCoordinator(gateway, cfg, logger=logger)
