"""Structured error types for shared locks."""

from __future__ import annotations


class SharedLockError(Exception):
    """Base error for all lock operations. Carries the lock name."""

    def __init__(self, name: str, message: str = "") -> None:
        self.name = name
        super().__init__(message or f"Shared lock operation failed for '{name}'")


class AcquireError(SharedLockError):
    """Raised when a lock could not be acquired."""

    def __init__(self, name: str, message: str = "") -> None:
        super().__init__(name, message or f"Could not acquire lock '{name}'")


class LockTimeoutError(AcquireError):
    """Raised when a lock could not be acquired within the timeout."""

    def __init__(self, name: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(name, f"Could not acquire lock '{name}' within {timeout}s timeout")


class ReleaseError(SharedLockError):
    """Raised when a release could not confirm ownership of the lock.

    The lock must be assumed to no longer belong to this process.
    """

    def __init__(self, name: str, message: str = "") -> None:
        super().__init__(
            name,
            message or f"Lock '{name}' was not held by this session and could not be released",
        )


class RemainingTTLError(SharedLockError):
    """Raised when the lock's remaining TTL (or its ownership) cannot be verified."""

    def __init__(self, name: str, min_remaining: float, message: str = "") -> None:
        self.min_remaining = min_remaining
        super().__init__(
            name,
            message or f"Lock '{name}' does not have {min_remaining}s of TTL remaining",
        )


class TableRepairError(Exception):
    """Raised when the lock table is damaged and automatic repair failed."""

    def __init__(
        self,
        table: str,
        status: str | None = None,
        messages: list[str] | None = None,
        detail: str = "",
        damage: BaseException | None = None,
    ) -> None:
        self.table = table
        self.status = status
        self.messages = messages or []
        # The store error that triggered the repair, if any.
        self.damage = damage
        text = detail or (
            f"Table '{table}' seems to be corrupted. Repair failed with status "
            f"'{status or ''}' ({', '.join(self.messages)})"
        )
        if damage is not None:
            text = f"{text}; repair was triggered by: {damage}"
        super().__init__(text)


class StoreConfigError(Exception):
    """Raised for invalid store URIs or configuration files."""

    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"Store configuration error during {operation}: {detail}")
