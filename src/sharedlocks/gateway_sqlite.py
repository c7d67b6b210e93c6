"""SQLite store gateway.

SQLite has no server-side named locks, so the native session lock is emulated
by a process-wide table per database file. Each gateway instance is one
session; its native locks disappear when it is closed or terminated, which is
the same liveness signal a server-side lock gives. Coordination therefore
spans threads and gateways of one process, which is what single-host tooling
and the test-suite need.
"""

from __future__ import annotations

import itertools
import os
import sqlite3
import threading
import time
import weakref
from collections.abc import Callable, Mapping
from typing import Any

from sharedlocks.gateway import StatementResult

_session_ids = itertools.count(1)
_registry_guard = threading.Lock()
_native_tables: dict[str, _NativeLockTable] = {}
_sessions: weakref.WeakValueDictionary[int, SqliteGateway] = weakref.WeakValueDictionary()


class _NativeLockTable:
    """Re-entrant named locks shared by all sessions on one database."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        # name -> [session_id, acquisition count]
        self._owners: dict[str, list[int]] = {}

    def acquire(self, name: str, session_id: int, timeout: float) -> bool:
        deadline = time.monotonic() + max(0.0, timeout)
        with self._cond:
            while True:
                owner = self._owners.get(name)
                if owner is None:
                    self._owners[name] = [session_id, 1]
                    return True
                if owner[0] == session_id:
                    owner[1] += 1
                    return True
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._cond.wait(remaining)

    def release(self, name: str, session_id: int) -> bool:
        with self._cond:
            owner = self._owners.get(name)
            if owner is None or owner[0] != session_id:
                return False
            owner[1] -= 1
            if owner[1] == 0:
                del self._owners[name]
                self._cond.notify_all()
            return True

    def holder(self, name: str) -> int | None:
        with self._cond:
            owner = self._owners.get(name)
            return owner[0] if owner is not None else None

    def release_all(self, session_id: int) -> None:
        with self._cond:
            names = [n for n, owner in self._owners.items() if owner[0] == session_id]
            for name in names:
                del self._owners[name]
            if names:
                self._cond.notify_all()


def _native_table_for(key: str) -> _NativeLockTable:
    with _registry_guard:
        table = _native_tables.get(key)
        if table is None:
            table = _NativeLockTable()
            _native_tables[key] = table
        return table


class SqliteGateway:
    """One session against a SQLite lock database."""

    backend = "sqlite"
    errors: tuple[type[BaseException], ...] = (sqlite3.Error,)

    def __init__(
        self,
        db_path: str,
        *,
        clock: Callable[[], float] | None = None,
        busy_timeout: float = 5.0,
    ) -> None:
        self.db_path = db_path
        self._clock = clock or time.time
        self._session_id = next(_session_ids)
        self._terminated = False
        self._closed = False

        self._conn = sqlite3.connect(
            db_path,
            timeout=busy_timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.create_function("unix_now", 0, self._unix_now)
        self._conn.create_function("session_id", 0, self._current_session_id)
        self._conn.create_function("lock_holder", 1, self._lock_holder)

        key = f":memory:{self._session_id}" if db_path == ":memory:" else os.path.abspath(db_path)
        self._native_key = key
        self._natives = _native_table_for(key)
        with _registry_guard:
            _sessions[self._session_id] = self

    @property
    def session_id(self) -> int:
        return self._session_id

    @property
    def terminated(self) -> bool:
        return self._terminated

    # --- SQL dialect ---

    @property
    def now_sql(self) -> str:
        return "unix_now()"

    @property
    def session_id_sql(self) -> str:
        return "session_id()"

    def lock_holder_sql(self, name_expr: str) -> str:
        return f"lock_holder({name_expr})"

    def placeholder(self, param: str) -> str:
        return f":{param}"

    def lock_table_ddl(self, quoted_table: str, quote: Callable[[str], str]) -> str:
        return (
            f"CREATE TABLE IF NOT EXISTS {quoted_table} ("
            f"{quote('name')} TEXT NOT NULL PRIMARY KEY, "
            f"{quote('created')} INTEGER NOT NULL, "
            f"{quote('ttl')} INTEGER NOT NULL, "
            f"{quote('connection_id')} INTEGER NOT NULL, "
            f"{quote('lock_acquired')} INTEGER NOT NULL DEFAULT 0)"
        )

    def _unix_now(self) -> int:
        return int(self._clock())

    def _current_session_id(self) -> int:
        return self._session_id

    def _lock_holder(self, name: str) -> int | None:
        return self._natives.holder(name)

    # --- Statements ---

    def _check_alive(self) -> None:
        if self._terminated:
            raise sqlite3.OperationalError(
                f"Lost connection: session {self._session_id} was killed"
            )
        if self._closed:
            raise sqlite3.ProgrammingError("Cannot operate on a closed gateway.")

    def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> StatementResult:
        self._check_alive()
        cursor = self._conn.execute(sql, dict(params or {}))
        try:
            rows = [tuple(r) for r in cursor.fetchall()]
            return StatementResult(rowcount=cursor.rowcount, rows=rows)
        finally:
            cursor.close()

    def is_duplicate_key(self, exc: BaseException) -> bool:
        return isinstance(exc, sqlite3.IntegrityError)

    def is_table_corruption(self, exc: BaseException) -> bool:
        if not isinstance(exc, sqlite3.DatabaseError) or isinstance(exc, sqlite3.IntegrityError):
            return False
        message = str(exc).lower()
        return "malformed" in message or "not a database" in message

    def repair_table(self, quoted_table: str) -> list[tuple[str, str]]:
        self._check_alive()
        self._conn.execute(f"REINDEX {quoted_table}")
        rows = self._conn.execute("PRAGMA integrity_check").fetchall()
        problems = [str(r[0]) for r in rows if str(r[0]).lower() != "ok"]
        messages = [("error", p) for p in problems]
        messages.append(("status", "Corrupt" if problems else "OK"))
        return messages

    # --- Native session lock ---

    def acquire_native(self, name: str, timeout: float) -> bool:
        self._check_alive()
        return self._natives.acquire(name, self._session_id, timeout)

    def release_native(self, name: str) -> bool:
        self._check_alive()
        return self._natives.release(name, self._session_id)

    def native_holder(self, name: str) -> int | None:
        self._check_alive()
        return self._natives.holder(name)

    def terminate_session(self, session_id: int) -> None:
        self._check_alive()
        with _registry_guard:
            target = _sessions.get(session_id)
        if target is None or target._natives is not self._natives or target._closed:
            raise sqlite3.OperationalError(f"Unknown thread id: {session_id}")
        target._terminate()

    def _terminate(self) -> None:
        self._terminated = True
        self._natives.release_all(self._session_id)

    # --- Lifecycle ---

    def storage_info(self) -> dict[str, Any]:
        return {
            "backend": self.backend,
            "db_path": self.db_path,
            "session_id": self._session_id,
        }

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._natives.release_all(self._session_id)
        with _registry_guard:
            _sessions.pop(self._session_id, None)
            # An in-memory database dies with its only session.
            if self.db_path == ":memory:":
                _native_tables.pop(self._native_key, None)
        self._conn.close()
