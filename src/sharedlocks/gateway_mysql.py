"""MySQL store gateway backed by PyMySQL.

Native locks map onto ``GET_LOCK``/``RELEASE_LOCK``/``IS_USED_LOCK``; the
server drops them when the owning connection ends.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping
from typing import Any

import pymysql
import pymysql.cursors

from sharedlocks.config import ConnectionConfig
from sharedlocks.gateway import StatementResult

ER_DUP_ENTRY = 1062
ER_KEY_NOT_FOUND = 1032
_CORRUPTION_MESSAGE = "Incorrect key file for table"


def _error_code(exc: BaseException) -> int | None:
    args = getattr(exc, "args", ())
    if args and isinstance(args[0], int):
        return args[0]
    return None


def _wait_seconds(timeout: float) -> int:
    # GET_LOCK treats negative timeouts as infinite.
    return max(0, math.ceil(timeout))


class MySQLGateway:
    """One MySQL connection (session)."""

    backend = "mysql"
    errors: tuple[type[BaseException], ...] = (pymysql.MySQLError,)

    def __init__(self, connection: ConnectionConfig, *, table_engine: str = "MyISAM") -> None:
        self.connection_config = connection
        self.table_engine = table_engine
        kwargs: dict[str, Any] = {
            "host": connection.host,
            "user": connection.user,
            "password": connection.password,
            "database": connection.database,
            "charset": connection.charset,
            "autocommit": True,
        }
        if connection.port:
            kwargs["port"] = int(connection.port)
        kwargs.update(connection.options)
        self._conn = pymysql.connect(**kwargs)
        self._session_id: int | None = None

    @property
    def session_id(self) -> int:
        if self._session_id is None:
            self._session_id = int(self._fetch_value("SELECT CONNECTION_ID()"))
        return self._session_id

    # --- SQL dialect ---

    @property
    def now_sql(self) -> str:
        return "UNIX_TIMESTAMP()"

    @property
    def session_id_sql(self) -> str:
        return "CONNECTION_ID()"

    def lock_holder_sql(self, name_expr: str) -> str:
        return f"IS_USED_LOCK({name_expr})"

    def placeholder(self, param: str) -> str:
        return f"%({param})s"

    def lock_table_ddl(self, quoted_table: str, quote: Callable[[str], str]) -> str:
        return (
            f"CREATE TABLE IF NOT EXISTS {quoted_table} ("
            f"{quote('name')} VARCHAR(191) NOT NULL, "
            f"{quote('created')} INT UNSIGNED NOT NULL, "
            f"{quote('ttl')} INT UNSIGNED NOT NULL, "
            f"{quote('connection_id')} BIGINT UNSIGNED NOT NULL, "
            f"{quote('lock_acquired')} BOOLEAN NOT NULL DEFAULT FALSE, "
            f"PRIMARY KEY ({quote('name')})"
            f") ENGINE={self.table_engine}"
        )

    # --- Statements ---

    def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> StatementResult:
        with self._conn.cursor() as cursor:
            cursor.execute(sql, dict(params) if params else None)
            rows = [tuple(r) for r in cursor.fetchall()]
            return StatementResult(rowcount=cursor.rowcount, rows=rows)

    def _fetch_value(self, sql: str, params: Mapping[str, Any] | None = None) -> Any:
        return self.execute(sql, params).scalar()

    def is_duplicate_key(self, exc: BaseException) -> bool:
        return isinstance(exc, pymysql.IntegrityError) and _error_code(exc) == ER_DUP_ENTRY

    def is_table_corruption(self, exc: BaseException) -> bool:
        if not isinstance(exc, pymysql.MySQLError):
            return False
        if _error_code(exc) == ER_KEY_NOT_FOUND:
            return True
        return _CORRUPTION_MESSAGE in str(exc)

    def repair_table(self, quoted_table: str) -> list[tuple[str, str]]:
        with self._conn.cursor(pymysql.cursors.DictCursor) as cursor:
            cursor.execute(f"REPAIR TABLE {quoted_table}")
            return [(str(r["Msg_type"]), str(r["Msg_text"])) for r in cursor.fetchall()]

    # --- Native session lock ---

    def acquire_native(self, name: str, timeout: float) -> bool:
        result = self._fetch_value(
            "SELECT GET_LOCK(%(name)s, %(timeout)s)",
            {"name": name, "timeout": _wait_seconds(timeout)},
        )
        return result == 1

    def release_native(self, name: str) -> bool:
        return self._fetch_value("SELECT RELEASE_LOCK(%(name)s)", {"name": name}) == 1

    def native_holder(self, name: str) -> int | None:
        result = self._fetch_value("SELECT IS_USED_LOCK(%(name)s)", {"name": name})
        return int(result) if result else None

    def terminate_session(self, session_id: int) -> None:
        self.execute(f"KILL {int(session_id)}")

    # --- Lifecycle ---

    def storage_info(self) -> dict[str, Any]:
        cfg = self.connection_config
        return {
            "backend": self.backend,
            "host": cfg.host,
            "port": cfg.port,
            "database": cfg.database,
            "session_id": self._session_id,
        }

    def close(self) -> None:
        if self._conn.open:
            self._conn.close()
