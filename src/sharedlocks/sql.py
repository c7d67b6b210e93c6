"""Identifier quoting and the statements run against the lock table."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sharedlocks.gateway import StoreGatewayProtocol


class QuoteStyle(str, Enum):
    """How table and column names are rendered."""

    BACKTICK = "backtick"
    ANSI = "ansi"

    @classmethod
    def parse(cls, value: str | QuoteStyle) -> QuoteStyle:
        if isinstance(value, QuoteStyle):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Invalid quote style '{value}'") from None


def quote_identifier(name: str, style: QuoteStyle = QuoteStyle.BACKTICK) -> str:
    if style is QuoteStyle.BACKTICK:
        return "`" + name.replace("`", "``") + "`"
    if style is QuoteStyle.ANSI:
        return '"' + name.replace('"', '""') + '"'
    raise ValueError(f"Invalid quote style '{style}'")


class LockStatements:
    """Renders lock table statements for one table, quote style and store dialect.

    Values are always bound as parameters; only identifiers and the store's
    own functions (current time, session id, native lock holder) are rendered
    into the text.
    """

    def __init__(
        self,
        gateway: StoreGatewayProtocol,
        table: str,
        quote_style: QuoteStyle = QuoteStyle.BACKTICK,
    ) -> None:
        self.table = table
        self.quote_style = quote_style
        self._gw = gateway

    def q(self, name: str) -> str:
        return quote_identifier(name, self.quote_style)

    @property
    def quoted_table(self) -> str:
        return self.q(self.table)

    def _p(self, param: str) -> str:
        return self._gw.placeholder(param)

    def _expiry(self) -> str:
        return f"{self.q('created')} + {self.q('ttl')}"

    def create_table(self) -> str:
        return self._gw.lock_table_ddl(self.quoted_table, self.q)

    def insert_claim(self) -> str:
        cols = ", ".join(
            self.q(c) for c in ("name", "created", "ttl", "connection_id", "lock_acquired")
        )
        return (
            f"INSERT INTO {self.quoted_table} ({cols}) "
            f"VALUES ({self._p('name')}, {self._gw.now_sql}, {self._p('ttl')}, "
            f"{self._gw.session_id_sql}, 0)"
        )

    def confirm_claim(self) -> str:
        return (
            f"UPDATE {self.quoted_table} SET {self.q('lock_acquired')} = 1 "
            f"WHERE {self.q('name')} = {self._p('name')} "
            f"AND {self.q('connection_id')} = {self._gw.session_id_sql}"
        )

    def release_claim(self) -> str:
        return (
            f"DELETE FROM {self.quoted_table} "
            f"WHERE {self.q('name')} = {self._p('name')} "
            f"AND {self.q('connection_id')} = {self._gw.session_id_sql}"
        )

    def stale_sweep(self) -> str:
        holder = self._gw.lock_holder_sql(self._p("name"))
        return (
            f"DELETE FROM {self.quoted_table} "
            f"WHERE {self.q('name')} = {self._p('name')} "
            f"AND ({self._expiry()} < {self._gw.now_sql} "
            f"OR ({self.q('lock_acquired')} <> 0 "
            f"AND COALESCE({holder}, 0) <> {self.q('connection_id')}))"
        )

    def remaining_ttl(self) -> str:
        return (
            f"SELECT {self._expiry()} - {self._gw.now_sql} FROM {self.quoted_table} "
            f"WHERE {self.q('name')} = {self._p('name')}"
        )

    def assert_ttl(self) -> str:
        return (
            f"SELECT 1 FROM {self.quoted_table} "
            f"WHERE {self.q('name')} = {self._p('name')} "
            f"AND {self.q('connection_id')} = {self._gw.session_id_sql} "
            f"AND {self._expiry()} > {self._gw.now_sql} + {self._p('min_remaining')}"
        )

    def list_records(self) -> str:
        cols = ", ".join(
            self.q(c) for c in ("name", "created", "ttl", "connection_id", "lock_acquired")
        )
        return (
            f"SELECT {cols}, {self._expiry()} - {self._gw.now_sql} "
            f"FROM {self.quoted_table} ORDER BY {self.q('name')}"
        )
