"""Persisted lock ownership records."""

from __future__ import annotations

from dataclasses import dataclass

from sharedlocks.executor import StatementExecutor
from sharedlocks.gateway import StoreGatewayProtocol
from sharedlocks.sql import LockStatements, QuoteStyle


@dataclass
class LockRecord:
    """One claimed lock name."""

    name: str
    created: int
    ttl: int
    connection_id: int
    lock_acquired: bool
    remaining_ttl: int
    native_holder: int | None = None

    # A claim at exactly its expiry second is still live; the stale sweep
    # only removes rows whose expiry is strictly in the past.
    @property
    def live(self) -> bool:
        return self.remaining_ttl >= 0

    @property
    def confirmed(self) -> bool:
        return self.lock_acquired and self.native_holder == self.connection_id

    @property
    def stale(self) -> bool:
        if self.remaining_ttl < 0:
            return True
        return self.lock_acquired and self.native_holder != self.connection_id


class LockRegistry:
    """Lock table operations, scoped to the gateway's own session where ownership matters.

    The table's primary key on ``name`` is the only source of mutual
    exclusion: a failed insert is the normal signal that someone else holds
    the claim.
    """

    def __init__(
        self,
        gateway: StoreGatewayProtocol,
        table: str = "shared_locks",
        quote_style: QuoteStyle = QuoteStyle.BACKTICK,
    ) -> None:
        self.gateway = gateway
        self.statements = LockStatements(gateway, table, quote_style)
        self.executor = StatementExecutor(gateway, table, self.statements.quoted_table)

    @property
    def table(self) -> str:
        return self.statements.table

    def create_table(self) -> None:
        self.executor.execute(self.statements.create_table())

    def register(self, name: str, ttl: int) -> bool:
        try:
            self.executor.execute(self.statements.insert_claim(), {"name": name, "ttl": int(ttl)})
        except self.gateway.errors as e:
            if self.gateway.is_duplicate_key(e):
                return False
            raise
        return True

    def mark_acquired(self, name: str) -> bool:
        result = self.executor.execute(self.statements.confirm_claim(), {"name": name})
        return result.rowcount == 1

    def deregister(self, name: str) -> bool:
        result = self.executor.execute(self.statements.release_claim(), {"name": name})
        return result.rowcount == 1

    def clean_obsolete(self, name: str) -> bool:
        result = self.executor.execute(self.statements.stale_sweep(), {"name": name})
        return result.rowcount == 1

    def remaining_ttl(self, name: str) -> int:
        value = self.executor.fetch_value(self.statements.remaining_ttl(), {"name": name})
        return int(value) if value is not None else 0

    def has_remaining_ttl(self, name: str, min_remaining: float) -> bool:
        value = self.executor.fetch_value(
            self.statements.assert_ttl(),
            {"name": name, "min_remaining": min_remaining},
        )
        return value is not None and int(value) == 1

    def list_records(self) -> list[LockRecord]:
        rows = self.executor.execute(self.statements.list_records()).rows
        return [
            LockRecord(
                name=str(r[0]),
                created=int(r[1]),
                ttl=int(r[2]),
                connection_id=int(r[3]),
                lock_acquired=bool(r[4]),
                remaining_ttl=int(r[5]),
                native_holder=self.gateway.native_holder(str(r[0])),
            )
            for r in rows
        ]

    def repair_table(self) -> None:
        self.executor.repair_table()
