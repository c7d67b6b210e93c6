"""Statement execution with one-shot repair of a damaged lock table."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from sharedlocks.errors import TableRepairError
from sharedlocks.gateway import StatementResult, StoreGatewayProtocol

logger = logging.getLogger(__name__)


class StatementExecutor:
    """Runs lock table statements, repairing the table once if it reports damage.

    A statement failing with the store's corruption signature triggers exactly
    one repair and one retry. A failure of the retry, or a repair that does not
    end in an ``OK`` status, raises :class:`TableRepairError` carrying the
    original store error as ``damage``. A duplicate key on the retry is raised
    unchanged since it only means the claim is taken.
    """

    def __init__(self, gateway: StoreGatewayProtocol, table: str, quoted_table: str) -> None:
        self.gateway = gateway
        self.table = table
        self.quoted_table = quoted_table

    def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> StatementResult:
        try:
            return self.gateway.execute(sql, params)
        except self.gateway.errors as e:
            if not self.gateway.is_table_corruption(e):
                raise
            logger.warning("Lock table %s reported damage (%s); repairing", self.table, e)
            damage = e

        self._repair(damage)
        try:
            return self.gateway.execute(sql, params)
        except self.gateway.errors as e:
            # A duplicate key on the retry is ordinary contention, not damage.
            if self.gateway.is_duplicate_key(e):
                raise
            raise TableRepairError(
                self.table,
                detail=f"Statement on table '{self.table}' failed after repair: {e}",
                damage=damage,
            ) from e

    def fetch_value(self, sql: str, params: Mapping[str, Any] | None = None) -> Any:
        return self.execute(sql, params).scalar()

    def repair_table(self) -> None:
        self._repair(None)

    def _repair(self, damage: BaseException | None) -> None:
        try:
            messages = self.gateway.repair_table(self.quoted_table)
        except self.gateway.errors as e:
            raise TableRepairError(
                self.table,
                detail=f"Repair of table '{self.table}' failed: {e}",
                damage=damage,
            ) from e

        status: str | None = None
        notes: list[str] = []
        for msg_type, msg_text in messages:
            if msg_type.lower() == "status":
                status = msg_text
            else:
                notes.append(f"{msg_type}: {msg_text}")

        if not status or status.upper() != "OK":
            raise TableRepairError(self.table, status=status, messages=notes, damage=damage)
        logger.info("Lock table %s repaired", self.table)
