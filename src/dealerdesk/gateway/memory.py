"""In-memory gateway backend for tests only."""

from __future__ import annotations

import copy
import threading
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from .base import GatewayError, RowNotFoundError, ensure_procedure, ensure_table


class InMemoryGateway:
    """Dict-backed tables with a call log and failure injection."""

    def __init__(self, tables: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self._lock = threading.Lock()
        self._tables: dict[str, dict[str, dict[str, Any]]] = {}
        self._rpc_handlers: dict[str, Callable[[dict[str, Any]], Any]] = {}
        self._failures: dict[tuple[str, str], list[str]] = {}
        # (operation, table or procedure) per remote call, in call order.
        self.calls: list[tuple[str, str]] = []
        for table, rows in (tables or {}).items():
            for row in rows:
                self.seed(table, row)

    def seed(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        ensure_table(table)
        stored = dict(row)
        stored.setdefault("id", str(uuid4()))
        with self._lock:
            self._tables.setdefault(table, {})[str(stored["id"])] = stored
        return copy.deepcopy(stored)

    def register_rpc(self, name: str, handler: Callable[[dict[str, Any]], Any]) -> None:
        self._rpc_handlers[ensure_procedure(name)] = handler

    def fail_on(self, operation: str, target: str, message: str, *, times: int = 1) -> None:
        """Make the next `times` calls of `operation` on `target` raise GatewayError."""
        with self._lock:
            self._failures.setdefault((operation, target), []).extend([message] * times)

    def rows(self, table: str) -> list[dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(row) for row in self._tables.get(table, {}).values()]

    def select(
        self,
        table: str,
        *,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        self._record("select", ensure_table(table))
        with self._lock:
            rows = [
                copy.deepcopy(row)
                for row in self._tables.get(table, {}).values()
                if _matches(row, filters or {})
            ]
        if order_by:
            present = [row for row in rows if row.get(order_by) is not None]
            missing = [row for row in rows if row.get(order_by) is None]
            present.sort(key=lambda row: _sort_value(row[order_by]), reverse=descending)
            rows = present + missing
        return rows

    def get(self, table: str, row_id: str) -> dict[str, Any] | None:
        self._record("get", ensure_table(table))
        with self._lock:
            row = self._tables.get(table, {}).get(str(row_id))
            return copy.deepcopy(row) if row is not None else None

    def insert(self, table: str, values: dict[str, Any]) -> dict[str, Any]:
        self._record("insert", ensure_table(table))
        row = dict(values)
        row.setdefault("id", str(uuid4()))
        row.setdefault("created_at", datetime.now(tz=UTC).isoformat())
        with self._lock:
            self._tables.setdefault(table, {})[str(row["id"])] = row
            return copy.deepcopy(row)

    def update(self, table: str, row_id: str, values: dict[str, Any]) -> dict[str, Any]:
        self._record("update", ensure_table(table))
        with self._lock:
            row = self._tables.get(table, {}).get(str(row_id))
            if row is None:
                raise RowNotFoundError(f"No row in {table} with id {row_id}", status=404)
            row.update(values)
            return copy.deepcopy(row)

    def delete(self, table: str, row_id: str) -> None:
        self._record("delete", ensure_table(table))
        with self._lock:
            self._tables.get(table, {}).pop(str(row_id), None)

    def rpc(self, name: str, params: dict[str, Any] | None = None) -> Any:
        self._record("rpc", ensure_procedure(name))
        handler = self._rpc_handlers.get(name)
        if handler is None:
            return None
        return handler(dict(params or {}))

    def _record(self, operation: str, target: str) -> None:
        with self._lock:
            self.calls.append((operation, target))
            pending = self._failures.get((operation, target))
            message = pending.pop(0) if pending else None
        if message is not None:
            raise GatewayError(message)


def _matches(row: dict[str, Any], filters: dict[str, Any]) -> bool:
    return all(row.get(column) == value for column, value in filters.items())


def _sort_value(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)
