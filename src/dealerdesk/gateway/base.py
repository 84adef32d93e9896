"""Data gateway interface over the remote relational data API."""

from __future__ import annotations

from typing import Any, Protocol

KNOWN_TABLES = frozenset(
    {
        "tasks",
        "advertisements",
        "advertisement_insights",
        "vehicles",
        "vendidos",
        "user_profiles",
        "role_permissions",
        "notifications",
        "vehicle_images",
        "vehicle_change_history",
        "productivity_metrics",
    }
)

KNOWN_PROCEDURES = frozenset(
    {
        "recalculate_all_pendencies",
        "detect_advertisement_inconsistencies",
        "cleanup_obsolete_tasks",
        "sync_tasks_with_current_state",
        "get_consolidated_task_state",
    }
)


class GatewayError(Exception):
    """Remote call rejected or failed in transport."""

    def __init__(self, message: str, *, status: int | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code


class RowNotFoundError(GatewayError):
    """Single-row operation matched nothing."""


def ensure_table(table: str) -> str:
    if table not in KNOWN_TABLES:
        raise ValueError(f"Unknown table: {table}")
    return table


def ensure_procedure(name: str) -> str:
    if name not in KNOWN_PROCEDURES:
        raise ValueError(f"Unknown procedure: {name}")
    return name


class DataGateway(Protocol):
    def select(
        self,
        table: str,
        *,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]: ...

    def get(self, table: str, row_id: str) -> dict[str, Any] | None: ...

    def insert(self, table: str, values: dict[str, Any]) -> dict[str, Any]: ...

    def update(self, table: str, row_id: str, values: dict[str, Any]) -> dict[str, Any]: ...

    def delete(self, table: str, row_id: str) -> None: ...

    def rpc(self, name: str, params: dict[str, Any] | None = None) -> Any: ...
