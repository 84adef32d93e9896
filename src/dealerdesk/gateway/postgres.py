"""PostgreSQL gateway backend talking to the data store's database directly."""

from __future__ import annotations

import threading
from typing import Any

from .base import GatewayError, RowNotFoundError, ensure_procedure, ensure_table


class PostgresGateway:
    """Run gateway operations as parameterized SQL through psycopg."""

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("DEALERDESK_DATABASE_URL is required")
        self.database_url = database_url
        # Lock guards DB operations done through this gateway instance.
        self._lock = threading.Lock()
        self._psycopg, self._sql, self._dict_row, self._json_wrapper = self._load_psycopg()

    def select(
        self,
        table: str,
        *,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        sql = self._sql
        where, params = self._where(filters or {})
        query = sql.SQL("SELECT * FROM {table}{where}").format(
            table=sql.Identifier(ensure_table(table)),
            where=where,
        )
        if order_by:
            query = query + sql.SQL(" ORDER BY {column} {direction}").format(
                column=sql.Identifier(order_by),
                direction=sql.SQL("DESC" if descending else "ASC"),
            )
        rows = self._fetch_all(query, params)
        return [dict(row) for row in rows]

    def get(self, table: str, row_id: str) -> dict[str, Any] | None:
        rows = self.select(table, filters={"id": row_id})
        return rows[0] if rows else None

    def insert(self, table: str, values: dict[str, Any]) -> dict[str, Any]:
        sql = self._sql
        columns = list(values)
        query = sql.SQL("INSERT INTO {table} ({columns}) VALUES ({values}) RETURNING *").format(
            table=sql.Identifier(ensure_table(table)),
            columns=sql.SQL(", ").join(sql.Identifier(column) for column in columns),
            values=sql.SQL(", ").join(sql.Placeholder() for _ in columns),
        )
        rows = self._fetch_all(query, [self._adapt(values[column]) for column in columns])
        if not rows:
            raise GatewayError(f"Insert into {table} returned no row")
        return dict(rows[0])

    def update(self, table: str, row_id: str, values: dict[str, Any]) -> dict[str, Any]:
        sql = self._sql
        columns = list(values)
        query = sql.SQL("UPDATE {table} SET {assignments} WHERE id::text = %s RETURNING *").format(
            table=sql.Identifier(ensure_table(table)),
            assignments=sql.SQL(", ").join(
                sql.SQL("{column} = %s").format(column=sql.Identifier(column))
                for column in columns
            ),
        )
        params = [self._adapt(values[column]) for column in columns] + [str(row_id)]
        rows = self._fetch_all(query, params)
        if not rows:
            raise RowNotFoundError(f"No row in {table} with id {row_id}", status=404)
        return dict(rows[0])

    def delete(self, table: str, row_id: str) -> None:
        sql = self._sql
        query = sql.SQL("DELETE FROM {table} WHERE id::text = %s").format(
            table=sql.Identifier(ensure_table(table)),
        )
        self._execute(query, [str(row_id)])

    def rpc(self, name: str, params: dict[str, Any] | None = None) -> Any:
        sql = self._sql
        arguments = params or {}
        query = sql.SQL("SELECT * FROM {function}({arguments})").format(
            function=sql.Identifier(ensure_procedure(name)),
            arguments=sql.SQL(", ").join(
                sql.SQL("{name} => %s").format(name=sql.Identifier(key)) for key in arguments
            ),
        )
        rows = self._fetch_all(query, [self._adapt(value) for value in arguments.values()])
        return [dict(row) for row in rows]

    def _where(self, filters: dict[str, Any]) -> tuple[Any, list[Any]]:
        sql = self._sql
        if not filters:
            return sql.SQL(""), []
        clauses = []
        params: list[Any] = []
        for column, value in filters.items():
            if value is None:
                clauses.append(sql.SQL("{column} IS NULL").format(column=sql.Identifier(column)))
                continue
            if column == "id":
                clauses.append(sql.SQL("id::text = %s"))
                params.append(str(value))
                continue
            clauses.append(sql.SQL("{column} = %s").format(column=sql.Identifier(column)))
            params.append(self._adapt(value))
        return sql.SQL(" WHERE ") + sql.SQL(" AND ").join(clauses), params

    def _adapt(self, value: Any) -> Any:
        if isinstance(value, dict):
            return self._json_wrapper(value)
        return value

    def _fetch_all(self, query: Any, params: list[Any]) -> list[Any]:
        try:
            with self._lock, self._connect() as conn:
                rows = conn.execute(query, params).fetchall()
                conn.commit()
        except self._psycopg.Error as exc:
            raise GatewayError(str(exc), code=getattr(exc, "sqlstate", None)) from exc
        return rows

    def _execute(self, query: Any, params: list[Any]) -> None:
        try:
            with self._lock, self._connect() as conn:
                conn.execute(query, params)
                conn.commit()
        except self._psycopg.Error as exc:
            raise GatewayError(str(exc), code=getattr(exc, "sqlstate", None)) from exc

    def _connect(self) -> Any:
        """Open a psycopg connection that yields dict-like rows."""
        return self._psycopg.connect(self.database_url, row_factory=self._dict_row)

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any, Any, Any]:
        """Import psycopg and helpers with a friendly install hint on failure."""
        try:
            import psycopg
            from psycopg import sql
            from psycopg.rows import dict_row
            from psycopg.types.json import Json
        except ImportError as exc:  # pragma: no cover - exercised only without dependency
            raise RuntimeError(
                "PostgreSQL backend requires psycopg. Install with: "
                'python -m pip install "psycopg[binary]>=3.2,<4.0"'
            ) from exc
        return psycopg, sql, dict_row, Json
