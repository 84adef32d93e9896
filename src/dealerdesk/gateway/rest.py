"""PostgREST (Supabase REST) gateway backend.

Beginner terms:
- PostgREST: an HTTP API generated from a Postgres schema. Tables live under
  /rest/v1/<table>, stored procedures under /rest/v1/rpc/<name>.
- Filter syntax: query params like `store=eq.RN%20Multimarcas`.
- Prefer: return=representation asks the server to echo written rows back.
"""

from __future__ import annotations

import http.client
import json
import logging
from datetime import date, datetime
from typing import Any
from urllib import error, parse, request

from .base import GatewayError, RowNotFoundError, ensure_procedure, ensure_table

logger = logging.getLogger(__name__)


class RestGateway:
    """Data gateway talking to a Supabase project over its REST endpoint."""

    def __init__(self, *, base_url: str, api_key: str, timeout_s: float = 10.0) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        if not api_key:
            raise ValueError("api_key is required")
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_s = timeout_s

    def select(
        self,
        table: str,
        *,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        params: dict[str, str] = {"select": "*"}
        params.update(_filter_params(filters or {}))
        if order_by:
            params["order"] = f"{order_by}.{'desc' if descending else 'asc'}"
        body = self._request("GET", self._table_url(table, params))
        return _as_rows(body)

    def get(self, table: str, row_id: str) -> dict[str, Any] | None:
        rows = self.select(table, filters={"id": row_id})
        return rows[0] if rows else None

    def insert(self, table: str, values: dict[str, Any]) -> dict[str, Any]:
        body = self._request(
            "POST",
            self._table_url(table, {}),
            payload=values,
            prefer="return=representation",
        )
        rows = _as_rows(body)
        if not rows:
            raise GatewayError(f"Insert into {table} returned no row")
        return rows[0]

    def update(self, table: str, row_id: str, values: dict[str, Any]) -> dict[str, Any]:
        body = self._request(
            "PATCH",
            self._table_url(table, _filter_params({"id": row_id})),
            payload=values,
            prefer="return=representation",
        )
        rows = _as_rows(body)
        if not rows:
            raise RowNotFoundError(f"No row in {table} with id {row_id}", status=404)
        return rows[0]

    def delete(self, table: str, row_id: str) -> None:
        self._request("DELETE", self._table_url(table, _filter_params({"id": row_id})))

    def rpc(self, name: str, params: dict[str, Any] | None = None) -> Any:
        url = f"{self.base_url}/rest/v1/rpc/{ensure_procedure(name)}"
        return self._request("POST", url, payload=params or {})

    def _table_url(self, table: str, params: dict[str, str]) -> str:
        url = f"{self.base_url}/rest/v1/{ensure_table(table)}"
        if not params:
            return url
        return f"{url}?{parse.urlencode(params)}"

    def _request(
        self,
        method: str,
        url: str,
        *,
        payload: dict[str, Any] | None = None,
        prefer: str | None = None,
    ) -> Any:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }
        data = None
        if payload is not None:
            data = json.dumps(payload, default=_json_default).encode("utf-8")
            headers["Content-Type"] = "application/json"
        if prefer:
            headers["Prefer"] = prefer
        req = request.Request(url=url, data=data, method=method, headers=headers)

        try:
            with request.urlopen(req, timeout=self.timeout_s) as response:
                body = response.read().decode("utf-8")
        except error.HTTPError as exc:
            raw_error = exc.read().decode("utf-8", errors="replace")
            message, code = _error_details(raw_error, fallback=f"HTTP {exc.code}")
            logger.warning(
                "gateway_request event=failed method=%s url=%s status=%s message=%s",
                method,
                url,
                exc.code,
                message,
            )
            raise GatewayError(message, status=exc.code, code=code) from exc
        except error.URLError as exc:
            logger.warning(
                "gateway_request event=unreachable method=%s url=%s reason=%s",
                method,
                url,
                exc.reason,
            )
            raise GatewayError(f"Data API unreachable: {exc.reason}") from exc
        except (OSError, http.client.HTTPException) as exc:
            logger.warning(
                "gateway_request event=unreachable method=%s url=%s reason=%r",
                method,
                url,
                exc,
            )
            raise GatewayError(f"Data API unreachable: {exc}") from exc

        if not body:
            return None
        try:
            return json.loads(body)
        except json.JSONDecodeError as exc:
            raise GatewayError("Data API returned non-JSON response.") from exc


def _filter_params(filters: dict[str, Any]) -> dict[str, str]:
    params: dict[str, str] = {}
    for column, value in filters.items():
        if value is None:
            params[column] = "is.null"
        elif isinstance(value, bool):
            params[column] = f"eq.{'true' if value else 'false'}"
        elif isinstance(value, (date, datetime)):
            params[column] = f"eq.{value.isoformat()}"
        else:
            params[column] = f"eq.{value}"
    return params


def _as_rows(body: Any) -> list[dict[str, Any]]:
    if body is None:
        return []
    if isinstance(body, dict):
        return [body]
    if isinstance(body, list):
        return [row for row in body if isinstance(row, dict)]
    raise GatewayError(f"Unsupported response shape: {type(body)!r}")


def _error_details(raw_error: str, *, fallback: str) -> tuple[str, str | None]:
    try:
        parsed = json.loads(raw_error)
    except json.JSONDecodeError:
        return (raw_error[:300] or fallback), None
    if isinstance(parsed, dict):
        message = parsed.get("message") or parsed.get("error") or fallback
        code = parsed.get("code")
        return str(message), str(code) if code is not None else None
    return fallback, None


def _json_default(value: Any) -> str:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
