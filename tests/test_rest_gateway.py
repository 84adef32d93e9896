from __future__ import annotations

import http.client
import io
import json
from datetime import UTC, datetime
from urllib import error, parse, request

import pytest

from dealerdesk.gateway.base import GatewayError, RowNotFoundError
from dealerdesk.gateway.rest import RestGateway

BASE_URL = "https://project.supabase.co"


class _FakeHTTPResponse:
    def __init__(self, payload: object) -> None:
        self._raw_body = json.dumps(payload).encode("utf-8")

    def read(self) -> bytes:
        return self._raw_body

    def __enter__(self) -> _FakeHTTPResponse:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        _ = (exc_type, exc, tb)
        return False


@pytest.fixture
def rest_gateway() -> RestGateway:
    return RestGateway(base_url=f"{BASE_URL}/", api_key="anon-key", timeout_s=3.5)


def test_select_builds_postgrest_query(
    monkeypatch: pytest.MonkeyPatch, rest_gateway: RestGateway
) -> None:
    captured: dict[str, object] = {}

    def fake_urlopen(req: request.Request, timeout: float):
        captured["req"] = req
        captured["timeout"] = timeout
        return _FakeHTTPResponse([{"id": "ad-1", "platform": "OLX"}])

    monkeypatch.setattr(request, "urlopen", fake_urlopen)

    rows = rest_gateway.select(
        "advertisements",
        filters={"store": "RN Multimarcas", "publicado": False},
        order_by="created_at",
        descending=True,
    )

    req = captured["req"]
    assert isinstance(req, request.Request)
    split = parse.urlsplit(req.full_url)
    assert split.path == "/rest/v1/advertisements"
    assert parse.parse_qs(split.query) == {
        "select": ["*"],
        "store": ["eq.RN Multimarcas"],
        "publicado": ["eq.false"],
        "order": ["created_at.desc"],
    }
    assert req.get_method() == "GET"
    assert req.get_header("Apikey") == "anon-key"
    assert req.get_header("Authorization") == "Bearer anon-key"
    assert captured["timeout"] == 3.5
    assert rows == [{"id": "ad-1", "platform": "OLX"}]


def test_update_sends_patch_with_representation(
    monkeypatch: pytest.MonkeyPatch, rest_gateway: RestGateway
) -> None:
    captured: dict[str, object] = {}

    def fake_urlopen(req: request.Request, timeout: float):
        captured["req"] = req
        return _FakeHTTPResponse([{"id": "ins-1", "resolved": True}])

    monkeypatch.setattr(request, "urlopen", fake_urlopen)
    resolved_at = datetime(2024, 6, 12, 15, 0, tzinfo=UTC)

    row = rest_gateway.update(
        "advertisement_insights", "ins-1", {"resolved": True, "resolved_at": resolved_at}
    )

    req = captured["req"]
    assert isinstance(req, request.Request)
    assert req.get_method() == "PATCH"
    assert parse.parse_qs(parse.urlsplit(req.full_url).query) == {"id": ["eq.ins-1"]}
    assert req.get_header("Prefer") == "return=representation"
    assert json.loads(req.data) == {"resolved": True, "resolved_at": "2024-06-12T15:00:00+00:00"}
    assert row == {"id": "ins-1", "resolved": True}


def test_update_matching_nothing_raises_row_not_found(
    monkeypatch: pytest.MonkeyPatch, rest_gateway: RestGateway
) -> None:
    monkeypatch.setattr(request, "urlopen", lambda req, timeout: _FakeHTTPResponse([]))

    with pytest.raises(RowNotFoundError):
        rest_gateway.update("tasks", "missing", {"status": "completed"})


def test_rpc_posts_to_procedure_endpoint(
    monkeypatch: pytest.MonkeyPatch, rest_gateway: RestGateway
) -> None:
    captured: dict[str, object] = {}

    def fake_urlopen(req: request.Request, timeout: float):
        captured["req"] = req
        return _FakeHTTPResponse([{"id": "c1", "store": "RN Multimarcas", "status": "pending"}])

    monkeypatch.setattr(request, "urlopen", fake_urlopen)

    rows = rest_gateway.rpc("get_consolidated_task_state")

    req = captured["req"]
    assert isinstance(req, request.Request)
    assert req.full_url == f"{BASE_URL}/rest/v1/rpc/get_consolidated_task_state"
    assert req.get_method() == "POST"
    assert rows[0]["id"] == "c1"


def test_http_error_is_translated(monkeypatch: pytest.MonkeyPatch, rest_gateway: RestGateway) -> None:
    def fake_urlopen(req: request.Request, timeout: float):
        raise error.HTTPError(
            req.full_url,
            409,
            "Conflict",
            hdrs=None,
            fp=io.BytesIO(b'{"message": "duplicate key value", "code": "23505"}'),
        )

    monkeypatch.setattr(request, "urlopen", fake_urlopen)

    with pytest.raises(GatewayError) as exc_info:
        rest_gateway.insert("tasks", {"title": "Duplicate"})

    assert exc_info.value.message == "duplicate key value"
    assert exc_info.value.status == 409
    assert exc_info.value.code == "23505"


def test_unreachable_api_is_translated(
    monkeypatch: pytest.MonkeyPatch, rest_gateway: RestGateway
) -> None:
    def fake_urlopen(req: request.Request, timeout: float):
        raise error.URLError("connection refused")

    monkeypatch.setattr(request, "urlopen", fake_urlopen)

    with pytest.raises(GatewayError, match="Data API unreachable"):
        rest_gateway.select("vehicles")


def test_unknown_table_fails_before_any_request(
    monkeypatch: pytest.MonkeyPatch, rest_gateway: RestGateway
) -> None:
    def fake_urlopen(req: request.Request, timeout: float):
        raise AssertionError("no request expected")

    monkeypatch.setattr(request, "urlopen", fake_urlopen)

    with pytest.raises(ValueError, match="Unknown table"):
        rest_gateway.select("customers")
    with pytest.raises(ValueError, match="Unknown procedure"):
        rest_gateway.rpc("drop_everything")


def test_constructor_requires_credentials() -> None:
    with pytest.raises(ValueError):
        RestGateway(base_url=BASE_URL, api_key="")


class _TimedOutHTTPResponse(_FakeHTTPResponse):
    def read(self) -> bytes:
        raise TimeoutError("timed out")


def test_read_timeout_is_translated(
    monkeypatch: pytest.MonkeyPatch, rest_gateway: RestGateway
) -> None:
    monkeypatch.setattr(
        request, "urlopen", lambda req, timeout: _TimedOutHTTPResponse([])
    )

    with pytest.raises(GatewayError, match="Data API unreachable: timed out"):
        rest_gateway.select("tasks")


def test_protocol_error_is_translated(
    monkeypatch: pytest.MonkeyPatch, rest_gateway: RestGateway
) -> None:
    def fake_urlopen(req: request.Request, timeout: float):
        raise http.client.RemoteDisconnected("Remote end closed connection")

    monkeypatch.setattr(request, "urlopen", fake_urlopen)

    with pytest.raises(GatewayError, match="Remote end closed connection"):
        rest_gateway.rpc("recalculate_all_pendencies")
