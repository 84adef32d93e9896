from __future__ import annotations

import json

import pytest

import run_maintenance
from dealerdesk.config.settings import Settings
from dealerdesk.gateway.memory import InMemoryGateway


@pytest.fixture
def script_gateway(monkeypatch: pytest.MonkeyPatch) -> dict[str, object]:
    captured: dict[str, object] = {"gateway": InMemoryGateway()}

    def fake_build_gateway(settings: Settings) -> InMemoryGateway:
        captured["settings"] = settings
        return captured["gateway"]

    monkeypatch.setattr(run_maintenance, "build_gateway", fake_build_gateway)
    return captured


def test_action_prints_result_and_exits_zero(script_gateway, capsys) -> None:
    with pytest.raises(SystemExit) as exc_info:
        run_maintenance.main(["--action", "sync_current_state"])

    assert exc_info.value.code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["name"] == "sync_current_state"
    assert payload["procedure"] == "sync_tasks_with_current_state"
    assert payload["success"] is True
    assert script_gateway["gateway"].calls == [("rpc", "sync_tasks_with_current_state")]


def test_failed_action_exits_one(script_gateway, capsys) -> None:
    script_gateway["gateway"].fail_on("rpc", "recalculate_all_pendencies", "permission denied")

    with pytest.raises(SystemExit) as exc_info:
        run_maintenance.main(["--action", "recalculate"])

    assert exc_info.value.code == 1
    payload = json.loads(capsys.readouterr().out)
    assert payload["success"] is False
    assert payload["message"] == "Failed to recalculate system: permission denied"


def test_database_url_selects_postgres_backend(script_gateway, capsys) -> None:
    with pytest.raises(SystemExit):
        run_maintenance.main(
            ["--action", "cleanup_obsolete", "--database-url", "postgresql://u:p@localhost/db"]
        )

    settings = script_gateway["settings"]
    assert settings.gateway_backend == "postgres"
    assert settings.database_url == "postgresql://u:p@localhost/db"


def test_unknown_action_is_rejected(script_gateway, capsys) -> None:
    with pytest.raises(SystemExit) as exc_info:
        run_maintenance.main(["--action", "vacuum"])

    assert exc_info.value.code == 2
    assert "invalid choice" in capsys.readouterr().err
