from __future__ import annotations

import pytest
from conftest import STORE

from dealerdesk.app.cache import QueryCache
from dealerdesk.app.maintenance import (
    MaintenanceBusyError,
    MaintenanceTriggers,
    UnknownMaintenanceError,
)
from dealerdesk.app.notifier import LoggingNotifier
from dealerdesk.gateway.memory import InMemoryGateway


@pytest.fixture
def frozen_cache() -> QueryCache:
    cache = QueryCache(clock=lambda: 0.0)
    cache.put(("system-health", STORE), {"score": 90}, stale_time_s=600)
    cache.put(("task-system-stats", STORE), {"pending": 1}, stale_time_s=600)
    return cache


def test_successful_run_invalidates_and_notifies(
    gateway: InMemoryGateway, frozen_cache: QueryCache, notifier: LoggingNotifier
) -> None:
    triggers = MaintenanceTriggers(gateway=gateway, cache=frozen_cache, notifier=notifier)

    result = triggers.recalculate()

    assert result.success is True
    assert result.procedure == "recalculate_all_pendencies"
    assert result.message == "System recalculated successfully"
    assert gateway.calls == [("rpc", "recalculate_all_pendencies")]
    assert frozen_cache.is_stale(("system-health", STORE))
    assert frozen_cache.is_stale(("task-system-stats", STORE))
    assert notifier.recent()[0].severity == "success"
    assert triggers.is_pending is False


@pytest.mark.parametrize(
    ("trigger", "procedure"),
    [
        ("detect_inconsistencies", "detect_advertisement_inconsistencies"),
        ("cleanup_obsolete", "cleanup_obsolete_tasks"),
        ("sync_current_state", "sync_tasks_with_current_state"),
    ],
)
def test_each_trigger_calls_its_procedure_once(
    gateway: InMemoryGateway,
    frozen_cache: QueryCache,
    notifier: LoggingNotifier,
    trigger: str,
    procedure: str,
) -> None:
    triggers = MaintenanceTriggers(gateway=gateway, cache=frozen_cache, notifier=notifier)

    result = getattr(triggers, trigger)()

    assert result.success is True
    assert gateway.calls == [("rpc", procedure)]


def test_failed_run_leaves_caches_and_does_not_retry(
    gateway: InMemoryGateway, frozen_cache: QueryCache, notifier: LoggingNotifier
) -> None:
    gateway.fail_on("rpc", "cleanup_obsolete_tasks", "function does not exist")
    triggers = MaintenanceTriggers(gateway=gateway, cache=frozen_cache, notifier=notifier)

    result = triggers.cleanup_obsolete()

    assert result.success is False
    assert result.message == "Failed to clean up obsolete tasks: function does not exist"
    assert gateway.calls == [("rpc", "cleanup_obsolete_tasks")]
    assert frozen_cache.is_stale(("system-health", STORE)) is False
    assert notifier.recent()[0].severity == "error"


def test_unexpected_rpc_error_becomes_failed_result(
    gateway: InMemoryGateway, frozen_cache: QueryCache, notifier: LoggingNotifier
) -> None:
    def timed_out(params: dict) -> None:
        raise TimeoutError("timed out")

    gateway.register_rpc("recalculate_all_pendencies", timed_out)
    triggers = MaintenanceTriggers(gateway=gateway, cache=frozen_cache, notifier=notifier)

    result = triggers.recalculate()

    assert result.success is False
    assert result.message == "Failed to recalculate system: timed out"
    assert notifier.recent()[0].message == result.message
    assert frozen_cache.is_stale(("system-health", STORE)) is False
    statuses = {status.name: status for status in triggers.status()}
    assert statuses["recalculate"].state == "idle"
    assert statuses["recalculate"].last_result == result


def test_running_trigger_reports_pending_and_refuses_reentry(
    gateway: InMemoryGateway, frozen_cache: QueryCache, notifier: LoggingNotifier
) -> None:
    triggers = MaintenanceTriggers(gateway=gateway, cache=frozen_cache, notifier=notifier)
    observed: dict[str, object] = {}

    def handler(params: dict) -> None:
        observed["pending"] = triggers.is_pending
        observed["states"] = {status.name: status.state for status in triggers.status()}
        with pytest.raises(MaintenanceBusyError):
            triggers.run("sync_current_state")

    gateway.register_rpc("sync_tasks_with_current_state", handler)

    result = triggers.sync_current_state()

    assert result.success is True
    assert observed["pending"] is True
    assert observed["states"]["sync_current_state"] == "running"
    assert observed["states"]["recalculate"] == "idle"
    statuses = {status.name: status for status in triggers.status()}
    assert statuses["sync_current_state"].state == "idle"
    assert statuses["sync_current_state"].last_result == result


def test_unknown_trigger(gateway: InMemoryGateway, cache: QueryCache, notifier: LoggingNotifier) -> None:
    triggers = MaintenanceTriggers(gateway=gateway, cache=cache, notifier=notifier)

    with pytest.raises(UnknownMaintenanceError):
        triggers.run("vacuum")
    assert gateway.calls == []
