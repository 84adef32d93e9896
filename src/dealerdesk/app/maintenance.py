"""Maintenance triggers for the server-side reconciliation procedures.

Each trigger fires exactly one stored procedure and never retries. While a
trigger is running it reports `running`; a second request for the same trigger
is refused with MaintenanceBusyError.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from dealerdesk.gateway.base import DataGateway, GatewayError

from .cache import QueryCache, QueryKey
from .models import MaintenanceResult, MaintenanceStatus
from .notifier import Notifier
from .queries import (
    CONSOLIDATED_TASKS,
    INSIGHTS,
    PENDING_ANALYTICS,
    PENDING_TASKS,
    SYSTEM_HEALTH,
    TASK_SYSTEM_STATS,
)

logger = logging.getLogger(__name__)

MAINTENANCE_AFFECTED_KEYS: list[QueryKey] = [
    (SYSTEM_HEALTH,),
    (TASK_SYSTEM_STATS,),
    (CONSOLIDATED_TASKS,),
    (PENDING_TASKS,),
    (INSIGHTS,),
    (PENDING_ANALYTICS,),
]


class MaintenanceBusyError(RuntimeError):
    """The requested trigger is already running."""


class UnknownMaintenanceError(KeyError):
    """No trigger with that name."""


@dataclass(frozen=True)
class TriggerSpec:
    name: str
    procedure: str
    success_message: str
    failure_message: str


TRIGGERS: dict[str, TriggerSpec] = {
    "recalculate": TriggerSpec(
        name="recalculate",
        procedure="recalculate_all_pendencies",
        success_message="System recalculated successfully",
        failure_message="Failed to recalculate system",
    ),
    "detect_inconsistencies": TriggerSpec(
        name="detect_inconsistencies",
        procedure="detect_advertisement_inconsistencies",
        success_message="Inconsistencies detected and tasks created",
        failure_message="Failed to detect inconsistencies",
    ),
    "cleanup_obsolete": TriggerSpec(
        name="cleanup_obsolete",
        procedure="cleanup_obsolete_tasks",
        success_message="Obsolete tasks removed",
        failure_message="Failed to clean up obsolete tasks",
    ),
    "sync_current_state": TriggerSpec(
        name="sync_current_state",
        procedure="sync_tasks_with_current_state",
        success_message="State synchronized",
        failure_message="Failed to synchronize state",
    ),
}


class MaintenanceTriggers:
    def __init__(
        self,
        *,
        gateway: DataGateway,
        cache: QueryCache,
        notifier: Notifier,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.gateway = gateway
        self.cache = cache
        self.notifier = notifier
        self._clock = clock or (lambda: datetime.now(tz=UTC))
        self._lock = threading.Lock()
        self._running: set[str] = set()
        self._last: dict[str, MaintenanceResult] = {}

    def recalculate(self) -> MaintenanceResult:
        return self.run("recalculate")

    def detect_inconsistencies(self) -> MaintenanceResult:
        return self.run("detect_inconsistencies")

    def cleanup_obsolete(self) -> MaintenanceResult:
        return self.run("cleanup_obsolete")

    def sync_current_state(self) -> MaintenanceResult:
        return self.run("sync_current_state")

    @property
    def is_pending(self) -> bool:
        with self._lock:
            return bool(self._running)

    def status(self) -> list[MaintenanceStatus]:
        with self._lock:
            return [
                MaintenanceStatus(
                    name=spec.name,
                    procedure=spec.procedure,
                    state="running" if spec.name in self._running else "idle",
                    last_result=self._last.get(spec.name),
                )
                for spec in TRIGGERS.values()
            ]

    def run(self, name: str) -> MaintenanceResult:
        spec = TRIGGERS.get(name)
        if spec is None:
            raise UnknownMaintenanceError(name)

        with self._lock:
            if name in self._running:
                raise MaintenanceBusyError(f"Maintenance {name} is already running")
            self._running.add(name)

        started_at = self._clock()
        logger.info("maintenance event=start name=%s procedure=%s", name, spec.procedure)
        try:
            self.gateway.rpc(spec.procedure)
        except GatewayError as exc:
            logger.warning(
                "maintenance event=failed name=%s procedure=%s error=%s",
                name,
                spec.procedure,
                exc.message,
            )
            result = self._failure(spec, started_at, exc.message)
        except Exception as exc:  # noqa: BLE001
            logger.exception(
                "maintenance event=failed name=%s procedure=%s", name, spec.procedure
            )
            result = self._failure(spec, started_at, str(exc) or type(exc).__name__)
        else:
            invalidated = self.cache.invalidate(MAINTENANCE_AFFECTED_KEYS)
            logger.info(
                "maintenance event=completed name=%s procedure=%s invalidated=%d",
                name,
                spec.procedure,
                invalidated,
            )
            result = MaintenanceResult(
                name=name,
                procedure=spec.procedure,
                success=True,
                message=spec.success_message,
                started_at=started_at,
                finished_at=self._clock(),
            )
            self.notifier.notify("success", result.message)
        finally:
            with self._lock:
                self._running.discard(name)

        with self._lock:
            self._last[name] = result
        return result

    def _failure(self, spec: TriggerSpec, started_at: datetime, reason: str) -> MaintenanceResult:
        result = MaintenanceResult(
            name=spec.name,
            procedure=spec.procedure,
            success=False,
            message=f"{spec.failure_message}: {reason}",
            started_at=started_at,
            finished_at=self._clock(),
        )
        self.notifier.notify("error", result.message)
        return result
