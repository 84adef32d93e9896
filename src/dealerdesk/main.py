"""FastAPI app entrypoint for dealerdesk.

Beginner terms used in this file:
- app.state: shared runtime objects (gateway, cache, services) built once.
- Dependency: a function FastAPI calls before a route, here used to read the
  caller identity headers and to gate routes by permission area.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from dealerdesk.app.analytics import PendingAggregator
from dealerdesk.app.cache import QueryCache
from dealerdesk.app.coordinator import OptimisticCoordinator
from dealerdesk.app.executor import NOT_AUTHENTICATED, WorkflowExecutor
from dealerdesk.app.health import SystemHealthService
from dealerdesk.app.inflight import InFlightRegistry
from dealerdesk.app.maintenance import (
    TRIGGERS,
    MaintenanceBusyError,
    MaintenanceTriggers,
)
from dealerdesk.app.models import (
    HealthMetrics,
    MaintenanceResult,
    MaintenanceStatus,
    Notification,
    PendingAnalytics,
    PermissionCheck,
    TaskSystemStats,
    WorkflowAction,
    WorkflowResult,
)
from dealerdesk.app.notifier import LoggingNotifier
from dealerdesk.app.pendencies import (
    PendencyStats,
    VehiclePendency,
    detect_vehicle_pendencies,
    pendency_stats,
)
from dealerdesk.app.pending_queue import (
    DEFAULT_PAGE_SIZE,
    PendingFilters,
    PendingPage,
    TypeFilter,
    merge_pending_items,
    paginate,
)
from dealerdesk.app.permissions import allowed_areas, check_permission
from dealerdesk.app.polling import DashboardPoller
from dealerdesk.app.queries import PendingQueries
from dealerdesk.config.settings import Settings, get_settings
from dealerdesk.gateway import DataGateway, GatewayError, PostgresGateway, RestGateway

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Caller:
    user_id: str | None
    role: str | None
    level: int | None


class WorkflowActionRequest(BaseModel):
    store: str
    action: WorkflowAction


class MaintenanceOverview(BaseModel):
    pending: bool
    triggers: list[MaintenanceStatus]


class VehiclePendencyReport(BaseModel):
    pendencies: list[VehiclePendency]
    stats: PendencyStats


def build_gateway(settings: Settings) -> DataGateway:
    settings.require_backend_config()
    if settings.gateway_backend == "postgres":
        return PostgresGateway(settings.database_url)
    return RestGateway(
        base_url=settings.supabase_url,
        api_key=settings.supabase_api_key,
        timeout_s=settings.request_timeout_s,
    )


def _ensure_runtime_state(
    app: FastAPI,
    *,
    settings: Settings,
    gateway_override: DataGateway | None,
) -> None:
    if hasattr(app.state, "gateway"):
        return

    gateway = gateway_override or build_gateway(settings)
    cache = QueryCache()
    notifier = LoggingNotifier(history=settings.notification_history)
    queries = PendingQueries(gateway=gateway, cache=cache, settings=settings)
    aggregator = PendingAggregator(gateway=gateway, cache=cache, settings=settings)
    health = SystemHealthService(gateway=gateway, cache=cache, settings=settings, queries=queries)

    app.state.settings = settings
    app.state.gateway = gateway
    app.state.cache = cache
    app.state.notifier = notifier
    app.state.queries = queries
    app.state.aggregator = aggregator
    app.state.health = health
    app.state.coordinator = OptimisticCoordinator(
        executor=WorkflowExecutor(gateway=gateway),
        cache=cache,
        inflight=InFlightRegistry(),
        notifier=notifier,
    )
    app.state.maintenance = MaintenanceTriggers(gateway=gateway, cache=cache, notifier=notifier)
    app.state.poller = DashboardPoller(
        aggregator=aggregator,
        health=health,
        stores=settings.stores,
        interval_s=min(settings.analytics_poll_s, settings.health_poll_s),
    )


def create_app(
    *,
    gateway: DataGateway | None = None,
    settings_override: Settings | None = None,
) -> FastAPI:
    settings = settings_override or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _ensure_runtime_state(app, settings=settings, gateway_override=gateway)
        if settings.polling_enabled:
            app.state.poller.start()
        try:
            yield
        finally:
            app.state.poller.stop()

    app_lifespan = lifespan if gateway is None else None
    app = FastAPI(title=settings.app_name, lifespan=app_lifespan)

    # Keep test paths reliable when lifespan is not executed by the client.
    if gateway is not None:
        _ensure_runtime_state(app, settings=settings, gateway_override=gateway)

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        logger.warning("api event=gateway_error path=%s error=%s", request.url.path, exc.message)
        return JSONResponse(status_code=502, content={"detail": exc.message})

    def _state(request: Request) -> Any:
        if not hasattr(request.app.state, "gateway"):
            _ensure_runtime_state(request.app, settings=settings, gateway_override=gateway)
        return request.app.state

    def _caller(
        x_user_id: str | None = Header(default=None),
        x_user_role: str | None = Header(default=None),
        x_user_level: int | None = Header(default=None),
    ) -> Caller:
        return Caller(user_id=x_user_id or None, role=x_user_role or None, level=x_user_level)

    def require_area(area: str):
        def dependency(caller: Caller = Depends(_caller)) -> Caller:
            check = check_permission(area, caller.role, caller.level)
            if not check.has_access:
                raise HTTPException(status_code=403, detail=check.reason)
            return caller

        return dependency

    def _require_store(store: str) -> str:
        if store not in settings.stores:
            raise HTTPException(status_code=404, detail=f"Store not found: {store}")
        return store

    def _settle(result: WorkflowResult) -> WorkflowResult:
        if not result.success and result.message == NOT_AUTHENTICATED:
            raise HTTPException(status_code=401, detail=NOT_AUTHENTICATED)
        return result

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.app_name}

    @app.get("/permissions/check", response_model=PermissionCheck)
    def permissions_check(area: str, caller: Caller = Depends(_caller)) -> PermissionCheck:
        return check_permission(area, caller.role, caller.level)

    @app.get("/permissions/areas")
    def permissions_areas(caller: Caller = Depends(_caller)) -> dict[str, list[str]]:
        return {"areas": allowed_areas(caller.role, caller.level)}

    @app.get("/stores/{store}/pendings", response_model=PendingPage)
    def store_pendings(
        store: str,
        request: Request,
        type: TypeFilter = "all",
        priority: str = "all",
        search: str = "",
        page: int = Query(default=1, ge=1),
        page_size: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=200),
        _: Caller = Depends(require_area("pendings")),
    ) -> PendingPage:
        state = _state(request)
        _require_store(store)
        filters = PendingFilters(store=store, type=type, priority=priority, search=search)
        plates = {vehicle.id: vehicle.plate for vehicle in state.queries.vehicles(store)}
        items = merge_pending_items(
            state.queries.pending_tasks(store),
            state.queries.pending_insights(store),
            filters,
            plates_by_vehicle=plates,
        )
        # The store comes from the path, so it does not count as a user filter.
        user_filters = filters.model_copy(update={"store": "all"})
        return paginate(items, page=page, page_size=page_size, filter_applied=user_filters.applied)

    @app.get("/stores/{store}/analytics", response_model=PendingAnalytics)
    def store_analytics(
        store: str,
        request: Request,
        _: Caller = Depends(require_area("pendings")),
    ) -> PendingAnalytics:
        state = _state(request)
        return state.aggregator.get_pending_analytics(_require_store(store))

    @app.get("/stores/{store}/system-health", response_model=HealthMetrics)
    def store_system_health(
        store: str,
        request: Request,
        _: Caller = Depends(require_area("pendings")),
    ) -> HealthMetrics:
        state = _state(request)
        return state.health.get_health_metrics(_require_store(store))

    @app.get("/stores/{store}/task-stats", response_model=TaskSystemStats)
    def store_task_stats(
        store: str,
        request: Request,
        _: Caller = Depends(require_area("pendings")),
    ) -> TaskSystemStats:
        state = _state(request)
        return state.health.get_task_stats(_require_store(store))

    @app.get("/stores/{store}/vehicle-pendencies", response_model=VehiclePendencyReport)
    def store_vehicle_pendencies(
        store: str,
        request: Request,
        _: Caller = Depends(require_area("inventory")),
    ) -> VehiclePendencyReport:
        state = _state(request)
        _require_store(store)
        pendencies = detect_vehicle_pendencies(
            state.queries.vehicles(store), state.queries.advertisements(store)
        )
        return VehiclePendencyReport(pendencies=pendencies, stats=pendency_stats(pendencies))

    @app.post("/workflow/actions", response_model=WorkflowResult)
    def workflow_action(
        payload: WorkflowActionRequest,
        request: Request,
        caller: Caller = Depends(require_area("pendings")),
    ) -> WorkflowResult:
        state = _state(request)
        _require_store(payload.store)
        result = state.coordinator.execute(
            payload.action, user_id=caller.user_id, store=payload.store
        )
        return _settle(result)

    @app.post("/advertisements/{advertisement_id}/publish", response_model=WorkflowResult)
    def publish_advertisement(
        advertisement_id: str,
        request: Request,
        store: str = Query(),
        caller: Caller = Depends(require_area("advertisements")),
    ) -> WorkflowResult:
        state = _state(request)
        result = state.coordinator.publish_advertisement(
            advertisement_id, user_id=caller.user_id, store=_require_store(store)
        )
        return _settle(result)

    @app.post("/insights/{insight_id}/resolve", response_model=WorkflowResult)
    def resolve_insight(
        insight_id: str,
        request: Request,
        store: str = Query(),
        caller: Caller = Depends(require_area("pendings")),
    ) -> WorkflowResult:
        state = _state(request)
        result = state.coordinator.resolve_insight(
            insight_id, user_id=caller.user_id, store=_require_store(store)
        )
        return _settle(result)

    @app.post("/tasks/{task_id}/complete", response_model=WorkflowResult)
    def complete_task(
        task_id: str,
        request: Request,
        store: str = Query(),
        caller: Caller = Depends(require_area("pendings")),
    ) -> WorkflowResult:
        state = _state(request)
        result = state.coordinator.complete_task(
            task_id, user_id=caller.user_id, store=_require_store(store)
        )
        return _settle(result)

    @app.get("/maintenance", response_model=MaintenanceOverview)
    def maintenance_overview(
        request: Request,
        _: Caller = Depends(require_area("pendings")),
    ) -> MaintenanceOverview:
        state = _state(request)
        return MaintenanceOverview(
            pending=state.maintenance.is_pending,
            triggers=state.maintenance.status(),
        )

    @app.post("/maintenance/{name}", response_model=MaintenanceResult)
    def run_maintenance(
        name: str,
        request: Request,
        caller: Caller = Depends(require_area("pendings")),
    ) -> MaintenanceResult:
        state = _state(request)
        if not caller.user_id:
            raise HTTPException(status_code=401, detail=NOT_AUTHENTICATED)
        if name not in TRIGGERS:
            raise HTTPException(status_code=404, detail=f"Maintenance not found: {name}")
        if state.maintenance.is_pending:
            raise HTTPException(status_code=409, detail="A maintenance run is already in progress")
        try:
            return state.maintenance.run(name)
        except MaintenanceBusyError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc

    @app.get("/notifications", response_model=list[Notification])
    def notifications(
        request: Request,
        limit: int | None = Query(default=None, ge=1),
    ) -> list[Notification]:
        state = _state(request)
        return state.notifier.recent(limit)

    return app


app = create_app()
