from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from dealerdesk.gateway.base import DataGateway, GatewayError

from .models import (
    CompleteTaskAction,
    CreateTaskAction,
    PublishAdvertisementAction,
    ResolveInsightAction,
    WorkflowAction,
    WorkflowResult,
)

logger = logging.getLogger(__name__)

NOT_AUTHENTICATED = "User not authenticated"


@dataclass(frozen=True)
class ActionContext:
    gateway: DataGateway
    user_id: str
    now: datetime


@dataclass(frozen=True)
class ActionSpec:
    action_model: type[Any]
    fn: Callable[[Any, ActionContext], WorkflowResult]


def publish_advertisement(
    action: PublishAdvertisementAction, ctx: ActionContext
) -> WorkflowResult:
    existing = ctx.gateway.get("advertisements", action.advertisement_id)
    if existing is None:
        return WorkflowResult(success=False, message="Advertisement not found")
    if existing.get("publicado"):
        return WorkflowResult(success=False, message="Advertisement is already published")

    try:
        updated = ctx.gateway.update(
            "advertisements",
            action.advertisement_id,
            {
                "publicado": True,
                "data_publicacao": ctx.now,
                "publicado_por": ctx.user_id,
            },
        )
    except GatewayError as exc:
        return WorkflowResult(
            success=False, message=f"Failed to publish advertisement: {exc.message}"
        )
    return WorkflowResult(
        success=True, message="Advertisement published successfully", data=updated
    )


def resolve_insight(action: ResolveInsightAction, ctx: ActionContext) -> WorkflowResult:
    existing = ctx.gateway.get("advertisement_insights", action.insight_id)
    if existing is None:
        return WorkflowResult(success=False, message="Insight not found")
    # Leaves resolved_at untouched so repeated resolves are idempotent.
    if existing.get("resolved"):
        return WorkflowResult(success=False, message="Insight is already resolved")

    try:
        updated = ctx.gateway.update(
            "advertisement_insights",
            action.insight_id,
            {"resolved": True, "resolved_at": ctx.now},
        )
    except GatewayError as exc:
        return WorkflowResult(success=False, message=f"Failed to resolve insight: {exc.message}")
    return WorkflowResult(success=True, message="Insight resolved successfully", data=updated)


def create_task(action: CreateTaskAction, ctx: ActionContext) -> WorkflowResult:
    _ = (action, ctx)
    return WorkflowResult(success=False, message="Task creation is not implemented")


def complete_task(action: CompleteTaskAction, ctx: ActionContext) -> WorkflowResult:
    try:
        updated = ctx.gateway.update(
            "tasks",
            action.task_id,
            {"status": "completed", "completed_at": ctx.now},
        )
    except GatewayError as exc:
        return WorkflowResult(success=False, message=f"Failed to complete task: {exc.message}")
    return WorkflowResult(success=True, message="Task completed successfully", data=updated)


ACTION_REGISTRY: dict[str, ActionSpec] = {
    "publish_advertisement": ActionSpec(
        action_model=PublishAdvertisementAction,
        fn=publish_advertisement,
    ),
    "resolve_insight": ActionSpec(
        action_model=ResolveInsightAction,
        fn=resolve_insight,
    ),
    "create_task": ActionSpec(
        action_model=CreateTaskAction,
        fn=create_task,
    ),
    "complete_task": ActionSpec(
        action_model=CompleteTaskAction,
        fn=complete_task,
    ),
}


class WorkflowExecutor:
    """Dispatch one workflow action to its remote mutation.

    UI agnostic: returns a WorkflowResult and never emits notifications.
    """

    def __init__(
        self,
        *,
        gateway: DataGateway,
        registry: dict[str, ActionSpec] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.gateway = gateway
        self.registry = registry or dict(ACTION_REGISTRY)
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    def execute_action(self, action: WorkflowAction, user_id: str | None) -> WorkflowResult:
        action_type = getattr(action, "type", None)
        if not user_id:
            logger.warning("workflow_action event=rejected type=%s reason=not_authenticated", action_type)
            return WorkflowResult(success=False, message=NOT_AUTHENTICATED)

        spec = self.registry.get(action_type) if isinstance(action_type, str) else None
        if spec is None or not isinstance(action, spec.action_model):
            logger.error("workflow_action event=rejected type=%s reason=unknown_type", action_type)
            return WorkflowResult(success=False, message="Unrecognized action type")

        started_at = time.perf_counter()
        logger.info("workflow_action event=start type=%s user_id=%s", action_type, user_id)
        ctx = ActionContext(gateway=self.gateway, user_id=user_id, now=self._clock())
        try:
            result = spec.fn(action, ctx)
        except Exception as exc:  # noqa: BLE001
            logger.exception("workflow_action event=error type=%s", action_type)
            result = WorkflowResult(success=False, message=f"Action failed: {exc}")

        logger.info(
            "workflow_action event=completed type=%s success=%s duration_ms=%s message=%s",
            action_type,
            result.success,
            _duration_ms(started_at),
            result.message,
        )
        return result


def _duration_ms(started_at: float) -> float:
    return round((time.perf_counter() - started_at) * 1000.0, 2)
