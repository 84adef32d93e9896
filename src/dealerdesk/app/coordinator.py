"""Optimistic cache coordinator for item-scoped workflow actions.

Protocol for one action on one item:
1. Claim (resource, id) in the shared in-flight registry.
2. Remove the item from its cached pending list before the remote call.
3. Run the executor.
4. On failure put the item back, invalidate affected views, notify an error.
5. On success invalidate affected views so aggregates refetch, notify success.
6. Release the claim on every exit path.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .cache import QueryCache, QueryKey
from .executor import NOT_AUTHENTICATED, WorkflowExecutor
from .inflight import InFlightRegistry
from .models import (
    CompleteTaskAction,
    PublishAdvertisementAction,
    ResolveInsightAction,
    WorkflowAction,
    WorkflowResult,
)
from .notifier import Notifier
from .queries import INSIGHTS, PENDING_TASKS, UNPUBLISHED_ADS, WORKFLOW_AFFECTED_KEYS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ItemTarget:
    resource: str
    item_id: str
    list_key: QueryKey


class OptimisticCoordinator:
    def __init__(
        self,
        *,
        executor: WorkflowExecutor,
        cache: QueryCache,
        inflight: InFlightRegistry,
        notifier: Notifier,
        affected_keys: list[QueryKey] | None = None,
    ) -> None:
        self.executor = executor
        self.cache = cache
        self.inflight = inflight
        self.notifier = notifier
        self.affected_keys = affected_keys or list(WORKFLOW_AFFECTED_KEYS)

    def publish_advertisement(self, advertisement_id: str, *, user_id: str | None, store: str) -> WorkflowResult:
        return self.execute(
            PublishAdvertisementAction(advertisement_id=advertisement_id),
            user_id=user_id,
            store=store,
        )

    def resolve_insight(self, insight_id: str, *, user_id: str | None, store: str) -> WorkflowResult:
        return self.execute(ResolveInsightAction(insight_id=insight_id), user_id=user_id, store=store)

    def complete_task(self, task_id: str, *, user_id: str | None, store: str) -> WorkflowResult:
        return self.execute(CompleteTaskAction(task_id=task_id), user_id=user_id, store=store)

    def execute(self, action: WorkflowAction, *, user_id: str | None, store: str) -> WorkflowResult:
        if not user_id:
            logger.warning("optimistic_action event=rejected type=%s reason=not_authenticated", action.type)
            self.notifier.notify("error", NOT_AUTHENTICATED)
            return WorkflowResult(success=False, message=NOT_AUTHENTICATED)

        target = _target_for(action, store)
        if target is None:
            result = self.executor.execute_action(action, user_id)
            self._finish(result, reverted=False)
            return result
        return self._execute_item(action, target, user_id)

    def is_executing(self, resource: str, item_id: str) -> bool:
        return self.inflight.is_in_flight(resource, item_id)

    def _execute_item(self, action: WorkflowAction, target: ItemTarget, user_id: str) -> WorkflowResult:
        if not self.inflight.acquire(target.resource, target.item_id):
            message = f"An action for {target.resource} {target.item_id} is already in progress"
            self.notifier.notify("warning", message)
            return WorkflowResult(success=False, message=message)

        try:
            removed = self._remove_optimistically(target)
            result = self.executor.execute_action(action, user_id)
            if not result.success and removed is not None:
                self._restore(target, removed)
            self.cache.invalidate([target.list_key, *self.affected_keys])
            self._finish(result, reverted=not result.success)
            logger.info(
                "optimistic_action event=settled resource=%s item_id=%s success=%s",
                target.resource,
                target.item_id,
                result.success,
            )
            return result
        finally:
            self.inflight.release(target.resource, target.item_id)

    def _remove_optimistically(self, target: ItemTarget) -> tuple[int, Any] | None:
        """Drop the item from its cached list; return (index, item) when it was present."""
        snapshot = self.cache.snapshot(target.list_key)
        if not snapshot:
            return None
        removed = next(
            (
                (index, item)
                for index, item in enumerate(snapshot)
                if _item_id(item) == target.item_id
            ),
            None,
        )
        if removed is None:
            return None
        self.cache.set(
            target.list_key,
            lambda items: [item for item in items or [] if _item_id(item) != target.item_id],
        )
        return removed

    def _restore(self, target: ItemTarget, removed: tuple[int, Any]) -> None:
        index, item = removed

        def put_back(items: list[Any] | None) -> list[Any]:
            current = list(items or [])
            if any(_item_id(existing) == target.item_id for existing in current):
                return current
            current.insert(min(index, len(current)), item)
            return current

        self.cache.set(target.list_key, put_back)

    def _finish(self, result: WorkflowResult, *, reverted: bool) -> None:
        if result.success:
            self.notifier.notify("success", result.message)
        elif reverted:
            self.notifier.notify("error", f"{result.message}. The change was reverted.")
        else:
            self.notifier.notify("error", result.message)


def _target_for(action: WorkflowAction, store: str) -> ItemTarget | None:
    if isinstance(action, PublishAdvertisementAction):
        return ItemTarget("advertisement", action.advertisement_id, (UNPUBLISHED_ADS, store))
    if isinstance(action, ResolveInsightAction):
        return ItemTarget("insight", action.insight_id, (INSIGHTS, store))
    if isinstance(action, CompleteTaskAction):
        return ItemTarget("task", action.task_id, (PENDING_TASKS, store))
    return None


def _item_id(item: Any) -> str | None:
    if isinstance(item, dict):
        value = item.get("id")
    else:
        value = getattr(item, "id", None)
    return str(value) if value is not None else None
