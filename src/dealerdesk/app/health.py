from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

from dealerdesk.config.settings import Settings
from dealerdesk.gateway.base import DataGateway

from .cache import QueryCache
from .models import HealthMetrics, PendingTask, TaskSystemStats
from .queries import SYSTEM_HEALTH, TASK_SYSTEM_STATS, PendingQueries

logger = logging.getLogger(__name__)

# Keywords written by the server-side detection procedures into task text.
INCONSISTENCY_KEYWORDS = ("inconsistência", "inconsistencia")
ORPHANED_AD_KEYWORDS = ("órfão", "orfão", "orfao")
MISSING_ADS_KEYWORDS = ("criar anúncios", "criar anuncios")
PRICE_KEYWORDS = ("preço", "preco")

HEALTH_PENALTY_PER_ISSUE = 5
TASK_PENALTY_PER_PENDING = 10


def compute_health_metrics(tasks: Iterable[PendingTask], *, now: datetime) -> HealthMetrics:
    """Classify pending vehicle tasks into health issue buckets.

    Inconsistencies match on the description only; the other buckets match
    title or description. A task can land in more than one bucket and then
    counts once per bucket.
    """
    vehicle_tasks = [
        task for task in tasks if task.ref_table == "vehicles" and task.status == "pending"
    ]
    inconsistencies = sum(
        1 for task in vehicle_tasks if _mentions(task.description, INCONSISTENCY_KEYWORDS)
    )
    orphaned = sum(1 for task in vehicle_tasks if _task_mentions(task, ORPHANED_AD_KEYWORDS))
    missing_ads = sum(1 for task in vehicle_tasks if _task_mentions(task, MISSING_ADS_KEYWORDS))
    price = sum(1 for task in vehicle_tasks if _task_mentions(task, PRICE_KEYWORDS))

    total = inconsistencies + orphaned + missing_ads + price
    return HealthMetrics(
        total_inconsistencies=total,
        orphaned_ads=orphaned,
        vehicles_without_ads=missing_ads,
        price_inconsistencies=price,
        last_health_check=now,
        health_score=max(0, 100 - HEALTH_PENALTY_PER_ISSUE * total),
    )


def compute_task_stats(rows: Iterable[dict[str, Any]], *, store: str) -> TaskSystemStats:
    store_rows = [row for row in rows if row.get("store") == store]
    pending = sum(1 for row in store_rows if row.get("status") == "pending")
    completed = sum(1 for row in store_rows if row.get("status") == "completed")
    total = len(store_rows)
    system_health = max(0, 100 - TASK_PENALTY_PER_PENDING * pending) if total > 0 else 100
    return TaskSystemStats(
        total_tasks=total,
        pending_tasks=pending,
        completed_tasks=completed,
        system_health=system_health,
    )


class SystemHealthService:
    def __init__(
        self,
        *,
        gateway: DataGateway,
        cache: QueryCache,
        settings: Settings,
        queries: PendingQueries | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.gateway = gateway
        self.cache = cache
        self.settings = settings
        self.queries = queries or PendingQueries(gateway=gateway, cache=cache, settings=settings)
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    def get_health_metrics(self, store: str) -> HealthMetrics:
        return self.cache.fetch(
            (SYSTEM_HEALTH, store),
            lambda: self._load_health(store),
            stale_time_s=self.settings.health_stale_s,
        )

    def get_task_stats(self, store: str) -> TaskSystemStats:
        return self.cache.fetch(
            (TASK_SYSTEM_STATS, store),
            lambda: compute_task_stats(self.queries.consolidated_tasks(), store=store),
            stale_time_s=self.settings.task_stats_stale_s,
        )

    def refresh(self, store: str) -> HealthMetrics:
        self.cache.invalidate([(SYSTEM_HEALTH, store)])
        return self.get_health_metrics(store)

    def _load_health(self, store: str) -> HealthMetrics:
        rows = self.gateway.select(
            "tasks",
            filters={"store": store, "ref_table": "vehicles", "status": "pending"},
        )
        metrics = compute_health_metrics(
            (PendingTask.model_validate(row) for row in rows), now=self._clock()
        )
        logger.info(
            "system_health event=checked store=%s issues=%d score=%d",
            store,
            metrics.total_inconsistencies,
            metrics.health_score,
        )
        return metrics


def _task_mentions(task: PendingTask, keywords: tuple[str, ...]) -> bool:
    return _mentions(task.title, keywords) or _mentions(task.description, keywords)


def _mentions(text: str | None, keywords: tuple[str, ...]) -> bool:
    if not text:
        return False
    lowered = text.casefold()
    return any(keyword in lowered for keyword in keywords)
