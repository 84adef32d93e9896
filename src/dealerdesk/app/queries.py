"""Cached read-side list queries, scoped per store."""

from __future__ import annotations

import logging
from typing import Any

from dealerdesk.config.settings import Settings
from dealerdesk.gateway.base import DataGateway

from .cache import QueryCache, QueryKey
from .models import Advertisement, AdvertisementInsight, PendingTask, Vehicle

logger = logging.getLogger(__name__)

ADVERTISEMENTS = "advertisements"
UNPUBLISHED_ADS = "unpublished-ads"
PENDING_TASKS = "pending-tasks"
INSIGHTS = "advertisement-insights"
VEHICLES = "vehicles"
CONSOLIDATED_TASKS = "consolidated-tasks"
PENDING_ANALYTICS = "pending-analytics"
SYSTEM_HEALTH = "system-health"
TASK_SYSTEM_STATS = "task-system-stats"

# Every view a workflow action or maintenance run can change.
WORKFLOW_AFFECTED_KEYS: list[QueryKey] = [
    (ADVERTISEMENTS,),
    (UNPUBLISHED_ADS,),
    (INSIGHTS,),
    (PENDING_TASKS,),
    (PENDING_ANALYTICS,),
    (SYSTEM_HEALTH,),
    (CONSOLIDATED_TASKS,),
    (TASK_SYSTEM_STATS,),
]


class PendingQueries:
    def __init__(self, *, gateway: DataGateway, cache: QueryCache, settings: Settings) -> None:
        self.gateway = gateway
        self.cache = cache
        self.settings = settings

    def advertisements(self, store: str) -> list[Advertisement]:
        return self.cache.fetch(
            (ADVERTISEMENTS, store),
            lambda: [
                Advertisement.model_validate(row)
                for row in self.gateway.select(
                    "advertisements",
                    filters={"store": store},
                    order_by="created_at",
                    descending=True,
                )
            ],
            stale_time_s=self.settings.pending_stale_s,
        )

    def unpublished_ads(self, store: str) -> list[Advertisement]:
        return self.cache.fetch(
            (UNPUBLISHED_ADS, store),
            lambda: [
                Advertisement.model_validate(row)
                for row in self.gateway.select(
                    "advertisements",
                    filters={"store": store, "publicado": False},
                    order_by="created_at",
                    descending=True,
                )
            ],
            stale_time_s=self.settings.pending_stale_s,
        )

    def pending_tasks(self, store: str) -> list[PendingTask]:
        return self.cache.fetch(
            (PENDING_TASKS, store),
            lambda: [
                PendingTask.model_validate(row)
                for row in self.gateway.select(
                    "tasks",
                    filters={"store": store, "status": "pending"},
                    order_by="created_at",
                    descending=True,
                )
            ],
            stale_time_s=self.settings.pending_stale_s,
        )

    def pending_insights(self, store: str) -> list[AdvertisementInsight]:
        return self.cache.fetch(
            (INSIGHTS, store),
            lambda: [
                AdvertisementInsight.model_validate(row)
                for row in self.gateway.select(
                    "advertisement_insights",
                    filters={"store": store, "resolved": False},
                    order_by="created_at",
                    descending=True,
                )
            ],
            stale_time_s=self.settings.pending_stale_s,
        )

    def vehicles(self, store: str) -> list[Vehicle]:
        return self.cache.fetch(
            (VEHICLES, store),
            lambda: [
                Vehicle.model_validate(row)
                for row in self.gateway.select("vehicles", filters={"store": store})
            ],
            stale_time_s=self.settings.pending_stale_s,
        )

    def consolidated_tasks(self) -> list[dict[str, Any]]:
        def load() -> list[dict[str, Any]]:
            rows = self.gateway.rpc("get_consolidated_task_state") or []
            logger.info("consolidated_tasks event=fetched count=%d", len(rows))
            return list(rows)

        return self.cache.fetch(
            (CONSOLIDATED_TASKS,),
            load,
            stale_time_s=self.settings.consolidated_stale_s,
        )
