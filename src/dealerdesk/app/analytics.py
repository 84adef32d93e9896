"""Pending-work analytics per store.

The aggregator does three reads (tasks, insights, advertisements) and derives
everything else from that snapshot in `compute_pending_analytics`, a pure
function of its inputs and `now`.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable
from datetime import UTC, date, datetime, timedelta
from typing import Literal

from dealerdesk.config.settings import Settings
from dealerdesk.gateway.base import DataGateway

from .cache import QueryCache
from .models import (
    Advertisement,
    AdvertisementInsight,
    CategoryCounts,
    PendingAnalytics,
    PendingTask,
    StorePerformance,
    WeeklyTrendPoint,
)
from .queries import PENDING_ANALYTICS

logger = logging.getLogger(__name__)

TREND_DEAD_BAND = 0.10
TREND_WEEKS = 7

Trend = Literal["up", "down", "stable"]

# (created_at, completed_at or None, is_completed)
Lifecycle = tuple[datetime | None, datetime | None, bool]


def compute_pending_analytics(
    tasks: list[PendingTask],
    insights: list[AdvertisementInsight],
    ads: list[Advertisement],
    *,
    store: str,
    now: datetime,
) -> PendingAnalytics:
    now = _as_utc(now)
    categories: dict[str, list[Lifecycle]] = {
        "tasks": [
            (task.created_at, task.completed_at, task.status == "completed") for task in tasks
        ],
        "insights": [
            (insight.created_at, insight.resolved_at, insight.resolved) for insight in insights
        ],
        "advertisements": [(ad.created_at, ad.data_publicacao, ad.publicado) for ad in ads],
    }

    by_category = {
        name: CategoryCounts(
            pending=sum(1 for _, _, done in items if not done),
            completed=sum(1 for _, _, done in items if done),
        )
        for name, items in categories.items()
    }
    total_pending = sum(counts.pending for counts in by_category.values())
    total_completed = sum(counts.completed for counts in by_category.values())

    all_items = [item for items in categories.values() for item in items]
    completion_rate = completion_rate_of(total_completed, total_pending)
    avg_resolution_time = average_resolution_hours(all_items)
    today = now.date()

    weekly_trend = weekly_trend_of(categories, today=today)
    return PendingAnalytics(
        total_tasks=by_category["tasks"].pending,
        total_insights=by_category["insights"].pending,
        total_unpublished=by_category["advertisements"].pending,
        by_category=by_category,
        completion_rate=completion_rate,
        avg_resolution_time=avg_resolution_time,
        trend=trend_of(weekly_trend),
        tasks_completed_today=_completed_on(categories["tasks"], today),
        insights_resolved_today=_completed_on(categories["insights"], today),
        ads_published_today=_completed_on(categories["advertisements"], today),
        oldest_pending_days=oldest_pending_days(all_items, now=now),
        performance_by_store=[
            StorePerformance(
                store=store,
                completion_rate=completion_rate,
                avg_time=avg_resolution_time,
            )
        ],
        weekly_trend=weekly_trend,
        generated_at=now,
    )


def completion_rate_of(completed: int, pending: int) -> float:
    total = completed + pending
    if total <= 0:
        return 0.0
    return completed / total * 100.0


def average_resolution_hours(items: Iterable[Lifecycle]) -> float:
    """Mean hours from creation to completion, over items with both timestamps."""
    durations = [
        (_as_utc(completed_at) - _as_utc(created_at)).total_seconds() / 3600.0
        for created_at, completed_at, done in items
        if done and created_at is not None and completed_at is not None
    ]
    if not durations:
        return 0.0
    return sum(durations) / len(durations)


def oldest_pending_days(items: Iterable[Lifecycle], *, now: datetime) -> int:
    created = [_as_utc(created_at) for created_at, _, done in items if not done and created_at]
    if not created:
        return 0
    age = _as_utc(now) - min(created)
    return max(0, math.floor(age.total_seconds() / 86400.0))


def weekly_trend_of(categories: dict[str, list[Lifecycle]], *, today: date) -> list[WeeklyTrendPoint]:
    """Seven points, oldest first; week i covers the seven days ending today - 7i."""
    points: list[WeeklyTrendPoint] = []
    for offset in range(TREND_WEEKS - 1, -1, -1):
        week_end = today - timedelta(days=7 * offset)
        week_start = week_end - timedelta(days=6)
        created_by: dict[str, int] = {}
        completed_by: dict[str, int] = {}
        for name, items in categories.items():
            created_by[name] = sum(
                1
                for created_at, _, _ in items
                if created_at and week_start <= _as_utc(created_at).date() <= week_end
            )
            completed_by[name] = sum(
                1
                for _, completed_at, done in items
                if done and completed_at and week_start <= _as_utc(completed_at).date() <= week_end
            )
        points.append(
            WeeklyTrendPoint(
                week=f"{week_start.day}/{week_start.month}",
                created=sum(created_by.values()),
                completed=sum(completed_by.values()),
                created_by_category=created_by,
                completed_by_category=completed_by,
            )
        )
    return points


def trend_of(points: list[WeeklyTrendPoint]) -> Trend:
    if len(points) < 2:
        return "stable"
    last_rate = _completion_ratio(points[-1])
    previous_rate = _completion_ratio(points[-2])
    if last_rate > previous_rate + TREND_DEAD_BAND:
        return "up"
    if last_rate < previous_rate - TREND_DEAD_BAND:
        return "down"
    return "stable"


class PendingAggregator:
    def __init__(
        self,
        *,
        gateway: DataGateway,
        cache: QueryCache,
        settings: Settings,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.gateway = gateway
        self.cache = cache
        self.settings = settings
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    def get_pending_analytics(self, store: str) -> PendingAnalytics:
        return self.cache.fetch(
            (PENDING_ANALYTICS, store),
            lambda: self._load(store),
            stale_time_s=self.settings.analytics_stale_s,
        )

    def refresh(self, store: str) -> PendingAnalytics:
        self.cache.invalidate([(PENDING_ANALYTICS, store)])
        return self.get_pending_analytics(store)

    def _load(self, store: str) -> PendingAnalytics:
        # Any failed read propagates; partial analytics are never cached.
        tasks = [
            PendingTask.model_validate(row)
            for row in self.gateway.select("tasks", filters={"store": store})
        ]
        insights = [
            AdvertisementInsight.model_validate(row)
            for row in self.gateway.select("advertisement_insights", filters={"store": store})
        ]
        ads = [
            Advertisement.model_validate(row)
            for row in self.gateway.select("advertisements", filters={"store": store})
        ]
        analytics = compute_pending_analytics(tasks, insights, ads, store=store, now=self._clock())
        logger.info(
            "pending_analytics event=computed store=%s pending=%d completion_rate=%.1f trend=%s",
            store,
            analytics.total_tasks + analytics.total_insights + analytics.total_unpublished,
            analytics.completion_rate,
            analytics.trend,
        )
        return analytics


def _completion_ratio(point: WeeklyTrendPoint) -> float:
    return point.completed / point.created if point.created > 0 else 0.0


def _completed_on(items: list[Lifecycle], day: date) -> int:
    return sum(
        1 for _, completed_at, done in items if done and completed_at and _as_utc(completed_at).date() == day
    )


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
