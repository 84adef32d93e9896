from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field

from .models import AdvertisementInsight, PendingTask

DEFAULT_PAGE_SIZE = 25
INSIGHT_PRIORITY = "normal"

ItemType = Literal["task", "insight"]
TypeFilter = Literal["all", "tasks", "insights"]


class PendingItem(BaseModel):
    type: ItemType
    item_id: str
    title: str | None = None
    description: str | None = None
    plate: str | None = None
    priority: str | None = None
    store: str | None = None
    vehicle_id: str | None = None
    created_at: datetime | None = None


class PendingFilters(BaseModel):
    store: str = "all"
    type: TypeFilter = "all"
    priority: str = "all"
    search: str = ""

    @property
    def applied(self) -> bool:
        return (
            self.store != "all"
            or self.type != "all"
            or self.priority != "all"
            or bool(self.search)
        )


class PendingPage(BaseModel):
    items: list[PendingItem]
    page: int
    page_size: int
    total_items: int
    total_pages: int
    filter_applied: bool


def merge_pending_items(
    tasks: Iterable[PendingTask],
    insights: Iterable[AdvertisementInsight],
    filters: PendingFilters,
    *,
    plates_by_vehicle: Mapping[str, str] | None = None,
) -> list[PendingItem]:
    """Filter and merge tasks and insights, newest first."""
    plates = plates_by_vehicle or {}
    search = filters.search.casefold()
    items: list[PendingItem] = []

    if filters.type in ("all", "tasks"):
        for task in tasks:
            plate = plates.get(task.vehicle_id or "")
            if filters.store != "all" and task.store != filters.store:
                continue
            if filters.priority != "all" and task.priority != filters.priority:
                continue
            if search and not _contains(search, task.title, task.description, plate):
                continue
            items.append(
                PendingItem(
                    type="task",
                    item_id=task.id,
                    title=task.title,
                    description=task.description,
                    plate=plate,
                    priority=task.priority,
                    store=task.store,
                    vehicle_id=task.vehicle_id,
                    created_at=task.created_at,
                )
            )

    if filters.type in ("all", "insights"):
        for insight in insights:
            if filters.store != "all" and insight.store != filters.store:
                continue
            # Insights carry no priority of their own.
            if filters.priority not in ("all", INSIGHT_PRIORITY):
                continue
            if search and not _contains(search, insight.insight_type, insight.description):
                continue
            items.append(
                PendingItem(
                    type="insight",
                    item_id=insight.id,
                    title=insight.insight_type,
                    description=insight.description,
                    priority=INSIGHT_PRIORITY,
                    store=insight.store,
                    vehicle_id=insight.vehicle_id,
                    created_at=insight.created_at,
                )
            )

    return sorted(items, key=_created_sort_key, reverse=True)


def paginate(
    items: list[PendingItem],
    *,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
    filter_applied: bool = False,
) -> PendingPage:
    page_size = max(1, page_size)
    total_items = len(items)
    total_pages = math.ceil(total_items / page_size)
    page = max(1, min(page, total_pages))
    start = (page - 1) * page_size
    return PendingPage(
        items=items[start : start + page_size],
        page=page,
        page_size=page_size,
        total_items=total_items,
        total_pages=total_pages,
        filter_applied=filter_applied,
    )


def _contains(needle: str, *haystacks: str | None) -> bool:
    return any(needle in haystack.casefold() for haystack in haystacks if haystack)


def _created_sort_key(item: PendingItem) -> datetime:
    if item.created_at is None:
        return datetime.min.replace(tzinfo=UTC)
    if item.created_at.tzinfo is None:
        return item.created_at.replace(tzinfo=UTC)
    return item.created_at
