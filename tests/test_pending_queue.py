from __future__ import annotations

from datetime import timedelta

from conftest import NOW, OTHER_STORE, STORE

from dealerdesk.app.models import AdvertisementInsight, PendingTask
from dealerdesk.app.pending_queue import PendingFilters, merge_pending_items, paginate


def _tasks() -> list[PendingTask]:
    return [
        PendingTask(
            id="task-1",
            title="Lavar veículo",
            priority="high",
            store=STORE,
            vehicle_id="veh-1",
            created_at=NOW - timedelta(days=2),
        ),
        PendingTask(
            id="task-2",
            title="Trocar óleo",
            priority="low",
            store=OTHER_STORE,
            created_at=NOW - timedelta(hours=1),
        ),
    ]


def _insights() -> list[AdvertisementInsight]:
    return [
        AdvertisementInsight(
            id="ins-1",
            insight_type="price_mismatch",
            description="Preço divergente",
            store=STORE,
            created_at=NOW - timedelta(days=1),
        )
    ]


def test_merges_newest_first() -> None:
    items = merge_pending_items(_tasks(), _insights(), PendingFilters())

    assert [(item.type, item.item_id) for item in items] == [
        ("task", "task-2"),
        ("insight", "ins-1"),
        ("task", "task-1"),
    ]
    assert items[1].priority == "normal"


def test_filters_by_store_type_priority_and_search() -> None:
    by_store = merge_pending_items(_tasks(), _insights(), PendingFilters(store=STORE))
    only_insights = merge_pending_items(_tasks(), _insights(), PendingFilters(type="insights"))
    high_priority = merge_pending_items(_tasks(), _insights(), PendingFilters(priority="high"))
    by_plate = merge_pending_items(
        _tasks(),
        _insights(),
        PendingFilters(search="abc"),
        plates_by_vehicle={"veh-1": "ABC1234"},
    )

    assert [item.item_id for item in by_store] == ["ins-1", "task-1"]
    assert [item.item_id for item in only_insights] == ["ins-1"]
    assert [item.item_id for item in high_priority] == ["task-1"]
    assert [item.item_id for item in by_plate] == ["task-1"]
    assert by_plate[0].plate == "ABC1234"


def test_filter_applied_flag() -> None:
    assert PendingFilters().applied is False
    assert PendingFilters(search="óleo").applied is True
    assert PendingFilters(type="tasks").applied is True


def test_paginate_clamps_page() -> None:
    items = merge_pending_items(
        [
            PendingTask(id=f"task-{index}", store=STORE, created_at=NOW - timedelta(minutes=index))
            for index in range(30)
        ],
        [],
        PendingFilters(),
    )

    last = paginate(items, page=5, page_size=25)
    first = paginate(items, page=0, page_size=25)

    assert last.page == 2
    assert last.total_pages == 2
    assert len(last.items) == 5
    assert first.page == 1
    assert first.items[0].item_id == "task-0"


def test_paginate_empty_list() -> None:
    page = paginate([], page=3)

    assert page.items == []
    assert page.total_items == 0
    assert page.page == 1
