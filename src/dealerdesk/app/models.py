"""Pydantic models shared across gateway, executor, coordinator, analytics, and API.

Beginner terms used in this file:
- Literal: restricts a field to a fixed set of allowed string values.
- Discriminated union: several models sharing a `type` field; pydantic picks
  the right model from the value of that field.
- extra="allow": rows from the data API may carry columns we do not model.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

Severity = Literal["success", "error", "info", "warning"]


class RowModel(BaseModel):
    """Base for rows read from the data API."""

    model_config = ConfigDict(extra="allow")


class PendingTask(RowModel):
    id: str
    title: str = ""
    description: str | None = None
    # Reference entity (for example ref_table="vehicles", ref_id=<vehicle id>).
    ref_table: str | None = None
    ref_id: str | None = None
    vehicle_id: str | None = None
    category: str | None = None
    priority: str | None = None
    store: str | None = None
    # pending, in_progress, completed or cancelled; the column is nullable.
    status: str | None = "pending"
    created_at: datetime | None = None
    completed_at: datetime | None = None


class AdvertisementInsight(RowModel):
    id: str
    advertisement_id: str | None = None
    insight_type: str | None = None
    description: str | None = None
    store: str | None = None
    vehicle_id: str | None = None
    resolved: bool = False
    created_at: datetime | None = None
    resolved_at: datetime | None = None


class Advertisement(RowModel):
    id: str
    platform: str
    vehicle_plates: list[str] = Field(default_factory=list)
    advertised_price: float = 0.0
    store: str | None = None
    description: str | None = None
    publicado: bool = False
    data_publicacao: datetime | None = None
    publicado_por: str | None = None
    created_at: datetime | None = None


class Vehicle(RowModel):
    id: str
    plate: str
    model: str = ""
    year: int | None = None
    mileage: int | None = None
    price: float | None = None
    store: str | None = None
    status: str | None = "available"
    description: str | None = None
    documentacao: str | None = None
    # Photo completeness per store.
    fotos_roberto: bool | None = False
    fotos_rn: bool | None = False
    added_at: datetime | None = None


class PublishAdvertisementAction(BaseModel):
    type: Literal["publish_advertisement"] = "publish_advertisement"
    advertisement_id: str = Field(min_length=1)
    metadata: dict[str, Any] = Field(default_factory=dict)


class ResolveInsightAction(BaseModel):
    type: Literal["resolve_insight"] = "resolve_insight"
    insight_id: str = Field(min_length=1)
    metadata: dict[str, Any] = Field(default_factory=dict)


class CreateTaskAction(BaseModel):
    type: Literal["create_task"] = "create_task"
    title: str | None = None
    description: str | None = None
    vehicle_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class CompleteTaskAction(BaseModel):
    type: Literal["complete_task"] = "complete_task"
    task_id: str = Field(min_length=1)
    metadata: dict[str, Any] = Field(default_factory=dict)


WorkflowAction = Annotated[
    Union[
        PublishAdvertisementAction,
        ResolveInsightAction,
        CreateTaskAction,
        CompleteTaskAction,
    ],
    Field(discriminator="type"),
]

WORKFLOW_ACTION_ADAPTER: TypeAdapter[Any] = TypeAdapter(WorkflowAction)


class WorkflowResult(BaseModel):
    """Uniform outcome of one workflow action."""

    success: bool
    message: str
    data: dict[str, Any] | None = None


class Notification(BaseModel):
    """One transient user-facing message."""

    severity: Severity
    message: str
    created_at: datetime


class PermissionCheck(BaseModel):
    has_access: bool
    reason: str | None = None


class CategoryCounts(BaseModel):
    pending: int = 0
    completed: int = 0


class WeeklyTrendPoint(BaseModel):
    week: str
    created: int = 0
    completed: int = 0
    # Per category counts: tasks, insights, advertisements.
    created_by_category: dict[str, int] = Field(default_factory=dict)
    completed_by_category: dict[str, int] = Field(default_factory=dict)


class StorePerformance(BaseModel):
    store: str
    completion_rate: float
    avg_time: float


class PendingAnalytics(BaseModel):
    total_tasks: int
    total_insights: int
    total_unpublished: int
    by_category: dict[str, CategoryCounts]
    completion_rate: float = Field(ge=0.0, le=100.0)
    avg_resolution_time: float
    trend: Literal["up", "down", "stable"]
    tasks_completed_today: int
    insights_resolved_today: int
    ads_published_today: int
    oldest_pending_days: int
    performance_by_store: list[StorePerformance] = Field(default_factory=list)
    weekly_trend: list[WeeklyTrendPoint] = Field(default_factory=list)
    generated_at: datetime


class HealthMetrics(BaseModel):
    total_inconsistencies: int
    orphaned_ads: int
    vehicles_without_ads: int
    price_inconsistencies: int
    last_health_check: datetime
    health_score: int = Field(ge=0, le=100)


class TaskSystemStats(BaseModel):
    total_tasks: int
    pending_tasks: int
    completed_tasks: int
    system_health: int = Field(ge=0, le=100)


MaintenanceState = Literal["idle", "running"]


class MaintenanceResult(BaseModel):
    """Outcome of one maintenance procedure run."""

    name: str
    procedure: str
    success: bool
    message: str
    started_at: datetime
    finished_at: datetime


class MaintenanceStatus(BaseModel):
    name: str
    procedure: str
    state: MaintenanceState = "idle"
    last_result: MaintenanceResult | None = None
