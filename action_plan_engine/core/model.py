from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Iterator, Literal, Optional


TaskStatus = Literal["pending", "in_progress", "completed", "blocked"]
TaskPriority = Literal["high", "medium", "low", "none"]
ObjectivePriority = Literal["high", "medium", "low"]
PlanStatus = Literal["draft", "active", "completed", "archived"]
ComplexityLevel = Literal["basic", "medium", "advanced"]

# Column order used by progress counts and the status board.
TASK_STATUSES: tuple[str, ...] = ("pending", "in_progress", "completed", "blocked")
TASK_PRIORITIES: tuple[str, ...] = ("high", "medium", "low", "none")
OBJECTIVE_PRIORITIES: tuple[str, ...] = ("high", "medium", "low")
PLAN_STATUSES: tuple[str, ...] = ("draft", "active", "completed", "archived")
COMPLEXITY_LEVELS: tuple[str, ...] = ("basic", "medium", "advanced")

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Plan:
    id: str
    title: str
    description: Optional[str] = None
    time_horizon: Optional[int] = None  # months
    complexity_level: ComplexityLevel = "medium"
    status: PlanStatus = "draft"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Area:
    id: str
    plan_id: str
    name: str
    description: Optional[str] = None
    target_score: Optional[float] = None
    order_index: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class Objective:
    id: str
    area_id: str
    title: str
    description: Optional[str] = None
    priority: ObjectivePriority = "medium"
    order_index: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class Task:
    id: str
    objective_id: str
    title: str
    description: Optional[str] = None
    status: TaskStatus = "pending"
    priority: TaskPriority = "none"
    assigned_to: Optional[str] = None
    depends_on: Optional[str] = None
    estimated_effort: Optional[float] = None
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    completed_at: Optional[datetime] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    order_index: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    revision: int = 0


@dataclass(frozen=True)
class TaskKPI:
    id: str
    task_id: str
    name: str
    target_value: Optional[float] = None
    current_value: Optional[float] = None
    unit: Optional[str] = None


def display_order_key(item: Area | Objective | Task) -> tuple[bool, int, datetime]:
    """Sort key for siblings: order_index first (missing last), then creation time.

    Used with a stable sort so remaining ties keep insertion order.
    """
    return (
        item.order_index is None,
        item.order_index if item.order_index is not None else 0,
        item.created_at or EPOCH,
    )


@dataclass(frozen=True)
class PlanHierarchy:
    """A plan with its owned children, keyed by parent id.

    Children lists are kept in display order.
    """

    plan: Plan
    areas: list[Area]
    objectives_by_area: dict[str, list[Objective]]
    tasks_by_objective: dict[str, list[Task]]
    kpis_by_task: dict[str, list[TaskKPI]] = field(default_factory=dict)

    def objectives(self, area_id: str) -> list[Objective]:
        return self.objectives_by_area.get(area_id, [])

    def area_tasks(self, area_id: str) -> list[Task]:
        out: list[Task] = []
        for objective in self.objectives(area_id):
            out.extend(self.tasks_by_objective.get(objective.id, []))
        return out

    def iter_tasks(self) -> Iterator[Task]:
        for area in self.areas:
            yield from self.area_tasks(area.id)

    def tasks_by_id(self) -> dict[str, Task]:
        return {t.id: t for t in self.iter_tasks()}
