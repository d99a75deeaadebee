from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Any, Iterable

from action_plan_engine.core.model import PlanHierarchy, Task


@dataclass(frozen=True)
class AreaProgress:
    area_id: str
    area_name: str
    total: int
    completed: int
    in_progress: int
    pending: int
    blocked: int
    progress: int


@dataclass(frozen=True)
class PlanProgress:
    total_tasks: int = 0
    completed_tasks: int = 0
    in_progress_tasks: int = 0
    pending_tasks: int = 0
    blocked_tasks: int = 0
    overall_progress: int = 0
    by_area: list[AreaProgress] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready payload; dashboard widgets read these exact keys."""
        return asdict(self)


def percent(part: int, total: int) -> int:
    """round(100 * part / total), halves rounded up, 0 when total is 0."""
    if total <= 0:
        return 0
    return min(100, max(0, (200 * part + total) // (2 * total)))


def _count(tasks: Iterable[Task]) -> Counter[str]:
    return Counter(t.status for t in tasks)


def aggregate(hierarchy: PlanHierarchy) -> PlanProgress:
    """Roll task statuses up to areas and the plan.

    Objectives only group tasks; they are not scored. Plan figures sum the
    area counts, so overall_progress weighs every task equally instead of
    averaging area percentages.
    """

    by_area: list[AreaProgress] = []
    for area in hierarchy.areas:
        tasks = hierarchy.area_tasks(area.id)
        counts = _count(tasks)
        total = len(tasks)
        by_area.append(
            AreaProgress(
                area_id=area.id,
                area_name=area.name,
                total=total,
                completed=counts.get("completed", 0),
                in_progress=counts.get("in_progress", 0),
                pending=counts.get("pending", 0),
                blocked=counts.get("blocked", 0),
                progress=percent(counts.get("completed", 0), total),
            )
        )

    total_tasks = sum(a.total for a in by_area)
    completed_tasks = sum(a.completed for a in by_area)
    return PlanProgress(
        total_tasks=total_tasks,
        completed_tasks=completed_tasks,
        in_progress_tasks=sum(a.in_progress for a in by_area),
        pending_tasks=sum(a.pending for a in by_area),
        blocked_tasks=sum(a.blocked for a in by_area),
        overall_progress=percent(completed_tasks, total_tasks),
        by_area=by_area,
    )
