from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Literal, Optional, cast

from action_plan_engine.core.errors import InvalidStateError, PredecessorIncompleteError
from action_plan_engine.core.model import TASK_STATUSES, PlanHierarchy, Task, TaskStatus


TransitionPolicy = Literal["permissive", "strict"]
TRANSITION_POLICIES: tuple[str, ...] = ("permissive", "strict")

# Under the strict policy these targets require a completed predecessor.
_ADVANCING_STATUSES: set[str] = {"in_progress", "completed"}


def parse_status(value: object, *, task_id: Optional[str] = None) -> TaskStatus:
    if not isinstance(value, str) or value not in TASK_STATUSES:
        raise InvalidStateError(
            code="E_INVALID_STATE",
            message=f"status must be one of {list(TASK_STATUSES)}, got {value!r}",
            path=f"task:{task_id}.status" if task_id else "status",
        )
    return cast(TaskStatus, value)


def transition(
    task: Task,
    new_status: str,
    *,
    now: datetime,
    policy: TransitionPolicy = "permissive",
    predecessor: Optional[Task] = None,
) -> Task:
    """Return task moved to new_status.

    permissive: any status may follow any other, the way the dashboard's
    board lets tasks be dropped on any column.
    strict: moving to in_progress or completed needs the predecessor (if any)
    to be completed already. Leaving a status is never blocked.

    completed_at is stamped on entering completed and cleared on leaving it.
    Re-applying completed keeps the first stamp.
    """

    status = parse_status(new_status, task_id=task.id)

    if policy == "strict" and status in _ADVANCING_STATUSES and status != task.status:
        if predecessor is not None and predecessor.status != "completed":
            raise PredecessorIncompleteError(
                code="E_PREDECESSOR_INCOMPLETE",
                message=(
                    f"cannot move {task.id} to {status}: predecessor {predecessor.id} "
                    f"is {predecessor.status}"
                ),
                path=f"task:{task.id}.status",
            )

    if status == "completed":
        completed_at = task.completed_at if task.status == "completed" and task.completed_at else now
    else:
        completed_at = None

    return replace(task, status=status, completed_at=completed_at)


def is_ready(task: Task, predecessor: Optional[Task]) -> bool:
    """A task may advance when it is not done and nothing unfinished precedes it."""
    if task.status == "completed":
        return False
    return predecessor is None or predecessor.status == "completed"


def ready_tasks(hierarchy: PlanHierarchy) -> list[Task]:
    by_id = hierarchy.tasks_by_id()
    out: list[Task] = []
    for t in hierarchy.iter_tasks():
        pred = by_id.get(t.depends_on) if t.depends_on else None
        if is_ready(t, pred):
            out.append(t)
    return out
