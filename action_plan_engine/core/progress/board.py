from __future__ import annotations

from typing import Iterable

from action_plan_engine.core.model import TASK_STATUSES, Task


def group_by_status(tasks: Iterable[Task]) -> dict[str, list[Task]]:
    """Board columns keyed by status, always all four, in board order."""
    columns: dict[str, list[Task]] = {s: [] for s in TASK_STATUSES}
    for t in tasks:
        columns[t.status].append(t)
    return columns
