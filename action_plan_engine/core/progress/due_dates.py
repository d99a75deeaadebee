from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable

from action_plan_engine.core.model import Task


DEFAULT_UPCOMING_LIMIT = 5


@dataclass(frozen=True)
class DueSummary:
    today: date
    upcoming: list[Task]
    overdue: list[Task]


def _open_with_due_date(tasks: Iterable[Task]) -> list[Task]:
    return [t for t in tasks if t.due_date is not None and t.status != "completed"]


def _by_due_date(tasks: list[Task]) -> list[Task]:
    return sorted(tasks, key=lambda t: (t.due_date, t.id))


def upcoming_tasks(tasks: Iterable[Task], today: date, limit: int = DEFAULT_UPCOMING_LIMIT) -> list[Task]:
    """Open tasks due today or later, soonest first."""
    due = [t for t in _open_with_due_date(tasks) if t.due_date >= today]  # type: ignore[operator]
    return _by_due_date(due)[: max(0, limit)]


def overdue_tasks(tasks: Iterable[Task], today: date) -> list[Task]:
    due = [t for t in _open_with_due_date(tasks) if t.due_date < today]  # type: ignore[operator]
    return _by_due_date(due)


def summarize_due(tasks: Iterable[Task], today: date, limit: int = DEFAULT_UPCOMING_LIMIT) -> DueSummary:
    items = list(tasks)
    return DueSummary(
        today=today,
        upcoming=upcoming_tasks(items, today, limit),
        overdue=overdue_tasks(items, today),
    )
