from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Callable, Optional

from action_plan_engine.core.config import EngineConfig
from action_plan_engine.core.dependency.validate_dependency import check_dependency
from action_plan_engine.core.errors import (
    ConcurrentUpdateError,
    DependentsExistError,
    PlanValidationError,
    not_found,
)
from action_plan_engine.core.lint.lint_plan import lint_hierarchy
from action_plan_engine.core.model import PlanHierarchy, Task, utc_now
from action_plan_engine.core.progress.aggregate import PlanProgress, aggregate
from action_plan_engine.core.progress.board import group_by_status
from action_plan_engine.core.progress.due_dates import DueSummary, summarize_due
from action_plan_engine.core.status.transition import parse_status, ready_tasks, transition
from action_plan_engine.core.store.entity_store import EntityStore
from action_plan_engine.core.timeline.project_timeline import TimelineModel, project_timeline


logger = logging.getLogger("action_plan_engine.engine")


@dataclass(frozen=True)
class DeleteTaskResult:
    task_id: str
    cleared_dependents: list[str]


class PlanEngine:
    """Entry point for callers: reads a plan through the store, validates then writes.

    Every check runs before the store is touched, so a rejected call leaves
    storage as it was. Store failures propagate unretried.
    """

    def __init__(
        self,
        store: EntityStore,
        config: Optional[EngineConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.config = config or EngineConfig()
        self._clock = clock

    # Reads

    def get_plan_hierarchy(self, plan_id: str) -> PlanHierarchy:
        hierarchy = self.store.snapshot(plan_id)
        if hierarchy is None:
            raise not_found("plan", plan_id)
        return hierarchy

    def get_plan_progress(self, plan_id: str) -> PlanProgress:
        return aggregate(self.get_plan_hierarchy(plan_id))

    def get_plan_timeline(self, plan_id: str) -> TimelineModel:
        return project_timeline(self.get_plan_hierarchy(plan_id).iter_tasks())

    def get_ready_tasks(self, plan_id: str) -> list[Task]:
        return ready_tasks(self.get_plan_hierarchy(plan_id))

    def get_status_board(self, plan_id: str) -> dict[str, list[Task]]:
        return group_by_status(self.get_plan_hierarchy(plan_id).iter_tasks())

    def get_due_summary(self, plan_id: str, today: Optional[date] = None) -> DueSummary:
        day = today or self._clock().date()
        return summarize_due(
            self.get_plan_hierarchy(plan_id).iter_tasks(), day, self.config.upcoming_limit
        )

    def lint_plan(self, plan_id: str) -> list[PlanValidationError]:
        hierarchy = self.get_plan_hierarchy(plan_id)
        outside: dict[str, str] = {}
        for t in hierarchy.iter_tasks():
            if t.depends_on is None:
                continue
            other = self.store.plan_id_for_task(t.depends_on)
            if other is not None:
                outside[t.depends_on] = other
        return lint_hierarchy(hierarchy, plan_id_by_task=outside)

    # Mutations

    def set_task_status(
        self, task_id: str, status: str, *, expected_revision: Optional[int] = None
    ) -> Task:
        parse_status(status, task_id=task_id)
        task = self._get_task(task_id)

        predecessor = None
        if self.config.transition_policy == "strict" and task.depends_on:
            predecessor = self.store.get_task(task.depends_on)

        updated = transition(
            task,
            status,
            now=self._clock(),
            policy=self.config.transition_policy,
            predecessor=predecessor,
        )
        if updated == task:
            # Same status again: nothing observable changes.
            return self._unchanged(task, expected_revision)

        stored = self.store.update_task(updated, expected_revision=self._revision(task, expected_revision))
        logger.info("task %s status %s -> %s", task_id, task.status, stored.status)
        return stored

    def set_task_dependency(
        self,
        task_id: str,
        predecessor_id: Optional[str],
        *,
        expected_revision: Optional[int] = None,
    ) -> Task:
        task = self._get_task(task_id)
        task_plan_id = self.store.plan_id_for_task(task_id)
        if task_plan_id is None:
            raise not_found("plan", f"<of task {task_id}>")

        if predecessor_id is not None and predecessor_id != task_id:
            if self.store.get_task(predecessor_id) is None:
                raise not_found("task", predecessor_id)

        predecessor_plan_id = (
            self.store.plan_id_for_task(predecessor_id) if predecessor_id is not None else None
        )
        # Read before the edges; the write is refused if any edge moved since.
        plan_revision = self.store.plan_revision(task_plan_id)
        predecessor_of = {
            t.id: t.depends_on for t in self.store.list_tasks(plan_id=task_plan_id)
        }
        err = check_dependency(
            task,
            predecessor_id,
            task_plan_id=task_plan_id,
            predecessor_plan_id=predecessor_plan_id,
            predecessor_of=predecessor_of,
        )
        if err is not None:
            logger.warning("rejected dependency %s -> %s: %s", task_id, predecessor_id, err.code)
            raise err

        if task.depends_on == predecessor_id:
            return self._unchanged(task, expected_revision)

        stored = self.store.update_task(
            replace(task, depends_on=predecessor_id),
            expected_revision=self._revision(task, expected_revision),
            expected_plan_revision=plan_revision,
        )
        logger.info("task %s depends_on %s -> %s", task_id, task.depends_on, predecessor_id)
        return stored

    def delete_task(self, task_id: str) -> DeleteTaskResult:
        """Delete a task. Dependents are unlinked first, or the delete is refused
        when on_delete_with_dependents is "block"."""
        self._get_task(task_id)
        plan_id = self.store.plan_id_for_task(task_id)
        candidates = self.store.list_tasks(plan_id=plan_id) if plan_id else self.store.list_tasks()
        dependents = [t for t in candidates if t.depends_on == task_id]

        if dependents and self.config.on_delete_with_dependents == "block":
            raise DependentsExistError(
                code="E_TASK_HAS_DEPENDENTS",
                message=f"task {task_id} is the predecessor of: {', '.join(t.id for t in dependents)}",
                path=f"task:{task_id}",
            )

        # Unlink and delete in one store call: all of it happens or none.
        self.store.delete_task(task_id, unlink={t.id: t.revision for t in dependents})
        if dependents:
            logger.warning(
                "deleting task %s cleared depends_on of %d dependent(s): %s",
                task_id,
                len(dependents),
                ", ".join(t.id for t in dependents),
            )

        logger.info("task %s deleted", task_id)
        return DeleteTaskResult(task_id=task_id, cleared_dependents=[t.id for t in dependents])

    def _get_task(self, task_id: str) -> Task:
        task = self.store.get_task(task_id)
        if task is None:
            raise not_found("task", task_id)
        return task

    @staticmethod
    def _unchanged(task: Task, expected_revision: Optional[int]) -> Task:
        if expected_revision is not None and expected_revision != task.revision:
            raise ConcurrentUpdateError(
                code="E_STALE_REVISION",
                message=(
                    f"task {task.id} changed concurrently "
                    f"(expected revision {expected_revision}, found {task.revision})"
                ),
                path=f"task:{task.id}",
            )
        return task

    @staticmethod
    def _revision(task: Task, expected_revision: Optional[int]) -> int:
        return task.revision if expected_revision is None else expected_revision
