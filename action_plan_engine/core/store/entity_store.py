from __future__ import annotations

from typing import Mapping, Optional, Protocol

from action_plan_engine.core.model import Area, Objective, Plan, PlanHierarchy, Task, TaskKPI


class EntityStore(Protocol):
    """Storage collaborator for plan entities.

    Implementations report their own failures as StorageError. update_task is
    a compare-and-swap on Task.revision: it raises ConcurrentUpdateError when
    the stored revision differs from expected_revision, and otherwise stores
    the task with revision + 1 and a fresh updated_at.

    Each plan also carries a dependency revision, bumped whenever a task of the
    plan is added, deleted or gets a new depends_on. Passing
    expected_plan_revision to update_task rejects the write if any edge of the
    plan changed since that revision was read.
    """

    def get_plan(self, plan_id: str) -> Optional[Plan]: ...

    def list_plans(self) -> list[Plan]: ...

    def list_areas(self, plan_id: str) -> list[Area]: ...

    def list_objectives(self, area_id: str) -> list[Objective]: ...

    def list_tasks(
        self,
        *,
        objective_id: Optional[str] = None,
        area_id: Optional[str] = None,
        plan_id: Optional[str] = None,
    ) -> list[Task]: ...

    def list_task_kpis(self, task_id: str) -> list[TaskKPI]: ...

    def get_task(self, task_id: str) -> Optional[Task]: ...

    def plan_id_for_task(self, task_id: str) -> Optional[str]: ...

    def plan_revision(self, plan_id: str) -> int: ...

    def snapshot(self, plan_id: str) -> Optional[PlanHierarchy]: ...

    def add_plan(self, plan: Plan) -> Plan: ...

    def add_area(self, area: Area) -> Area: ...

    def add_objective(self, objective: Objective) -> Objective: ...

    def add_task(self, task: Task) -> Task: ...

    def add_task_kpi(self, kpi: TaskKPI) -> TaskKPI: ...

    def update_task(
        self,
        task: Task,
        *,
        expected_revision: int,
        expected_plan_revision: Optional[int] = None,
    ) -> Task: ...

    def delete_task(self, task_id: str, *, unlink: Optional[Mapping[str, int]] = None) -> None: ...
