from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime
from typing import Callable, Mapping, Optional, TypeVar

from action_plan_engine.core.errors import ConcurrentUpdateError, StorageError
from action_plan_engine.core.model import (
    Area,
    Objective,
    Plan,
    PlanHierarchy,
    Task,
    TaskKPI,
    display_order_key,
    utc_now,
)


_T = TypeVar("_T", Area, Objective, Task)


def _ordered(items: list[_T]) -> list[_T]:
    return sorted(items, key=display_order_key)


def _stale(kind: str, entity_id: str, expected: int, found: int) -> ConcurrentUpdateError:
    return ConcurrentUpdateError(
        code="E_STALE_REVISION",
        message=f"{kind} {entity_id} changed concurrently (expected revision {expected}, found {found})",
        path=f"{kind}:{entity_id}",
    )


class InMemoryEntityStore:
    """Dict-backed EntityStore.

    Every public method holds one lock, so a read returns a consistent
    snapshot and each write checks revisions and applies its changes together.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        self._plans: dict[str, Plan] = {}
        self._plan_revisions: dict[str, int] = {}
        self._areas: dict[str, Area] = {}
        self._objectives: dict[str, Objective] = {}
        self._tasks: dict[str, Task] = {}
        self._kpis: dict[str, TaskKPI] = {}

    # Reads

    def get_plan(self, plan_id: str) -> Optional[Plan]:
        with self._lock:
            return self._plans.get(plan_id)

    def list_plans(self) -> list[Plan]:
        with self._lock:
            return list(self._plans.values())

    def list_areas(self, plan_id: str) -> list[Area]:
        with self._lock:
            return self._areas_of(plan_id)

    def list_objectives(self, area_id: str) -> list[Objective]:
        with self._lock:
            return self._objectives_of(area_id)

    def list_tasks(
        self,
        *,
        objective_id: Optional[str] = None,
        area_id: Optional[str] = None,
        plan_id: Optional[str] = None,
    ) -> list[Task]:
        with self._lock:
            if objective_id is not None:
                return self._tasks_of(objective_id)
            if area_id is not None:
                objective_ids = [o.id for o in self._objectives_of(area_id)]
            elif plan_id is not None:
                objective_ids = [
                    o.id for a in self._areas_of(plan_id) for o in self._objectives_of(a.id)
                ]
            else:
                return list(self._tasks.values())
            out: list[Task] = []
            for oid in objective_ids:
                out.extend(self._tasks_of(oid))
            return out

    def list_task_kpis(self, task_id: str) -> list[TaskKPI]:
        with self._lock:
            return self._kpis_of(task_id)

    def get_task(self, task_id: str) -> Optional[Task]:
        with self._lock:
            return self._tasks.get(task_id)

    def plan_id_for_task(self, task_id: str) -> Optional[str]:
        with self._lock:
            return self._plan_of(task_id)

    def plan_revision(self, plan_id: str) -> int:
        with self._lock:
            return self._plan_revisions.get(plan_id, 0)

    def snapshot(self, plan_id: str) -> Optional[PlanHierarchy]:
        """The whole plan read under one lock hold, or None for an unknown plan."""
        with self._lock:
            plan = self._plans.get(plan_id)
            if plan is None:
                return None
            areas = self._areas_of(plan_id)
            objectives_by_area = {a.id: self._objectives_of(a.id) for a in areas}
            tasks_by_objective: dict[str, list[Task]] = {}
            kpis_by_task: dict[str, list[TaskKPI]] = {}
            for objectives in objectives_by_area.values():
                for o in objectives:
                    tasks_by_objective[o.id] = self._tasks_of(o.id)
                    for t in tasks_by_objective[o.id]:
                        kpis = self._kpis_of(t.id)
                        if kpis:
                            kpis_by_task[t.id] = kpis
            return PlanHierarchy(
                plan=plan,
                areas=areas,
                objectives_by_area=objectives_by_area,
                tasks_by_objective=tasks_by_objective,
                kpis_by_task=kpis_by_task,
            )

    # Writes

    def add_plan(self, plan: Plan) -> Plan:
        with self._lock:
            self._check_new("plan", plan.id, self._plans)
            self._plans[plan.id] = plan
            return plan

    def add_area(self, area: Area) -> Area:
        with self._lock:
            self._check_new("area", area.id, self._areas)
            self._check_parent("plan", area.plan_id, self._plans)
            self._areas[area.id] = area
            return area

    def add_objective(self, objective: Objective) -> Objective:
        with self._lock:
            self._check_new("objective", objective.id, self._objectives)
            self._check_parent("area", objective.area_id, self._areas)
            self._objectives[objective.id] = objective
            return objective

    def add_task(self, task: Task) -> Task:
        with self._lock:
            self._check_new("task", task.id, self._tasks)
            self._check_parent("objective", task.objective_id, self._objectives)
            self._tasks[task.id] = task
            self._bump_plan(self._plan_of(task.id))
            return task

    def add_task_kpi(self, kpi: TaskKPI) -> TaskKPI:
        with self._lock:
            self._check_new("task_kpi", kpi.id, self._kpis)
            self._check_parent("task", kpi.task_id, self._tasks)
            self._kpis[kpi.id] = kpi
            return kpi

    def update_task(
        self,
        task: Task,
        *,
        expected_revision: int,
        expected_plan_revision: Optional[int] = None,
    ) -> Task:
        with self._lock:
            current = self._tasks.get(task.id)
            if current is None:
                raise StorageError(
                    code="E_STORAGE",
                    message=f"cannot update missing task: {task.id}",
                    path=f"task:{task.id}",
                )
            if current.revision != expected_revision:
                raise _stale("task", task.id, expected_revision, current.revision)

            plan_id = self._plan_of(task.id)
            if expected_plan_revision is not None:
                found = self._plan_revisions.get(plan_id or "", 0)
                if found != expected_plan_revision:
                    raise _stale("plan", plan_id or "", expected_plan_revision, found)

            stored = replace(task, revision=current.revision + 1, updated_at=self._clock())
            self._tasks[task.id] = stored
            if stored.depends_on != current.depends_on:
                self._bump_plan(plan_id)
            return stored

    def delete_task(self, task_id: str, *, unlink: Optional[Mapping[str, int]] = None) -> None:
        """Delete a task and clear depends_on of the tasks named in unlink.

        unlink maps each dependent to the revision the caller read. Every
        dependent must be listed with its current revision, otherwise nothing
        changes.
        """
        unlink = unlink or {}
        with self._lock:
            if task_id not in self._tasks:
                raise StorageError(
                    code="E_STORAGE",
                    message=f"cannot delete missing task: {task_id}",
                    path=f"task:{task_id}",
                )
            dependents = [t for t in self._tasks.values() if t.depends_on == task_id]
            for dep in dependents:
                if dep.id not in unlink:
                    raise ConcurrentUpdateError(
                        code="E_STALE_REVISION",
                        message=f"task {dep.id} started depending on {task_id} concurrently",
                        path=f"task:{dep.id}",
                    )
                if dep.revision != unlink[dep.id]:
                    raise _stale("task", dep.id, unlink[dep.id], dep.revision)

            now = self._clock()
            for dep in dependents:
                self._tasks[dep.id] = replace(
                    dep, depends_on=None, revision=dep.revision + 1, updated_at=now
                )
            self._bump_plan(self._plan_of(task_id))
            del self._tasks[task_id]
            for kid in [k.id for k in self._kpis.values() if k.task_id == task_id]:
                del self._kpis[kid]

    # Lock-free helpers, called with the lock held

    def _areas_of(self, plan_id: str) -> list[Area]:
        return _ordered([a for a in self._areas.values() if a.plan_id == plan_id])

    def _objectives_of(self, area_id: str) -> list[Objective]:
        return _ordered([o for o in self._objectives.values() if o.area_id == area_id])

    def _tasks_of(self, objective_id: str) -> list[Task]:
        return _ordered([t for t in self._tasks.values() if t.objective_id == objective_id])

    def _kpis_of(self, task_id: str) -> list[TaskKPI]:
        return [k for k in self._kpis.values() if k.task_id == task_id]

    def _plan_of(self, task_id: str) -> Optional[str]:
        task = self._tasks.get(task_id)
        if task is None:
            return None
        objective = self._objectives.get(task.objective_id)
        area = self._areas.get(objective.area_id) if objective else None
        return area.plan_id if area else None

    def _bump_plan(self, plan_id: Optional[str]) -> None:
        if plan_id is not None:
            self._plan_revisions[plan_id] = self._plan_revisions.get(plan_id, 0) + 1

    @staticmethod
    def _check_new(kind: str, entity_id: str, existing: dict) -> None:
        if entity_id in existing:
            raise StorageError(
                code="E_STORAGE",
                message=f"duplicate {kind} id: {entity_id}",
                path=f"{kind}:{entity_id}",
            )

    @staticmethod
    def _check_parent(kind: str, parent_id: str, existing: dict) -> None:
        if parent_id not in existing:
            raise StorageError(
                code="E_STORAGE",
                message=f"unknown {kind}: {parent_id}",
                path=f"{kind}:{parent_id}",
            )
