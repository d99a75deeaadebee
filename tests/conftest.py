"""Shared fixtures for engine tests."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable

import pytest

from action_plan_engine.core.engine import PlanEngine
from action_plan_engine.core.io.load_plan import load_plan
from action_plan_engine.core.io.plan_document import load_into_store, validate_plan_document
from action_plan_engine.core.model import Area, Objective, Plan, PlanHierarchy, Task
from action_plan_engine.core.store.memory_store import InMemoryEntityStore

FIXED_NOW = datetime(2025, 2, 1, 12, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


def single_area_plan(store: InMemoryEntityStore, plan_id: str, tasks: list[Task]) -> None:
    """One area, one objective, the given tasks (objective_id is overwritten)."""
    store.add_plan(Plan(id=plan_id, title=f"Plan {plan_id}"))
    store.add_area(Area(id=f"{plan_id}-AREA", plan_id=plan_id, name="Operations"))
    store.add_objective(Objective(id=f"{plan_id}-OBJ", area_id=f"{plan_id}-AREA", title="Objective"))
    for t in tasks:
        store.add_task(replace(t, objective_id=f"{plan_id}-OBJ"))


@pytest.fixture
def store() -> InMemoryEntityStore:
    return InMemoryEntityStore(clock=fixed_clock)


@pytest.fixture
def basic_hierarchy() -> PlanHierarchy:
    hierarchy, errors = validate_plan_document(load_plan("examples/basic-plan.yaml"))
    assert errors == []
    assert hierarchy is not None
    return hierarchy


@pytest.fixture
def basic_engine(store: InMemoryEntityStore, basic_hierarchy: PlanHierarchy) -> PlanEngine:
    load_into_store(basic_hierarchy, store)
    return PlanEngine(store, clock=fixed_clock)


@pytest.fixture
def make_task() -> Callable[..., Task]:
    def _make(task_id: str, **fields: Any) -> Task:
        fields.setdefault("title", f"Task {task_id}")
        fields.setdefault("objective_id", "OBJ")
        return Task(id=task_id, **fields)

    return _make


@pytest.fixture
def seed_plan(store: InMemoryEntityStore) -> Callable[[str, list[Task]], None]:
    def _seed(plan_id: str, tasks: list[Task]) -> None:
        single_area_plan(store, plan_id, tasks)

    return _seed
