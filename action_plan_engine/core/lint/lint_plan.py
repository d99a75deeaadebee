from __future__ import annotations

from collections import Counter
from typing import Iterable, Mapping, Optional

from action_plan_engine.core.dependency.validate_dependency import find_dependency_violations
from action_plan_engine.core.errors import PlanValidationError
from action_plan_engine.core.model import Area, Objective, PlanHierarchy, Task


# Plan lint rules, run over an already-loaded hierarchy:
# - L_DEPENDENCY_SELF_REFERENCE / L_DEPENDENCY_CROSS_PLAN / L_DEPENDENCY_CYCLE:
#   stored depends_on edges that the validator would reject today
# - L_COMPLETED_AT_MISMATCH: completed_at set without status completed, or missing with it
# - L_DUPLICATE_ORDER_INDEX: siblings sharing an order_index
# - L_START_AFTER_DUE: the timeline keeps these bars but draws them with no width

_DEPENDENCY_CODES: dict[str, str] = {
    "E_DEPENDENCY_SELF_REFERENCE": "L_DEPENDENCY_SELF_REFERENCE",
    "E_DEPENDENCY_CROSS_PLAN": "L_DEPENDENCY_CROSS_PLAN",
    "E_DEPENDENCY_CYCLE": "L_DEPENDENCY_CYCLE",
}


def lint_hierarchy(
    hierarchy: PlanHierarchy,
    *,
    file: Optional[str] = None,
    plan_id_by_task: Optional[Mapping[str, str]] = None,
) -> list[PlanValidationError]:
    tasks = list(hierarchy.iter_tasks())
    errors: list[PlanValidationError] = []

    for dep_err in find_dependency_violations(
        tasks, plan_id=hierarchy.plan.id, plan_id_by_task=plan_id_by_task
    ):
        errors.append(
            PlanValidationError(
                code=_DEPENDENCY_CODES.get(dep_err.code, dep_err.code),
                message=dep_err.message,
                file=file,
                path=dep_err.path,
            )
        )

    for t in tasks:
        if t.status == "completed" and t.completed_at is None:
            errors.append(
                PlanValidationError(
                    code="L_COMPLETED_AT_MISMATCH",
                    message="completed task must carry completed_at",
                    file=file,
                    path=f"task:{t.id}.completed_at",
                )
            )
        elif t.status != "completed" and t.completed_at is not None:
            errors.append(
                PlanValidationError(
                    code="L_COMPLETED_AT_MISMATCH",
                    message=f"completed_at is set but status is {t.status}",
                    file=file,
                    path=f"task:{t.id}.completed_at",
                )
            )

        if t.start_date is not None and t.due_date is not None and t.start_date > t.due_date:
            errors.append(
                PlanValidationError(
                    code="L_START_AFTER_DUE",
                    message=f"start_date {t.start_date.isoformat()} is after due_date {t.due_date.isoformat()}",
                    file=file,
                    path=f"task:{t.id}.start_date",
                )
            )

    errors.extend(_duplicate_order_indexes("plan", hierarchy.plan.id, hierarchy.areas, file))
    for area in hierarchy.areas:
        errors.extend(_duplicate_order_indexes("area", area.id, hierarchy.objectives(area.id), file))
        for objective in hierarchy.objectives(area.id):
            errors.extend(
                _duplicate_order_indexes(
                    "objective", objective.id, hierarchy.tasks_by_objective.get(objective.id, []), file
                )
            )

    return _sorted(errors)


def _duplicate_order_indexes(
    parent_kind: str,
    parent_id: str,
    children: Iterable[Area | Objective | Task],
    file: Optional[str],
) -> list[PlanValidationError]:
    counts = Counter(c.order_index for c in children if c.order_index is not None)
    return [
        PlanValidationError(
            code="L_DUPLICATE_ORDER_INDEX",
            message=f"order_index {idx} is used {n} times under {parent_kind} {parent_id}",
            file=file,
            path=f"{parent_kind}:{parent_id}",
        )
        for idx, n in sorted(counts.items())
        if n > 1
    ]


def _sorted(errors: list[PlanValidationError]) -> list[PlanValidationError]:
    return sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))
