from __future__ import annotations

from typing import Mapping, Optional

from action_plan_engine.core.errors import (
    CrossPlanError,
    CycleError,
    DependencyError,
    SelfReferenceError,
)
from action_plan_engine.core.model import Task


def predecessor_chain(start_id: str, predecessor_of: Mapping[str, Optional[str]]) -> tuple[list[str], bool]:
    """Follow depends_on links from start_id.

    Returns (chain, closed). chain starts with start_id. closed is True when the
    walk revisited a node or ran past len(predecessor_of) steps, i.e. the links
    loop somewhere along the way.
    """

    chain = [start_id]
    seen = {start_id}
    cur: Optional[str] = start_id
    for _ in range(len(predecessor_of) + 1):
        cur = predecessor_of.get(cur) if cur is not None else None
        if cur is None:
            return chain, False
        chain.append(cur)
        if cur in seen:
            return chain, True
        seen.add(cur)
    return chain, True


def check_dependency(
    task: Task,
    predecessor_id: Optional[str],
    *,
    task_plan_id: str,
    predecessor_plan_id: Optional[str],
    predecessor_of: Mapping[str, Optional[str]],
) -> Optional[DependencyError]:
    """Decide whether task may depend on predecessor_id.

    predecessor_of maps every task id of the plan to its current depends_on.
    Returns None when the edge is legal (clearing with None always is),
    otherwise the error to report. Nothing is mutated.
    """

    if predecessor_id is None:
        return None

    path = f"task:{task.id}.depends_on"

    if predecessor_id == task.id:
        return SelfReferenceError(
            code="E_DEPENDENCY_SELF_REFERENCE",
            message=f"task cannot depend on itself: {task.id}",
            path=path,
        )

    if predecessor_plan_id != task_plan_id:
        return CrossPlanError(
            code="E_DEPENDENCY_CROSS_PLAN",
            message=(
                f"predecessor {predecessor_id} belongs to plan {predecessor_plan_id}, "
                f"task {task.id} belongs to plan {task_plan_id}"
            ),
            path=path,
        )

    # Walk from the candidate as if the new edge already existed.
    proposed = dict(predecessor_of)
    proposed[task.id] = predecessor_id
    bound = len(proposed)
    cur: Optional[str] = predecessor_id
    walked = [task.id, predecessor_id]
    for _ in range(bound):
        if cur == task.id:
            return CycleError(
                code="E_DEPENDENCY_CYCLE",
                message="dependency cycle detected: " + " -> ".join(walked),
                path=path,
            )
        cur = proposed.get(cur) if cur is not None else None
        if cur is None:
            return None
        walked.append(cur)

    return CycleError(
        code="E_DEPENDENCY_CYCLE",
        message=f"predecessor chain from {predecessor_id} did not terminate within {bound} steps",
        path=path,
    )


def find_dependency_violations(
    tasks: list[Task],
    *,
    plan_id: str,
    plan_id_by_task: Optional[Mapping[str, str]] = None,
) -> list[DependencyError]:
    """Check every stored depends_on edge of one plan.

    Edges written before validation existed (imports, manual edits) can still
    be illegal. Each cycle is reported once, on its smallest task id.
    plan_id_by_task lets cross-plan edges be told apart from unknown ids;
    an edge to an id found in neither is left to the document validator.
    """

    predecessor_of = {t.id: t.depends_on for t in tasks}
    out: list[DependencyError] = []
    reported_cycles: set[frozenset[str]] = set()

    for t in sorted(tasks, key=lambda x: x.id):
        dep = t.depends_on
        if dep is None:
            continue
        path = f"task:{t.id}.depends_on"
        if dep == t.id:
            out.append(
                SelfReferenceError(
                    code="E_DEPENDENCY_SELF_REFERENCE",
                    message=f"task cannot depend on itself: {t.id}",
                    path=path,
                )
            )
            continue
        if dep not in predecessor_of:
            other_plan = (plan_id_by_task or {}).get(dep)
            if other_plan is not None and other_plan != plan_id:
                out.append(
                    CrossPlanError(
                        code="E_DEPENDENCY_CROSS_PLAN",
                        message=f"predecessor {dep} belongs to plan {other_plan}, not {plan_id}",
                        path=path,
                    )
                )
            continue

        chain, closed = predecessor_chain(t.id, predecessor_of)
        if not closed:
            continue
        loop_start = chain.index(chain[-1])
        members = frozenset(chain[loop_start:])
        if t.id not in members or members in reported_cycles:
            continue
        reported_cycles.add(members)
        out.append(
            CycleError(
                code="E_DEPENDENCY_CYCLE",
                message="dependency cycle detected: " + " -> ".join(chain[loop_start:]),
                path=path,
            )
        )

    return out
