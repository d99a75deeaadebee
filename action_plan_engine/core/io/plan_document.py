from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Callable, Iterable, Optional, cast

from action_plan_engine.core.errors import PlanValidationError
from action_plan_engine.core.model import (
    COMPLEXITY_LEVELS,
    OBJECTIVE_PRIORITIES,
    PLAN_STATUSES,
    TASK_PRIORITIES,
    TASK_STATUSES,
    Area,
    Objective,
    Plan,
    PlanHierarchy,
    Task,
    TaskKPI,
    display_order_key,
)
from action_plan_engine.core.store.entity_store import EntityStore


SCHEMA_VERSION = "1"

_MISSING = object()


class _Fields:
    """Reads typed fields off one raw mapping, collecting errors instead of raising."""

    def __init__(self, raw: dict[str, Any], path: str, file: Optional[str], errors: list[PlanValidationError]):
        self.raw = raw
        self.path = path
        self.file = file
        self.errors = errors
        self.ok = True

    def _fail(self, key: str, code: str, message: str) -> Any:
        self.ok = False
        self.errors.append(
            PlanValidationError(code=code, message=message, file=self.file, path=f"{self.path}.{key}")
        )
        return None

    def required_str(self, key: str) -> str:
        v = self.raw.get(key)
        if not isinstance(v, str) or not v.strip():
            return self._fail(key, "E_REQUIRED_FIELD", f"{key} is required and must be a non-empty string")
        return v

    def optional_str(self, key: str) -> Optional[str]:
        v = self.raw.get(key)
        if v is not None and not isinstance(v, str):
            return self._fail(key, "E_INVALID_TYPE", f"{key} must be a string")
        return v

    def optional_number(self, key: str) -> Optional[float]:
        v = self.raw.get(key)
        if v is not None and (isinstance(v, bool) or not isinstance(v, (int, float))):
            return self._fail(key, "E_INVALID_TYPE", f"{key} must be a number")
        return v

    def optional_int(self, key: str) -> Optional[int]:
        v = self.raw.get(key)
        if v is not None and (isinstance(v, bool) or not isinstance(v, int)):
            return self._fail(key, "E_INVALID_TYPE", f"{key} must be an integer")
        return v

    def enum(self, key: str, allowed: tuple[str, ...], default: str) -> str:
        v = self.raw.get(key, _MISSING)
        if v is _MISSING or v is None:
            return default
        if not isinstance(v, str) or v not in allowed:
            return self._fail(key, "E_INVALID_ENUM", f"{key} must be one of {list(allowed)}")
        return v

    def optional_date(self, key: str) -> Optional[date]:
        v = self.raw.get(key)
        if v is None:
            return None
        if isinstance(v, datetime):
            return v.date()
        if isinstance(v, date):
            return v
        if isinstance(v, str):
            try:
                return date.fromisoformat(v)
            except ValueError:
                pass
        return self._fail(key, "E_INVALID_TYPE", f"{key} must be a date (YYYY-MM-DD)")

    def optional_datetime(self, key: str) -> Optional[datetime]:
        v = self.raw.get(key)
        if v is None:
            return None
        if isinstance(v, str):
            try:
                v = datetime.fromisoformat(v.replace("Z", "+00:00"))
            except ValueError:
                return self._fail(key, "E_INVALID_TYPE", f"{key} must be an ISO-8601 timestamp")
        if isinstance(v, datetime):
            return v if v.tzinfo else v.replace(tzinfo=timezone.utc)
        if isinstance(v, date):
            return datetime(v.year, v.month, v.day, tzinfo=timezone.utc)
        return self._fail(key, "E_INVALID_TYPE", f"{key} must be an ISO-8601 timestamp")

    def mapping(self, key: str) -> dict[str, Any]:
        v = self.raw.get(key)
        if v is None:
            return {}
        if not isinstance(v, dict):
            return self._fail(key, "E_INVALID_TYPE", f"{key} must be an object") or {}
        return v

    def children(self, key: str) -> list[Any]:
        v = self.raw.get(key)
        if v is None:
            return []
        if not isinstance(v, list):
            return self._fail(key, "E_INVALID_TYPE", f"{key} must be an array") or []
        return v


def validate_plan_document(document: dict[str, Any]) -> tuple[Optional[PlanHierarchy], list[PlanValidationError]]:
    """Validate a plan document and build its hierarchy.

    Returns (hierarchy, errors). hierarchy is None when errors exist.
    """

    file = cast(Optional[str], document.get("__file__"))
    errors: list[PlanValidationError] = []

    schema_version = document.get("schema_version")
    if not isinstance(schema_version, str) or not schema_version.strip():
        errors.append(
            PlanValidationError(
                code="E_REQUIRED_FIELD",
                message="schema_version is required and must be a non-empty string",
                file=file,
                path="schema_version",
            )
        )

    raw_plan = document.get("plan")
    if not isinstance(raw_plan, dict):
        errors.append(
            PlanValidationError(
                code="E_REQUIRED_FIELD",
                message="plan is required and must be an object",
                file=file,
                path="plan",
            )
        )
        return None, _sorted(errors)

    f = _Fields(raw_plan, "plan", file, errors)
    plan = Plan(
        id=f.required_str("id"),
        title=f.required_str("title"),
        description=f.optional_str("description"),
        time_horizon=f.optional_int("time_horizon"),
        complexity_level=cast(Any, f.enum("complexity_level", COMPLEXITY_LEVELS, "medium")),
        status=cast(Any, f.enum("status", PLAN_STATUSES, "draft")),
        created_at=f.optional_datetime("created_at"),
        updated_at=f.optional_datetime("updated_at"),
        metadata=f.mapping("metadata"),
    )

    seen: dict[str, set[str]] = {"area": set(), "objective": set(), "task": set(), "kpi": set()}

    def claim(kind: str, entity_id: Optional[str], path: str) -> bool:
        if entity_id is None:
            return False
        if entity_id in seen[kind]:
            errors.append(
                PlanValidationError(
                    code="E_DUPLICATE_ID",
                    message=f"duplicate {kind} id: {entity_id}",
                    file=file,
                    path=f"{path}.id",
                )
            )
            return False
        seen[kind].add(entity_id)
        return True

    areas: list[Area] = []
    objectives_by_area: dict[str, list[Objective]] = {}
    tasks_by_objective: dict[str, list[Task]] = {}
    kpis_by_task: dict[str, list[TaskKPI]] = {}
    task_paths: dict[str, str] = {}

    for ai, raw_area in enumerate(f.children("areas")):
        apath = f"plan.areas[{ai}]"
        if not _is_object(raw_area, apath, file, errors):
            continue
        af = _Fields(raw_area, apath, file, errors)
        area = Area(
            id=af.required_str("id"),
            plan_id=plan.id,
            name=af.required_str("name"),
            description=af.optional_str("description"),
            target_score=af.optional_number("target_score"),
            order_index=af.optional_int("order_index"),
            created_at=af.optional_datetime("created_at"),
        )
        if not claim("area", area.id, apath) or not af.ok:
            continue
        areas.append(area)
        objectives: list[Objective] = []

        for oi, raw_obj in enumerate(af.children("objectives")):
            opath = f"{apath}.objectives[{oi}]"
            if not _is_object(raw_obj, opath, file, errors):
                continue
            of = _Fields(raw_obj, opath, file, errors)
            objective = Objective(
                id=of.required_str("id"),
                area_id=area.id,
                title=of.required_str("title"),
                description=of.optional_str("description"),
                priority=cast(Any, of.enum("priority", OBJECTIVE_PRIORITIES, "medium")),
                order_index=of.optional_int("order_index"),
                created_at=of.optional_datetime("created_at"),
            )
            if not claim("objective", objective.id, opath) or not of.ok:
                continue
            objectives.append(objective)
            tasks: list[Task] = []

            for ti, raw_task in enumerate(of.children("tasks")):
                tpath = f"{opath}.tasks[{ti}]"
                if not _is_object(raw_task, tpath, file, errors):
                    continue
                task, kpis = _parse_task(raw_task, objective.id, tpath, file, errors, claim)
                if task is None:
                    continue
                tasks.append(task)
                task_paths[task.id] = tpath
                if kpis:
                    kpis_by_task[task.id] = kpis

            tasks_by_objective[objective.id] = sorted(tasks, key=display_order_key)
        objectives_by_area[area.id] = sorted(objectives, key=display_order_key)

    # Referential integrity: predecessors must be tasks of this document.
    for tasks in tasks_by_objective.values():
        for t in tasks:
            if t.depends_on is not None and t.depends_on not in seen["task"]:
                errors.append(
                    PlanValidationError(
                        code="E_UNKNOWN_DEPENDENCY",
                        message=f"depends_on references unknown task id: {t.depends_on}",
                        file=file,
                        path=f"{task_paths[t.id]}.depends_on",
                    )
                )

    if errors:
        return None, _sorted(errors)

    hierarchy = PlanHierarchy(
        plan=plan,
        areas=sorted(areas, key=display_order_key),
        objectives_by_area=objectives_by_area,
        tasks_by_objective=tasks_by_objective,
        kpis_by_task=kpis_by_task,
    )
    return hierarchy, []


def _parse_task(
    raw: dict[str, Any],
    objective_id: str,
    tpath: str,
    file: Optional[str],
    errors: list[PlanValidationError],
    claim: Callable[[str, Optional[str], str], bool],
) -> tuple[Optional[Task], list[TaskKPI]]:
    tf = _Fields(raw, tpath, file, errors)
    metadata = tf.mapping("metadata")
    revision = tf.optional_int("revision")
    task = Task(
        id=tf.required_str("id"),
        objective_id=objective_id,
        title=tf.required_str("title"),
        description=tf.optional_str("description"),
        status=cast(Any, tf.enum("status", TASK_STATUSES, "pending")),
        priority=cast(Any, tf.enum("priority", TASK_PRIORITIES, "none")),
        assigned_to=tf.optional_str("assigned_to"),
        depends_on=tf.optional_str("depends_on"),
        estimated_effort=tf.optional_number("estimated_effort"),
        start_date=tf.optional_date("start_date"),
        due_date=tf.optional_date("due_date"),
        completed_at=tf.optional_datetime("completed_at"),
        metadata=metadata,
        order_index=tf.optional_int("order_index"),
        created_at=tf.optional_datetime("created_at"),
        updated_at=tf.optional_datetime("updated_at"),
        revision=revision or 0,
    )
    if not claim("task", task.id, tpath) or not tf.ok:
        return None, []

    kpis: list[TaskKPI] = []
    for ki, raw_kpi in enumerate(tf.children("kpis")):
        kpath = f"{tpath}.kpis[{ki}]"
        if not _is_object(raw_kpi, kpath, file, errors):
            continue
        kf = _Fields(raw_kpi, kpath, file, errors)
        kpi = TaskKPI(
            id=kf.required_str("id"),
            task_id=task.id,
            name=kf.required_str("name"),
            target_value=kf.optional_number("target_value"),
            current_value=kf.optional_number("current_value"),
            unit=kf.optional_str("unit"),
        )
        if claim("kpi", kpi.id, kpath) and kf.ok:
            kpis.append(kpi)
    return task, kpis


def load_into_store(hierarchy: PlanHierarchy, store: EntityStore) -> None:
    store.add_plan(hierarchy.plan)
    for area in hierarchy.areas:
        store.add_area(area)
        for objective in hierarchy.objectives(area.id):
            store.add_objective(objective)
            for task in hierarchy.tasks_by_objective.get(objective.id, []):
                store.add_task(task)
                for kpi in hierarchy.kpis_by_task.get(task.id, []):
                    store.add_task_kpi(kpi)


def hierarchy_to_document(hierarchy: PlanHierarchy) -> dict[str, Any]:
    """Inverse of validate_plan_document: plain YAML/JSON-safe values only."""
    p = hierarchy.plan
    return {
        "schema_version": SCHEMA_VERSION,
        "plan": _compact(
            {
                "id": p.id,
                "title": p.title,
                "description": p.description,
                "time_horizon": p.time_horizon,
                "complexity_level": p.complexity_level,
                "status": p.status,
                "created_at": _iso(p.created_at),
                "updated_at": _iso(p.updated_at),
                "metadata": p.metadata or None,
                "areas": [_area_to_dict(hierarchy, a) for a in hierarchy.areas],
            }
        ),
    }


def _area_to_dict(hierarchy: PlanHierarchy, a: Area) -> dict[str, Any]:
    return _compact(
        {
            "id": a.id,
            "name": a.name,
            "description": a.description,
            "target_score": a.target_score,
            "order_index": a.order_index,
            "created_at": _iso(a.created_at),
            "objectives": [
                _compact(
                    {
                        "id": o.id,
                        "title": o.title,
                        "description": o.description,
                        "priority": o.priority,
                        "order_index": o.order_index,
                        "created_at": _iso(o.created_at),
                        "tasks": [
                            task_to_dict(t, hierarchy.kpis_by_task.get(t.id, []))
                            for t in hierarchy.tasks_by_objective.get(o.id, [])
                        ],
                    }
                )
                for o in hierarchy.objectives(a.id)
            ],
        }
    )


def task_to_dict(t: Task, kpis: Iterable[TaskKPI] = ()) -> dict[str, Any]:
    return _compact(
        {
            "id": t.id,
            "title": t.title,
            "description": t.description,
            "status": t.status,
            "priority": t.priority,
            "assigned_to": t.assigned_to,
            "depends_on": t.depends_on,
            "estimated_effort": t.estimated_effort,
            "start_date": t.start_date.isoformat() if t.start_date else None,
            "due_date": t.due_date.isoformat() if t.due_date else None,
            "completed_at": _iso(t.completed_at),
            "metadata": t.metadata or None,
            "order_index": t.order_index,
            "created_at": _iso(t.created_at),
            "updated_at": _iso(t.updated_at),
            "revision": t.revision or None,
            "kpis": [
                _compact(
                    {
                        "id": k.id,
                        "name": k.name,
                        "target_value": k.target_value,
                        "current_value": k.current_value,
                        "unit": k.unit,
                    }
                )
                for k in kpis
            ]
            or None,
        }
    )


def summarize_plan(hierarchy: PlanHierarchy) -> str:
    objective_count = sum(len(hierarchy.objectives(a.id)) for a in hierarchy.areas)
    task_count = sum(1 for _ in hierarchy.iter_tasks())
    return (
        f"OK: plan {hierarchy.plan.id} ({len(hierarchy.areas)} areas, "
        f"{objective_count} objectives, {task_count} tasks)"
    )


def _iso(v: Optional[datetime]) -> Optional[str]:
    return v.isoformat() if v else None


def _compact(d: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in d.items() if v is not None}


def _is_object(raw: Any, path: str, file: Optional[str], errors: list[PlanValidationError]) -> bool:
    if isinstance(raw, dict):
        return True
    errors.append(
        PlanValidationError(code="E_INVALID_TYPE", message="entry must be an object", file=file, path=path)
    )
    return False


def _sorted(errors: Iterable[PlanValidationError]) -> list[PlanValidationError]:
    return sorted(
        list(errors),
        key=lambda e: (
            e.file or "",
            e.path or "",
            e.code,
        ),
    )
