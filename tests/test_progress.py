import json

from action_plan_engine.core.model import Area, Objective, Plan, PlanHierarchy, Task
from action_plan_engine.core.progress.aggregate import aggregate, percent


def _hierarchy(layout):
    """layout: list of (area_id, order_index, [[status, ...] per objective])."""
    areas = []
    objectives_by_area = {}
    tasks_by_objective = {}
    for area_id, order_index, objectives in layout:
        areas.append(Area(id=area_id, plan_id="P", name=area_id.title(), order_index=order_index))
        objectives_by_area[area_id] = []
        for oi, statuses in enumerate(objectives):
            oid = f"{area_id}-o{oi}"
            objectives_by_area[area_id].append(Objective(id=oid, area_id=area_id, title=oid))
            tasks_by_objective[oid] = [
                Task(id=f"{oid}-t{ti}", objective_id=oid, title="t", status=s)
                for ti, s in enumerate(statuses)
            ]
    return PlanHierarchy(
        plan=Plan(id="P", title="Plan"),
        areas=areas,
        objectives_by_area=objectives_by_area,
        tasks_by_objective=tasks_by_objective,
    )


def test_scenario_single_area_half_done():
    h = _hierarchy([("ops", 0, [["completed", "completed", "in_progress", "blocked"]])])
    p = aggregate(h)
    assert p.overall_progress == 50
    assert p.by_area[0].progress == 50
    assert (p.total_tasks, p.completed_tasks, p.in_progress_tasks, p.blocked_tasks, p.pending_tasks) == (4, 2, 1, 1, 0)


def test_scenario_no_areas():
    p = aggregate(_hierarchy([]))
    assert p.to_dict() == {
        "total_tasks": 0,
        "completed_tasks": 0,
        "in_progress_tasks": 0,
        "pending_tasks": 0,
        "blocked_tasks": 0,
        "overall_progress": 0,
        "by_area": [],
    }


def test_area_without_tasks_reports_zero():
    p = aggregate(_hierarchy([("empty", 0, [[]])]))
    assert p.by_area[0].total == 0
    assert p.by_area[0].progress == 0
    assert p.overall_progress == 0


def test_overall_uses_task_counts_not_area_average():
    # 1/1 done in a small area, 0/9 in a large one: average would say 50.
    h = _hierarchy([("small", 0, [["completed"]]), ("large", 1, [["pending"] * 9])])
    p = aggregate(h)
    assert [a.progress for a in p.by_area] == [100, 0]
    assert p.overall_progress == 10


def test_objectives_are_flattened_into_the_area():
    h = _hierarchy([("ops", 0, [["completed"], ["pending", "pending"], ["completed"]])])
    a = aggregate(h).by_area[0]
    assert (a.total, a.completed, a.pending, a.progress) == (4, 2, 2, 50)


def test_rollup_is_exact(basic_hierarchy):
    p = aggregate(basic_hierarchy)
    assert sum(a.total for a in p.by_area) == p.total_tasks
    assert sum(a.completed for a in p.by_area) == p.completed_tasks
    assert sum(a.in_progress for a in p.by_area) == p.in_progress_tasks
    assert sum(a.pending for a in p.by_area) == p.pending_tasks
    assert sum(a.blocked for a in p.by_area) == p.blocked_tasks


def test_basic_plan_figures(basic_hierarchy):
    p = aggregate(basic_hierarchy)
    assert p.total_tasks == 6
    assert p.overall_progress == 33
    assert [(a.area_id, a.progress) for a in p.by_area] == [("AREA-OPS", 25), ("AREA-FIN", 50)]


def test_payload_is_json_serializable(basic_hierarchy):
    payload = json.loads(json.dumps(aggregate(basic_hierarchy).to_dict()))
    assert set(payload["by_area"][0]) == {
        "area_id",
        "area_name",
        "total",
        "completed",
        "in_progress",
        "pending",
        "blocked",
        "progress",
    }


def test_percent_rounds_half_up():
    assert percent(1, 8) == 13
    assert percent(1, 3) == 33
    assert percent(2, 3) == 67
    assert percent(0, 0) == 0
    assert percent(5, 5) == 100
