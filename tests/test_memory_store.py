import pytest

from action_plan_engine.core.errors import ConcurrentUpdateError, StorageError
from action_plan_engine.core.model import Area, Objective, Plan, TaskKPI
from conftest import FIXED_NOW


def test_tasks_follow_order_index_then_created_at(store, seed_plan, make_task):
    from datetime import datetime, timezone

    early = datetime(2025, 1, 1, tzinfo=timezone.utc)
    late = datetime(2025, 1, 2, tzinfo=timezone.utc)
    seed_plan(
        "P",
        [
            make_task("C", created_at=early),
            make_task("B", order_index=1, created_at=late),
            make_task("A", order_index=1, created_at=early),
            make_task("Z", order_index=0),
        ],
    )
    assert [t.id for t in store.list_tasks(objective_id="P-OBJ")] == ["Z", "A", "B", "C"]


def test_list_tasks_by_plan_spans_areas(store, basic_engine):
    assert [t.id for t in store.list_tasks(plan_id="PLAN-001")] == ["T-1", "T-2", "T-3", "T-4", "T-5", "T-6"]
    assert [t.id for t in store.list_tasks(area_id="AREA-FIN")] == ["T-5", "T-6"]


def test_plan_id_for_task(store, basic_engine):
    assert store.plan_id_for_task("T-6") == "PLAN-001"
    assert store.plan_id_for_task("T-404") is None


def test_duplicate_and_orphan_inserts(store):
    store.add_plan(Plan(id="P", title="Plan"))
    with pytest.raises(StorageError) as ei:
        store.add_plan(Plan(id="P", title="Again"))
    assert ei.value.code == "E_STORAGE"
    with pytest.raises(StorageError):
        store.add_objective(Objective(id="O", area_id="missing", title="Orphan"))
    store.add_area(Area(id="A", plan_id="P", name="Ops"))
    assert [a.id for a in store.list_areas("P")] == ["A"]
    assert [p.id for p in store.list_plans()] == ["P"]


def test_update_bumps_revision_and_stamps(store, seed_plan, make_task):
    seed_plan("P", [make_task("T")])
    t = store.get_task("T")
    stored = store.update_task(t, expected_revision=0)
    assert stored.revision == 1
    assert stored.updated_at == FIXED_NOW


def test_update_with_stale_revision(store, seed_plan, make_task):
    seed_plan("P", [make_task("T")])
    t = store.get_task("T")
    store.update_task(t, expected_revision=0)
    with pytest.raises(ConcurrentUpdateError):
        store.update_task(t, expected_revision=0)
    assert store.get_task("T").revision == 1


def test_update_and_delete_missing(store, make_task):
    with pytest.raises(StorageError):
        store.update_task(make_task("T"), expected_revision=0)
    with pytest.raises(StorageError):
        store.delete_task("T")


def test_delete_drops_kpis(store, seed_plan, make_task):
    seed_plan("P", [make_task("T")])
    store.add_task_kpi(TaskKPI(id="K", task_id="T", name="Accuracy"))
    store.delete_task("T")
    assert store.get_task("T") is None
    assert store.list_task_kpis("T") == []


def test_plan_revision_moves_only_with_edges(store, seed_plan, make_task):
    from dataclasses import replace

    seed_plan("P", [make_task("A"), make_task("B")])
    start = store.plan_revision("P")
    store.update_task(replace(store.get_task("A"), status="in_progress"), expected_revision=0)
    assert store.plan_revision("P") == start
    store.update_task(replace(store.get_task("B"), depends_on="A"), expected_revision=0)
    assert store.plan_revision("P") == start + 1


def test_update_with_stale_plan_revision(store, seed_plan, make_task):
    from dataclasses import replace

    seed_plan("P", [make_task("A"), make_task("B")])
    seen = store.plan_revision("P")
    store.update_task(replace(store.get_task("B"), depends_on="A"), expected_revision=0)
    with pytest.raises(ConcurrentUpdateError) as ei:
        store.update_task(
            replace(store.get_task("A"), depends_on="B"),
            expected_revision=0,
            expected_plan_revision=seen,
        )
    assert ei.value.path == "plan:P"
    assert store.get_task("A").depends_on is None


def test_delete_with_stale_dependent_changes_nothing(store, seed_plan, make_task):
    seed_plan("P", [make_task("X"), make_task("D1", depends_on="X"), make_task("D2", depends_on="X")])
    with pytest.raises(ConcurrentUpdateError):
        store.delete_task("X", unlink={"D1": 0, "D2": 7})
    with pytest.raises(ConcurrentUpdateError):
        store.delete_task("X", unlink={"D1": 0})
    assert store.get_task("X") is not None
    assert [store.get_task(d).depends_on for d in ("D1", "D2")] == ["X", "X"]

    store.delete_task("X", unlink={"D1": 0, "D2": 0})
    assert store.get_task("X") is None
    assert store.get_task("D1").depends_on is None
    assert store.get_task("D1").updated_at == FIXED_NOW


def test_snapshot(store, basic_engine, basic_hierarchy):
    assert store.snapshot("NOPE") is None
    snap = store.snapshot("PLAN-001")
    assert list(snap.iter_tasks()) == list(basic_hierarchy.iter_tasks())
    assert snap.kpis_by_task == basic_hierarchy.kpis_by_task
