from datetime import datetime, timezone

from action_plan_engine.core.io.load_plan import load_plan
from action_plan_engine.core.io.plan_document import (
    hierarchy_to_document,
    summarize_plan,
    validate_plan_document,
)


def test_validate_happy_path():
    plan = load_plan("examples/basic-plan.yaml")
    hierarchy, errors = validate_plan_document(plan)
    assert errors == []
    assert hierarchy is not None
    assert [a.id for a in hierarchy.areas] == ["AREA-OPS", "AREA-FIN"]
    assert hierarchy.tasks_by_id()["T-2"].depends_on == "T-1"
    assert hierarchy.kpis_by_task["T-5"][0].target_value == 90
    assert hierarchy.tasks_by_id()["T-6"].priority == "none"


def test_validate_missing_required_field():
    plan = load_plan("examples/invalid-missing-field.yaml")
    hierarchy, errors = validate_plan_document(plan)
    assert hierarchy is None
    assert [(e.code, e.path) for e in errors] == [
        ("E_REQUIRED_FIELD", "plan.areas[0].objectives[0].tasks[0].title")
    ]


def test_validate_bad_enum():
    plan = load_plan("examples/invalid-bad-enum.yaml")
    hierarchy, errors = validate_plan_document(plan)
    assert hierarchy is None
    assert any(e.code == "E_INVALID_ENUM" and e.path.endswith("tasks[0].status") for e in errors)


def test_validate_unknown_dependency():
    plan = load_plan("examples/invalid-unknown-dep.yaml")
    hierarchy, errors = validate_plan_document(plan)
    assert hierarchy is None
    assert any(e.code == "E_UNKNOWN_DEPENDENCY" for e in errors)


def test_validate_duplicate_task_id():
    doc = {
        "schema_version": "1",
        "plan": {
            "id": "P",
            "title": "Plan",
            "areas": [
                {
                    "id": "A",
                    "name": "Ops",
                    "objectives": [
                        {
                            "id": "O",
                            "title": "Obj",
                            "tasks": [{"id": "T", "title": "one"}, {"id": "T", "title": "two"}],
                        }
                    ],
                }
            ],
        },
    }
    hierarchy, errors = validate_plan_document(doc)
    assert hierarchy is None
    assert [e.code for e in errors] == ["E_DUPLICATE_ID"]


def test_validate_missing_plan():
    hierarchy, errors = validate_plan_document({"schema_version": "1", "plan": None})
    assert hierarchy is None
    assert [e.path for e in errors] == ["plan"]


def test_naive_datetimes_are_read_as_utc():
    doc = {
        "schema_version": "1",
        "plan": {"id": "P", "title": "Plan", "created_at": "2025-01-02T08:00:00"},
    }
    hierarchy, errors = validate_plan_document(doc)
    assert errors == []
    assert hierarchy.plan.created_at == datetime(2025, 1, 2, 8, 0, tzinfo=timezone.utc)


def test_document_survives_a_save(basic_hierarchy):
    again, errors = validate_plan_document(hierarchy_to_document(basic_hierarchy))
    assert errors == []
    assert list(again.iter_tasks()) == list(basic_hierarchy.iter_tasks())


def test_summarize_plan(basic_hierarchy):
    assert summarize_plan(basic_hierarchy) == "OK: plan PLAN-001 (2 areas, 3 objectives, 6 tasks)"
