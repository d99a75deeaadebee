import json

from action_plan_engine.core.errors import PlanLoadError
from action_plan_engine.core.io.load_plan import dump_plan_json, dump_plan_yaml, load_plan


def test_load_yaml_success():
    plan = load_plan("examples/basic-plan.yaml")
    assert plan["schema_version"] == "1"
    assert plan["plan"]["id"] == "PLAN-001"
    assert plan["__file__"] == "examples/basic-plan.yaml"


def test_load_missing_file():
    try:
        load_plan("examples/does-not-exist.yaml")
        assert False, "expected PlanLoadError"
    except PlanLoadError as e:
        assert e.code == "E_FILE_NOT_FOUND"


def test_load_unsupported_format(tmp_path):
    p = tmp_path / "plan.txt"
    p.write_text("hello", encoding="utf-8")
    try:
        load_plan(str(p))
        assert False, "expected PlanLoadError"
    except PlanLoadError as e:
        assert e.code == "E_UNSUPPORTED_FORMAT"


def test_load_bad_yaml_and_json(tmp_path):
    y = tmp_path / "plan.yaml"
    y.write_text("plan: [unclosed", encoding="utf-8")
    j = tmp_path / "plan.json"
    j.write_text("{", encoding="utf-8")
    for path, code in ((y, "E_YAML_PARSE"), (j, "E_JSON_PARSE")):
        try:
            load_plan(str(path))
            assert False, "expected PlanLoadError"
        except PlanLoadError as e:
            assert e.code == code


def test_load_top_level_list(tmp_path):
    p = tmp_path / "plan.yaml"
    p.write_text("- 1\n- 2\n", encoding="utf-8")
    try:
        load_plan(str(p))
        assert False, "expected PlanLoadError"
    except PlanLoadError as e:
        assert e.code == "E_INVALID_TOP_LEVEL"


def test_dump_creates_parent_dirs(tmp_path):
    doc = {"schema_version": "1", "plan": {"id": "P", "title": "Plan"}}
    y = tmp_path / "out" / "plan.yaml"
    j = tmp_path / "out" / "plan.json"
    dump_plan_yaml(doc, str(y))
    dump_plan_json(doc, str(j))
    assert load_plan(str(y))["plan"] == doc["plan"]
    assert json.loads(j.read_text(encoding="utf-8")) == doc
