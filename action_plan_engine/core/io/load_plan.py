from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import yaml

from action_plan_engine.core.errors import PlanLoadError


# suffix -> (parser, parse error code)
_PARSERS: dict[str, tuple[Callable[[str], Any], str]] = {
    ".yaml": (yaml.safe_load, "E_YAML_PARSE"),
    ".yml": (yaml.safe_load, "E_YAML_PARSE"),
    ".json": (json.loads, "E_JSON_PARSE"),
}


def load_plan(path: str) -> dict[str, Any]:
    """Read a plan document from a .yaml/.yml/.json file.

    Returns {"schema_version", "plan", "__file__"}. Values are passed through
    untouched; validate_plan_document checks their shape.
    """

    p = Path(path)
    if not p.exists():
        raise PlanLoadError(code="E_FILE_NOT_FOUND", message="file does not exist", file=str(p))

    parser = _PARSERS.get(p.suffix.lower())
    if parser is None:
        raise PlanLoadError(
            code="E_UNSUPPORTED_FORMAT",
            message=f"supported formats are {', '.join(sorted(_PARSERS))}",
            file=str(p),
        )
    parse, parse_code = parser

    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:  # pragma: no cover
        raise PlanLoadError(code="E_FILE_READ", message=str(e), file=str(p)) from e

    try:
        data = parse(text)
    except (yaml.YAMLError, ValueError) as e:
        raise PlanLoadError(code=parse_code, message=str(e), file=str(p)) from e

    if not isinstance(data, dict):
        raise PlanLoadError(
            code="E_INVALID_TOP_LEVEL",
            message="a plan document must be a mapping with schema_version and plan",
            file=str(p),
        )

    return {
        "schema_version": data.get("schema_version"),
        "plan": data.get("plan"),
        "__file__": str(p),
    }


def _prepare(path: str) -> Path:
    p = Path(path)
    if str(p.parent) not in (".", ""):
        p.parent.mkdir(parents=True, exist_ok=True)
    return p


def dump_plan_yaml(document: dict[str, Any], path: str) -> None:
    with open(_prepare(path), "w", encoding="utf-8") as f:
        yaml.safe_dump(document, f, sort_keys=False, default_flow_style=False, allow_unicode=True)


def dump_plan_json(document: dict[str, Any], path: str) -> None:
    _prepare(path).write_text(json.dumps(document, indent=2) + "\n", encoding="utf-8")
