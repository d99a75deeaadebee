from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from action_plan_engine.core.config import ConfigError, EngineConfig, load_config, setup_logging
from action_plan_engine.core.engine import PlanEngine
from action_plan_engine.core.errors import PlanError, PlanLoadError, PlanValidationError
from action_plan_engine.core.io.load_plan import dump_plan_json, dump_plan_yaml, load_plan
from action_plan_engine.core.io.plan_document import (
    hierarchy_to_document,
    load_into_store,
    summarize_plan,
    task_to_dict,
    validate_plan_document,
)
from action_plan_engine.core.model import TASK_STATUSES, PlanHierarchy, Task
from action_plan_engine.core.store.memory_store import InMemoryEntityStore

app = typer.Typer(add_completion=False, no_args_is_help=True)
console = Console()


@dataclass
class _Opened:
    path: str
    hierarchy: PlanHierarchy
    engine: PlanEngine


@app.callback()
def _callback(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(None, "--config", help="YAML file with engine settings"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG|INFO|WARNING|ERROR"),
) -> None:
    """Action plan engine CLI."""
    try:
        cfg = load_config(config)
    except FileNotFoundError:
        _print_errors(
            [
                PlanLoadError(
                    code="E_CONFIG_FILE_NOT_FOUND",
                    message=f"config file not found: {config}",
                    path="config",
                )
            ]
        )
        raise typer.Exit(code=1)
    except ConfigError as e:
        _print_errors([PlanValidationError(code="E_CONFIG_INVALID", message=str(e), path="config")])
        raise typer.Exit(code=2)

    setup_logging(log_level or cfg.log_level)
    ctx.obj = cfg


@app.command("validate")
def validate(
    path: str = typer.Argument(..., help="Path to a plan file (.yaml/.yml/.json)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Validate a plan document."""
    _check_format(format, "E_VALIDATE_UNKNOWN_FORMAT")

    try:
        document = load_plan(path)
    except PlanLoadError as e:
        if format == "json":
            _emit_json("validate", ok=False, errors=[e], exit_code=1)
        _print_errors([e])
        raise typer.Exit(code=1)

    hierarchy, errors = validate_plan_document(document)
    if errors or hierarchy is None:
        if format == "json":
            _emit_json("validate", ok=False, errors=list(errors), exit_code=2)
        _print_errors(list(errors))
        raise typer.Exit(code=2)

    if format == "text":
        typer.echo(summarize_plan(hierarchy))
        return

    _emit_json(
        "validate",
        ok=True,
        errors=[],
        exit_code=0,
        summary={
            "plan_id": hierarchy.plan.id,
            "area_count": len(hierarchy.areas),
            "task_count": sum(1 for _ in hierarchy.iter_tasks()),
        },
    )


@app.command("lint")
def lint(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Path to a plan file (.yaml/.yml/.json)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Lint a plan (dependency edges, completion stamps, ordering, date ranges)."""
    _check_format(format, "E_LINT_UNKNOWN_FORMAT")
    opened = _open(ctx, path, "lint", format)

    errors: list[PlanError] = list(opened.engine.lint_plan(opened.hierarchy.plan.id))
    errors = [
        PlanValidationError(code=e.code, message=e.message, file=path, path=e.path) for e in errors
    ]

    if format == "json":
        _emit_json("lint", ok=not errors, errors=errors, exit_code=2 if errors else 0)
    if errors:
        _print_errors(errors)
        raise typer.Exit(code=2)
    typer.echo("OK: lint passed")


@app.command("progress")
def progress(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Path to a plan file (.yaml/.yml/.json)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Show task counts and completion percentages per area and for the plan."""
    _check_format(format, "E_PROGRESS_UNKNOWN_FORMAT")
    opened = _open(ctx, path, "progress", format)
    result = opened.engine.get_plan_progress(opened.hierarchy.plan.id)

    if format == "json":
        typer.echo(json.dumps(result.to_dict(), indent=2, sort_keys=True))
        return

    table = Table(title=f"{opened.hierarchy.plan.title} ({result.overall_progress}%)")
    for col in ("Area", "Total", "Completed", "In progress", "Pending", "Blocked", "Progress"):
        table.add_column(col)
    for a in result.by_area:
        table.add_row(
            a.area_name,
            str(a.total),
            str(a.completed),
            str(a.in_progress),
            str(a.pending),
            str(a.blocked),
            f"{a.progress}%",
        )
    table.add_row(
        "All areas",
        str(result.total_tasks),
        str(result.completed_tasks),
        str(result.in_progress_tasks),
        str(result.pending_tasks),
        str(result.blocked_tasks),
        f"{result.overall_progress}%",
    )
    console.print(table)


@app.command("timeline")
def timeline(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Path to a plan file (.yaml/.yml/.json)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Place dated tasks on a month-aligned day axis."""
    _check_format(format, "E_TIMELINE_UNKNOWN_FORMAT")
    opened = _open(ctx, path, "timeline", format)
    model = opened.engine.get_plan_timeline(opened.hierarchy.plan.id)

    if format == "json":
        typer.echo(json.dumps(model.to_dict(), indent=2, sort_keys=True))
        return

    if not model.bars:
        typer.echo("No tasks with both start_date and due_date.")
        return

    assert model.origin is not None and model.end is not None
    typer.echo(f"Axis: {model.origin.isoformat()} .. {model.end.isoformat()} ({model.total_days} days)")
    typer.echo("Months: " + ", ".join(f"{m.label} ({m.days})" for m in model.months))
    for bar in model.bars:
        flags: list[str] = []
        if bar.malformed:
            flags.append("start after due")
        if bar.predecessor_id:
            flags.append(f"after {bar.predecessor_id}")
        if bar.overlaps_predecessor:
            flags.append("overlaps predecessor")
        suffix = f" [{'; '.join(flags)}]" if flags else ""
        typer.echo(
            f"- {bar.task_id}: day {bar.start_offset_days} +{bar.duration_days}d "
            f"({bar.left:.1%} / {bar.width:.1%}){suffix}"
        )
    if model.excluded_task_ids:
        typer.echo(f"Undated: {', '.join(model.excluded_task_ids)}")


@app.command("board")
def board(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Path to a plan file (.yaml/.yml/.json)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Group tasks into status columns."""
    _check_format(format, "E_BOARD_UNKNOWN_FORMAT")
    opened = _open(ctx, path, "board", format)
    columns = opened.engine.get_status_board(opened.hierarchy.plan.id)

    if format == "json":
        payload = {status: [t.id for t in tasks] for status, tasks in columns.items()}
        typer.echo(json.dumps(payload, indent=2))
        return

    table = Table()
    for status in TASK_STATUSES:
        table.add_column(f"{status} ({len(columns[status])})")
    depth = max((len(v) for v in columns.values()), default=0)
    for i in range(depth):
        table.add_row(*[columns[s][i].id if i < len(columns[s]) else "" for s in TASK_STATUSES])
    console.print(table)


@app.command("due")
def due(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Path to a plan file (.yaml/.yml/.json)"),
    today: Optional[str] = typer.Option(None, "--today", help="Reference date YYYY-MM-DD (default: today)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """List upcoming and overdue open tasks."""
    _check_format(format, "E_DUE_UNKNOWN_FORMAT")
    day: Optional[date] = None
    if today is not None:
        try:
            day = date.fromisoformat(today)
        except ValueError:
            _print_errors(
                [PlanValidationError(code="E_DUE_INVALID_DATE", message=f"invalid date: {today}", path="today")]
            )
            raise typer.Exit(code=2)

    opened = _open(ctx, path, "due", format)
    summary = opened.engine.get_due_summary(opened.hierarchy.plan.id, day)

    if format == "json":
        payload = {
            "today": summary.today.isoformat(),
            "upcoming": [_task_brief(t) for t in summary.upcoming],
            "overdue": [_task_brief(t) for t in summary.overdue],
        }
        typer.echo(json.dumps(payload, indent=2))
        return

    typer.echo(f"Upcoming ({len(summary.upcoming)}):")
    for t in summary.upcoming:
        typer.echo(f"- {t.id} due {t.due_date} [{t.status}] {t.title}")
    typer.echo(f"Overdue ({len(summary.overdue)}):")
    for t in summary.overdue:
        typer.echo(f"- {t.id} due {t.due_date} [{t.status}] {t.title}")


@app.command("ready")
def ready(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Path to a plan file (.yaml/.yml/.json)"),
) -> None:
    """List open tasks whose predecessor (if any) is completed."""
    opened = _open(ctx, path, "ready")
    for t in opened.engine.get_ready_tasks(opened.hierarchy.plan.id):
        typer.echo(f"- {t.id} [{t.status}] {t.title}")


@app.command("set-status")
def set_status(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Path to a plan file (.yaml/.yml/.json)"),
    task_id: str = typer.Argument(..., help="Task id"),
    status: str = typer.Argument(..., help="pending|in_progress|completed|blocked"),
    out: Optional[str] = typer.Option(None, "--out", help="Write the updated plan here instead of in place"),
) -> None:
    """Change a task's status and save the plan."""
    opened = _open(ctx, path, "set-status")
    try:
        task = opened.engine.set_task_status(task_id, status)
    except PlanError as e:
        _print_errors([_located(e, path)])
        raise typer.Exit(code=2)
    _save(opened, out)
    typer.echo(f"OK: {task.id} is {task.status}")


@app.command("set-dependency")
def set_dependency(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Path to a plan file (.yaml/.yml/.json)"),
    task_id: str = typer.Argument(..., help="Task id"),
    predecessor_id: Optional[str] = typer.Argument(None, help="Predecessor task id (omit with --clear)"),
    clear: bool = typer.Option(False, "--clear", help="Remove the task's predecessor"),
    out: Optional[str] = typer.Option(None, "--out", help="Write the updated plan here instead of in place"),
) -> None:
    """Set or clear a task's single predecessor and save the plan."""
    if clear == (predecessor_id is not None):
        _print_errors(
            [
                PlanValidationError(
                    code="E_SET_DEPENDENCY_USAGE",
                    message="pass a predecessor id or --clear, not both",
                    path="predecessor_id",
                )
            ]
        )
        raise typer.Exit(code=2)

    opened = _open(ctx, path, "set-dependency")
    try:
        task = opened.engine.set_task_dependency(task_id, None if clear else predecessor_id)
    except PlanError as e:
        _print_errors([_located(e, path)])
        raise typer.Exit(code=2)
    _save(opened, out)
    typer.echo(f"OK: {task.id} depends on {task.depends_on or 'nothing'}")


@app.command("delete-task")
def delete_task(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Path to a plan file (.yaml/.yml/.json)"),
    task_id: str = typer.Argument(..., help="Task id"),
    out: Optional[str] = typer.Option(None, "--out", help="Write the updated plan here instead of in place"),
) -> None:
    """Delete a task; dependents lose their predecessor unless the config blocks it."""
    opened = _open(ctx, path, "delete-task")
    try:
        result = opened.engine.delete_task(task_id)
    except PlanError as e:
        _print_errors([_located(e, path)])
        raise typer.Exit(code=2)
    _save(opened, out)
    if result.cleared_dependents:
        typer.echo(
            f"WARN: cleared depends_on of: {', '.join(result.cleared_dependents)}",
            err=True,
        )
    typer.echo(f"OK: deleted {result.task_id}")


def _open(ctx: typer.Context, path: str, command: str, format: str = "text") -> _Opened:
    cfg = ctx.obj if isinstance(ctx.obj, EngineConfig) else EngineConfig()
    try:
        document = load_plan(path)
    except PlanLoadError as e:
        if format == "json":
            _emit_json(command, ok=False, errors=[e], exit_code=1)
        _print_errors([e])
        raise typer.Exit(code=1)

    hierarchy, errors = validate_plan_document(document)
    if errors or hierarchy is None:
        if format == "json":
            _emit_json(command, ok=False, errors=list(errors), exit_code=2)
        _print_errors(list(errors))
        raise typer.Exit(code=2)

    store = InMemoryEntityStore()
    load_into_store(hierarchy, store)
    return _Opened(path=path, hierarchy=hierarchy, engine=PlanEngine(store, cfg))


def _save(opened: _Opened, out: Optional[str]) -> None:
    target = out or opened.path
    document = hierarchy_to_document(opened.engine.get_plan_hierarchy(opened.hierarchy.plan.id))
    if target.lower().endswith(".json"):
        dump_plan_json(document, target)
    else:
        dump_plan_yaml(document, target)


def _task_brief(t: Task) -> dict[str, Any]:
    brief = task_to_dict(t)
    return {k: brief[k] for k in ("id", "title", "status", "due_date") if k in brief}


def _located(e: PlanError, path: str) -> PlanError:
    return type(e)(code=e.code, message=e.message, file=e.file or path, path=e.path)


def _check_format(format: str, code: str) -> None:
    if format not in ("text", "json"):
        err = PlanValidationError(
            code=code,
            message=f"unknown format: {format} (choose one of: text, json)",
            file=None,
            path="format",
        )
        _print_errors([err])
        raise typer.Exit(code=2)


def _emit_json(
    command: str,
    *,
    ok: bool,
    errors: list[PlanError],
    exit_code: int,
    summary: Optional[dict[str, Any]] = None,
) -> None:
    def _to_item(e: PlanError) -> dict[str, Any]:
        source = "load" if isinstance(e, PlanLoadError) else "lint" if e.code.startswith("L_") else "validate"
        return {
            "code": e.code,
            "message": e.message,
            "file": e.file,
            "path": e.path,
            "severity": "error",
            "source": source,
        }

    payload = {
        "tool": "planengine",
        "command": command,
        "ok": ok,
        "error_count": len(errors),
        "errors": [_to_item(e) for e in errors],
        "summary": summary,
    }
    typer.echo(json.dumps(payload, indent=2, sort_keys=True))
    raise typer.Exit(code=exit_code)


def _print_errors(errors: list[PlanError]) -> None:
    errors_sorted = sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))
    for e in errors_sorted:
        typer.echo(str(e), err=True)


def main() -> None:
    app(prog_name="planengine")


cli = typer.main.get_command(app)

if __name__ == "__main__":
    main()
