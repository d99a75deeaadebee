from datetime import date

from action_plan_engine.core.progress.board import group_by_status
from action_plan_engine.core.progress.due_dates import overdue_tasks, summarize_due, upcoming_tasks

TODAY = date(2025, 2, 1)


def test_upcoming_is_sorted_and_limited(make_task):
    tasks = [make_task(f"T{i}", due_date=date(2025, 2, 10 - i)) for i in range(7)]
    got = upcoming_tasks(tasks, TODAY)
    assert [t.id for t in got] == ["T6", "T5", "T4", "T3", "T2"]
    assert upcoming_tasks(tasks, TODAY, limit=0) == []


def test_due_today_is_upcoming_not_overdue(make_task):
    t = make_task("T", due_date=TODAY)
    assert upcoming_tasks([t], TODAY) == [t]
    assert overdue_tasks([t], TODAY) == []


def test_completed_and_undated_are_ignored(make_task):
    tasks = [
        make_task("done", status="completed", due_date=date(2025, 1, 1)),
        make_task("undated"),
        make_task("late", status="blocked", due_date=date(2025, 1, 1)),
    ]
    summary = summarize_due(tasks, TODAY)
    assert [t.id for t in summary.overdue] == ["late"]
    assert summary.upcoming == []


def test_basic_plan_due_summary(basic_hierarchy):
    summary = summarize_due(basic_hierarchy.iter_tasks(), TODAY, limit=1)
    assert [t.id for t in summary.upcoming] == ["T-3"]
    assert [t.id for t in summary.overdue] == ["T-2"]


def test_board_has_every_column(make_task):
    columns = group_by_status([make_task("A"), make_task("B", status="blocked")])
    assert list(columns) == ["pending", "in_progress", "completed", "blocked"]
    assert [t.id for t in columns["pending"]] == ["A"]
    assert columns["in_progress"] == []
