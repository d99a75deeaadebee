"""Place dated tasks on a whole-month day axis.

The projection is a picture of the stored dates. It never reschedules a task
to satisfy its predecessor; overlaps are only annotated.
"""
from __future__ import annotations

import calendar
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Iterable, Optional

from action_plan_engine.core.model import Task


@dataclass(frozen=True)
class MonthHeader:
    label: str
    year: int
    month: int
    days: int


@dataclass(frozen=True)
class TimelineBar:
    task_id: str
    title: str
    status: str
    priority: str
    start_date: date
    due_date: date
    start_offset_days: int
    duration_days: int
    left: float
    width: float
    malformed: bool = False
    predecessor_id: Optional[str] = None
    overlaps_predecessor: bool = False


@dataclass(frozen=True)
class TimelineModel:
    origin: Optional[date] = None
    end: Optional[date] = None
    total_days: int = 0
    bars: list[TimelineBar] = field(default_factory=list)
    months: list[MonthHeader] = field(default_factory=list)
    excluded_task_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["origin"] = self.origin.isoformat() if self.origin else None
        payload["end"] = self.end.isoformat() if self.end else None
        for bar in payload["bars"]:
            bar["start_date"] = bar["start_date"].isoformat()
            bar["due_date"] = bar["due_date"].isoformat()
        return payload


def _month_end(d: date) -> date:
    return d.replace(day=calendar.monthrange(d.year, d.month)[1])


def _month_headers(origin: date, end: date) -> list[MonthHeader]:
    out: list[MonthHeader] = []
    cur = origin
    while cur <= end:
        days = calendar.monthrange(cur.year, cur.month)[1]
        out.append(
            MonthHeader(
                label=f"{calendar.month_name[cur.month]} {cur.year}",
                year=cur.year,
                month=cur.month,
                days=days,
            )
        )
        cur = date(cur.year + cur.month // 12, cur.month % 12 + 1, 1)
    return out


def project_timeline(tasks: Iterable[Task]) -> TimelineModel:
    items = list(tasks)
    dated = [t for t in items if t.start_date is not None and t.due_date is not None]
    excluded = [t.id for t in items if t.start_date is None or t.due_date is None]

    if not dated:
        return TimelineModel(excluded_task_ids=excluded)

    # A start after its due date still counts towards the span it covers.
    all_dates = [d for t in dated for d in (t.start_date, t.due_date)]  # type: ignore[misc]
    origin = min(all_dates).replace(day=1)
    end = _month_end(max(all_dates))
    total_days = (end - origin).days + 1

    by_id = {t.id: t for t in dated}
    bars: list[TimelineBar] = []
    for t in dated:
        start = t.start_date
        due = t.due_date
        assert start is not None and due is not None
        offset = (start - origin).days
        duration = (due - start).days + 1

        pred = by_id.get(t.depends_on) if t.depends_on else None
        overlaps = pred is not None and pred.due_date is not None and pred.due_date >= start

        bars.append(
            TimelineBar(
                task_id=t.id,
                title=t.title,
                status=t.status,
                priority=t.priority,
                start_date=start,
                due_date=due,
                start_offset_days=offset,
                duration_days=duration,
                left=offset / total_days,
                width=duration / total_days,
                malformed=duration <= 0,
                predecessor_id=pred.id if pred is not None else None,
                overlaps_predecessor=overlaps,
            )
        )

    return TimelineModel(
        origin=origin,
        end=end,
        total_days=total_days,
        bars=bars,
        months=_month_headers(origin, end),
        excluded_task_ids=excluded,
    )
