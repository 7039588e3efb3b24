"""Gantt / calendar layout: a 4-week window of day columns and one bar per task."""
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from crew_command.services.staffing import task_staffing
from crew_command.services.working_days import (
    duration_days, is_weekend, iter_dates, task_working_days, week_start_sunday,
)

GANTT_WINDOW_DAYS = 28
TIMELINE_PADDING_DAYS = 3


def window_for(anchor: date) -> tuple:
    """28-day window starting on the Sunday of anchor's week."""
    start = week_start_sunday(anchor)
    return start, start + timedelta(days=GANTT_WINDOW_DAYS - 1)


def timeline_range(tasks: Sequence, today: Optional[date] = None) -> tuple:
    """Earliest start - 3 days to latest end + 3 days; today..today+28 when no task has dates."""
    dated = [t for t in tasks if t.start_date and t.end_date]
    if not dated:
        today = today or date.today()
        return today, today + timedelta(days=GANTT_WINDOW_DAYS)
    start = min(t.start_date for t in dated) - timedelta(days=TIMELINE_PADDING_DAYS)
    end = max(t.end_date for t in dated) + timedelta(days=TIMELINE_PADDING_DAYS)
    return start, end


def visible_days(
    start: date,
    end: date,
    include_saturday: bool = False,
    include_sunday: bool = False,
) -> List[date]:
    """Day columns of the view; weekend columns are hidden unless the view opts in."""
    days = []
    for d in iter_dates(start, end):
        if d.weekday() == 5 and not include_saturday:
            continue
        if d.weekday() == 6 and not include_sunday:
            continue
        days.append(d)
    return days


def bar_position(task_start: date, task_end: date, columns: List[date]) -> Optional[Dict[str, int]]:
    """Column offset and span of a bar clipped to the visible columns; None when nothing is visible."""
    indexes = [i for i, d in enumerate(columns) if task_start <= d <= task_end]
    if not indexes:
        return None
    return {"offset": indexes[0], "span": indexes[-1] - indexes[0] + 1}


def build_gantt(
    tasks: Iterable,
    assignments_by_task: Dict[int, list],
    window_start: date,
    window_end: date,
    include_saturday: bool = False,
    include_sunday: bool = False,
    holidays: Optional[Dict[date, str]] = None,
    today: Optional[date] = None,
) -> Dict:
    holidays = holidays or {}
    today = today or date.today()
    holiday_dates = set(holidays)
    columns = visible_days(window_start, window_end, include_saturday, include_sunday)
    rows = []
    for task in tasks:
        if not task.start_date or not task.end_date:
            continue
        if task.end_date < window_start or task.start_date > window_end:
            continue
        staffing = task_staffing(task, assignments_by_task.get(task.id, []))
        active_days = [
            d for d in task_working_days(task, holiday_dates)
            if window_start <= d <= window_end and d in columns
        ]
        rows.append({
            "id": task.id,
            "name": task.name,
            "location": task.location,
            "job_site_id": task.job_site_id,
            "status": task.status,
            "start_date": task.start_date,
            "end_date": task.end_date,
            "duration": duration_days(task.start_date, task.end_date),
            "working_days": active_days,
            "staffing_status": staffing["status"],
            "color": staffing["color"],
            "assigned_count": staffing["assigned_total"],
            "required_count": staffing["required_total"],
            "bar": bar_position(task.start_date, task.end_date, columns),
        })
    rows.sort(key=lambda r: (r["start_date"], r["id"]))
    return {
        "window_start": window_start,
        "window_end": window_end,
        "days": [
            {
                "date": d,
                "is_weekend": is_weekend(d),
                "is_today": d == today,
                "holiday": holidays.get(d),
            }
            for d in columns
        ],
        "tasks": rows,
    }
