"""
Working-day arithmetic for tasks and calendar views.

Rules:
- Monday to Friday are working days.
- Saturday / Sunday count only when the task (or the view) opts in.
- A holiday is skipped unless include_holidays is set, whatever weekday it falls on.
All ranges are inclusive of both ends.
"""
from datetime import date, timedelta
from typing import Iterable, Iterator, List, Optional, Set

SATURDAY = 5
SUNDAY = 6


def iter_dates(start: date, end: date) -> Iterator[date]:
    """Every calendar day from start to end inclusive; empty when end < start."""
    d = start
    while d <= end:
        yield d
        d += timedelta(days=1)


def is_weekend(d: date) -> bool:
    return d.weekday() >= SATURDAY


def is_working_day(
    d: date,
    include_saturday: bool = False,
    include_sunday: bool = False,
    include_holidays: bool = False,
    holiday_dates: Optional[Set[date]] = None,
) -> bool:
    weekday = d.weekday()
    if weekday == SATURDAY and not include_saturday:
        return False
    if weekday == SUNDAY and not include_sunday:
        return False
    if not include_holidays and holiday_dates and d in holiday_dates:
        return False
    return True


def working_days(
    start: date,
    end: date,
    include_saturday: bool = False,
    include_sunday: bool = False,
    include_holidays: bool = False,
    holiday_dates: Optional[Iterable[date]] = None,
) -> List[date]:
    holidays = set(holiday_dates or ())
    return [
        d for d in iter_dates(start, end)
        if is_working_day(d, include_saturday, include_sunday, include_holidays, holidays)
    ]


def task_working_days(task, holiday_dates: Optional[Iterable[date]] = None) -> List[date]:
    """Working days of a task-like object (start_date, end_date and the three include flags)."""
    if task.start_date is None or task.end_date is None:
        return []
    return working_days(
        task.start_date,
        task.end_date,
        include_saturday=bool(task.include_saturday),
        include_sunday=bool(task.include_sunday),
        include_holidays=bool(task.include_holidays),
        holiday_dates=holiday_dates,
    )


def duration_days(start: date, end: date) -> int:
    """Calendar days covered, counting both ends."""
    return (end - start).days + 1


def week_start_sunday(d: date) -> date:
    """Sunday on or before d (weeks run Sunday to Saturday)."""
    return d - timedelta(days=(d.weekday() + 1) % 7)


def week_dates(sunday: date) -> List[date]:
    return [sunday + timedelta(days=i) for i in range(7)]
