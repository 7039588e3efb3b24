"""
Working-day arithmetic.
Covers: weekday defaults, weekend opt-in, holiday skipping, Sunday week start.
"""
from datetime import date
from types import SimpleNamespace

from crew_command.services.working_days import (
    duration_days, is_working_day, iter_dates, task_working_days, week_dates, week_start_sunday, working_days,
)

# 2026-01-05 is a Monday
MON = date(2026, 1, 5)
SUN_END = date(2026, 1, 11)


def test_iter_dates_inclusive_and_empty_when_reversed():
    assert list(iter_dates(MON, MON)) == [MON]
    assert len(list(iter_dates(MON, SUN_END))) == 7
    assert list(iter_dates(SUN_END, MON)) == []


def test_weekdays_only_by_default():
    days = working_days(MON, SUN_END)
    assert days == [date(2026, 1, d) for d in range(5, 10)]


def test_saturday_and_sunday_opt_in_separately():
    with_sat = working_days(MON, SUN_END, include_saturday=True)
    assert date(2026, 1, 10) in with_sat
    assert date(2026, 1, 11) not in with_sat
    with_sun = working_days(MON, SUN_END, include_sunday=True)
    assert date(2026, 1, 11) in with_sun
    assert date(2026, 1, 10) not in with_sun
    assert len(working_days(MON, SUN_END, include_saturday=True, include_sunday=True)) == 7


def test_holiday_skipped_unless_included():
    holiday = date(2026, 1, 7)
    assert not is_working_day(holiday, holiday_dates={holiday})
    assert is_working_day(holiday, include_holidays=True, holiday_dates={holiday})
    assert holiday not in working_days(MON, SUN_END, holiday_dates=[holiday])
    assert len(working_days(MON, SUN_END, holiday_dates=[holiday])) == 4


def test_holiday_on_included_saturday_still_skipped():
    sat = date(2026, 1, 10)
    assert not is_working_day(sat, include_saturday=True, holiday_dates={sat})
    assert is_working_day(sat, include_saturday=True, include_holidays=True, holiday_dates={sat})


def test_task_working_days_uses_task_flags():
    task = SimpleNamespace(
        start_date=MON, end_date=SUN_END, include_saturday=True, include_sunday=False, include_holidays=False,
    )
    days = task_working_days(task, {date(2026, 1, 6)})
    assert days == [date(2026, 1, 5), date(2026, 1, 7), date(2026, 1, 8), date(2026, 1, 9), date(2026, 1, 10)]


def test_task_without_dates_has_no_working_days():
    task = SimpleNamespace(start_date=None, end_date=MON, include_saturday=False, include_sunday=False, include_holidays=False)
    assert task_working_days(task) == []


def test_duration_counts_both_ends():
    assert duration_days(MON, MON) == 1
    assert duration_days(MON, SUN_END) == 7


def test_week_starts_on_sunday():
    assert week_start_sunday(date(2026, 1, 4)) == date(2026, 1, 4)
    assert week_start_sunday(MON) == date(2026, 1, 4)
    assert week_start_sunday(date(2026, 1, 10)) == date(2026, 1, 4)
    assert week_dates(date(2026, 1, 4))[-1] == date(2026, 1, 10)
