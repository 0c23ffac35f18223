# occupancy_engine/services/recurrence_expander.py
from __future__ import annotations

import calendar
from datetime import date as date_type, datetime
from typing import NamedTuple

from dateutil.rrule import DAILY, FR, MO, SA, SU, TH, TU, WE, WEEKLY, YEARLY, rrule

from occupancy_engine.schemas.recurrence import (
    DateRangeDaily,
    DayHours,
    FixedDate,
    Interval,
    IntervalUnit,
    NthWeekday,
    RecurrenceSpec,
    Single,
    WeeklyDays,
    Weekday,
)

# Indexed by Weekday.number (Monday first, like date.weekday()).
_RRULE_WEEKDAYS = (MO, TU, WE, TH, FR, SA, SU)


class ExpandedDate(NamedTuple):
    """
    One concrete date produced by a recurrence.

    `hours` is only set for variants that carry their own per-day hours
    (`DateRangeDaily`); otherwise the rule's hours apply.
    """

    day: date_type
    hours: DayHours | None = None


def _year_bounds(year: int) -> tuple[datetime, datetime]:
    return datetime(year, 1, 1), datetime(year, 12, 31)


def _rrule_weekday(day: Weekday, nth: int | None = None):
    base = _RRULE_WEEKDAYS[day.number]
    return base if nth is None else base(nth)


def _dates(rule: rrule) -> list[date_type]:
    return [moment.date() for moment in rule]


def _expand_fixed_date(spec: FixedDate, year: int) -> list[ExpandedDate]:
    # Feb 30, Apr 31, ... exist in no year; rrule would scan to MAXYEAR for them.
    if spec.day > calendar.monthrange(2000, spec.month)[1]:
        return []
    first, last = _year_bounds(year)
    rule = rrule(YEARLY, dtstart=first, until=last, bymonth=spec.month, bymonthday=spec.day)
    return [ExpandedDate(day) for day in _dates(rule)]


def _expand_nth_weekday(spec: NthWeekday, year: int) -> list[ExpandedDate]:
    first, last = _year_bounds(year)
    rule = rrule(
        YEARLY,
        dtstart=first,
        until=last,
        bymonth=spec.month,
        byweekday=_rrule_weekday(spec.weekday, spec.occurrence),
    )
    return [ExpandedDate(day) for day in _dates(rule)]


def _expand_weekly_days(spec: WeeklyDays, year: int) -> list[ExpandedDate]:
    first, last = _year_bounds(year)
    rule = rrule(
        WEEKLY,
        dtstart=first,
        until=last,
        byweekday=[_rrule_weekday(day) for day in sorted(spec.days, key=lambda d: d.number)],
    )
    return [ExpandedDate(day) for day in _dates(rule)]


def _expand_date_range(spec: DateRangeDaily, year: int) -> list[ExpandedDate]:
    first, last = _year_bounds(year)
    start = max(datetime.combine(spec.start, datetime.min.time()), first)
    end = min(datetime.combine(spec.end, datetime.min.time()), last)
    if end < start:
        return []
    rule = rrule(DAILY, dtstart=start, until=end)
    return [ExpandedDate(day, spec.hours_for(day)) for day in _dates(rule)]


def _expand_interval(spec: Interval, year: int) -> list[ExpandedDate]:
    first, last = _year_bounds(year)
    anchor = datetime.combine(spec.anchor, datetime.min.time())
    if anchor > last:
        return []
    freq = WEEKLY if spec.unit == IntervalUnit.WEEKS else DAILY
    rule = rrule(freq, dtstart=anchor, until=last, interval=spec.every)
    return [ExpandedDate(moment.date()) for moment in rule.between(first, last, inc=True)]


def _expand_single(spec: Single, year: int) -> list[ExpandedDate]:
    return [ExpandedDate(spec.date)] if spec.date.year == year else []


def expand(spec: RecurrenceSpec, year: int) -> list[ExpandedDate]:
    """
    Expand a recurrence into the concrete dates it produces in `year`.

    Pure and deterministic: the same (spec, year) always yields the same
    ordered list. A variant that has no date in that year (5th Monday,
    Feb 30, a one-off in another year) yields an empty list rather than
    raising. Effective-window clipping is the caller's job.
    """
    if isinstance(spec, FixedDate):
        return _expand_fixed_date(spec, year)
    if isinstance(spec, NthWeekday):
        return _expand_nth_weekday(spec, year)
    if isinstance(spec, WeeklyDays):
        return _expand_weekly_days(spec, year)
    if isinstance(spec, DateRangeDaily):
        return _expand_date_range(spec, year)
    if isinstance(spec, Interval):
        return _expand_interval(spec, year)
    if isinstance(spec, Single):
        return _expand_single(spec, year)
    raise TypeError(f"Unsupported recurrence spec: {type(spec).__name__}")


def expand_dates(spec: RecurrenceSpec, year: int) -> list[date_type]:
    """
    Convenience wrapper returning only the dates.
    """
    return [item.day for item in expand(spec, year)]


def expand_between(
    spec: RecurrenceSpec,
    start: date_type,
    end: date_type,
) -> list[ExpandedDate]:
    """
    Expand every year overlapping [start, end] and keep dates inside it.
    """
    if end < start:
        return []

    results: list[ExpandedDate] = []
    for year in range(start.year, end.year + 1):
        results.extend(item for item in expand(spec, year) if start <= item.day <= end)
    return results
