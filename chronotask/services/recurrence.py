"""
Recurrence engine.

Pure date arithmetic for the six supported recurrence shapes. Nothing here
touches the database or the clock.
"""

import calendar
from datetime import date, timedelta
from typing import List, Optional

from chronotask.models.recurrence_rule import LAST_WEEK_OF_MONTH, RecurrenceRule, RecurrenceType


def to_python_weekday(weekday: int) -> int:
    """Convert Sunday=0..Saturday=6 to Python's Monday=0..Sunday=6."""
    return (weekday + 6) % 7


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_months(anchor: date, months: int) -> tuple:
    """Return (year, month) `months` after the anchor's month."""
    index = anchor.year * 12 + (anchor.month - 1) + months
    return index // 12, index % 12 + 1


def nth_weekday_of_month(year: int, month: int, weekday: int, week_of_month: int) -> date:
    """
    Find the week_of_month-th `weekday` (Sunday=0) of a month.

    week_of_month 5 means the last such weekday, whether the month has four or
    five of them.
    """
    py_weekday = to_python_weekday(weekday)
    if week_of_month >= LAST_WEEK_OF_MONTH:
        last = date(year, month, last_day_of_month(year, month))
        return last - timedelta(days=(last.weekday() - py_weekday) % 7)

    first = date(year, month, 1)
    first_match = first + timedelta(days=(py_weekday - first.weekday()) % 7)
    return first_match + timedelta(weeks=week_of_month - 1)


def _next_weekly(anchor: date, rule: RecurrenceRule) -> date:
    if rule.weekday is None:
        return anchor + timedelta(weeks=rule.interval)
    days_ahead = (to_python_weekday(rule.weekday) - anchor.weekday()) % 7 or 7
    return anchor + timedelta(days=days_ahead) + timedelta(weeks=rule.interval - 1)


def _next_monthly(anchor: date, rule: RecurrenceRule) -> date:
    year, month = add_months(anchor, rule.interval)
    day = rule.month_day or anchor.day
    return date(year, month, min(day, last_day_of_month(year, month)))


def _next_monthly_weekday(anchor: date, rule: RecurrenceRule) -> date:
    year, month = add_months(anchor, rule.interval)
    return nth_weekday_of_month(year, month, rule.weekday, rule.week_of_month)


def _next_monthly_last_day(anchor: date, rule: RecurrenceRule) -> date:
    year, month = add_months(anchor, rule.interval)
    return date(year, month, last_day_of_month(year, month))


_CALCULATORS = {
    RecurrenceType.DAILY: lambda anchor, rule: anchor + timedelta(days=rule.interval),
    RecurrenceType.WEEKLY: _next_weekly,
    RecurrenceType.MONTHLY: _next_monthly,
    RecurrenceType.MONTHLY_WEEKDAY: _next_monthly_weekday,
    RecurrenceType.MONTHLY_LAST_DAY: _next_monthly_last_day,
}


def next_occurrence(anchor: date, rule: RecurrenceRule) -> Optional[date]:
    """
    Calculate the next date satisfying the rule strictly after the anchor.

    Args:
        anchor: Due date or completion date, depending on rule.completion_based
        rule: A validated recurrence rule

    Returns:
        The next date, or None when the rule does not repeat or the candidate
        falls on or after rule.end_date
    """
    calculate = _CALCULATORS.get(rule.type)
    if calculate is None:
        return None

    candidate = calculate(anchor, rule)
    if candidate <= anchor:
        return None
    if rule.end_date is not None and candidate >= rule.end_date:
        return None
    return candidate


def occurrences_between(start: date, rule: RecurrenceRule, until: Optional[date] = None, limit: int = 10) -> List[date]:
    """Preview the upcoming occurrences after `start`, chaining next_occurrence."""
    dates: List[date] = []
    current = start
    while len(dates) < limit:
        upcoming = next_occurrence(current, rule)
        if upcoming is None or (until is not None and upcoming > until):
            break
        dates.append(upcoming)
        current = upcoming
    return dates
