"""
Cadence model for the task summary scheduler.

Computes cadence boundaries (naive UTC datetimes) for the supported
frequencies. Local-time boundaries go through pytz; DST transitions are
approximated by pytz's normalisation.
"""

from datetime import datetime, time, timedelta
from enum import Enum

import pytz

from chronotask.config import SUMMARY_HOUR
from chronotask.exceptions import ValidationError


class Frequency(str, Enum):
    HOURLY_1 = "1h"
    HOURLY_2 = "2h"
    HOURLY_4 = "4h"
    HOURLY_8 = "8h"
    HOURLY_12 = "12h"
    DAILY = "daily"
    WEEKDAYS = "weekdays"
    WEEKLY = "weekly"


_HOURLY_STEPS = {
    Frequency.HOURLY_1: 1,
    Frequency.HOURLY_2: 2,
    Frequency.HOURLY_4: 4,
    Frequency.HOURLY_8: 8,
    Frequency.HOURLY_12: 12,
}

# Python weekday numbers (Monday=0)
_SATURDAY = 5
_MONDAY = 0


def parse_frequency(value: str) -> Frequency:
    try:
        return Frequency(value)
    except ValueError as e:
        allowed = ", ".join(f.value for f in Frequency)
        raise ValidationError(f"Frequency must be one of: {allowed}, got: {value}") from e


def get_timezone(name: str):
    try:
        return pytz.timezone(name or "UTC")
    except pytz.UnknownTimeZoneError as e:
        raise ValidationError(f"Unknown timezone: {name}") from e


def _to_local(moment: datetime, tz) -> datetime:
    return pytz.utc.localize(moment).astimezone(tz)


def _to_utc(local: datetime) -> datetime:
    return local.astimezone(pytz.utc).replace(tzinfo=None)


def _localize(tz, day, hour: int) -> datetime:
    return tz.localize(datetime.combine(day, time(hour=hour)))


def first_boundary(frequency: Frequency, now: datetime, timezone_name: str = "UTC",
                   summary_hour: int = SUMMARY_HOUR) -> datetime:
    """
    First cadence boundary strictly after `now`, used when the scheduler is enabled.

    Hourly frequencies align to local hours divisible by the step; daily,
    weekdays and weekly land on `summary_hour` local time (weekly on Monday).
    """
    tz = get_timezone(timezone_name)
    local_now = _to_local(now, tz)

    if frequency in _HOURLY_STEPS:
        step = _HOURLY_STEPS[frequency]
        hour = (local_now.hour // step + 1) * step
        day = local_now.date()
        if hour >= 24:
            day, hour = day + timedelta(days=1), 0
        return _to_utc(_localize(tz, day, hour))

    day = local_now.date()
    candidate = _localize(tz, day, summary_hour)
    if candidate <= local_now:
        day = day + timedelta(days=1)

    if frequency == Frequency.WEEKDAYS:
        while day.weekday() >= _SATURDAY:
            day = day + timedelta(days=1)
    elif frequency == Frequency.WEEKLY:
        day = day + timedelta(days=(_MONDAY - day.weekday()) % 7)

    return _to_utc(_localize(tz, day, summary_hour))


def step_boundary(frequency: Frequency, boundary: datetime, timezone_name: str = "UTC") -> datetime:
    """The boundary immediately after `boundary` for this cadence."""
    if frequency in _HOURLY_STEPS:
        return boundary + timedelta(hours=_HOURLY_STEPS[frequency])
    if frequency == Frequency.DAILY:
        return boundary + timedelta(days=1)
    if frequency == Frequency.WEEKLY:
        return boundary + timedelta(weeks=1)

    tz = get_timezone(timezone_name)
    candidate = boundary + timedelta(days=1)
    while _to_local(candidate, tz).weekday() >= _SATURDAY:
        candidate = candidate + timedelta(days=1)
    return candidate


def advance_boundary(frequency: Frequency, boundary: datetime, now: datetime, timezone_name: str = "UTC") -> datetime:
    """
    Step from a fired boundary to the first boundary after `now`.

    Missed boundaries (e.g. after downtime) are skipped, never replayed.
    """
    upcoming = step_boundary(frequency, boundary, timezone_name)
    while upcoming <= now:
        upcoming = step_boundary(frequency, upcoming, timezone_name)
    return upcoming
