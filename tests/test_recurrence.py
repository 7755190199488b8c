# tests/test_recurrence.py

from datetime import date

from chronotask.models.recurrence_rule import RecurrenceRule, RecurrenceType
from chronotask.services.recurrence import (
    add_months,
    next_occurrence,
    nth_weekday_of_month,
    occurrences_between,
    to_python_weekday,
)

MONDAY = 1
TUESDAY = 2
FRIDAY = 5


def test_weekday_conversion_uses_sunday_zero() -> None:
    assert to_python_weekday(0) == 6  # Sunday
    assert to_python_weekday(MONDAY) == 0
    assert to_python_weekday(6) == 5  # Saturday


def test_add_months_rolls_over_year() -> None:
    assert add_months(date(2024, 11, 15), 3) == (2025, 2)
    assert add_months(date(2024, 1, 31), 12) == (2025, 1)


def test_none_rule_never_repeats() -> None:
    assert next_occurrence(date(2024, 1, 1), RecurrenceRule.none()) is None


def test_daily_with_interval() -> None:
    rule = RecurrenceRule(type=RecurrenceType.DAILY, interval=3)
    assert next_occurrence(date(2024, 1, 1), rule) == date(2024, 1, 4)


def test_weekly_monday_from_wednesday() -> None:
    rule = RecurrenceRule(type=RecurrenceType.WEEKLY, weekday=MONDAY)
    assert next_occurrence(date(2024, 1, 3), rule) == date(2024, 1, 8)


def test_weekly_on_anchor_weekday_moves_a_full_week() -> None:
    rule = RecurrenceRule(type=RecurrenceType.WEEKLY, weekday=MONDAY)
    assert next_occurrence(date(2024, 1, 8), rule) == date(2024, 1, 15)


def test_weekly_interval_skips_weeks() -> None:
    rule = RecurrenceRule(type=RecurrenceType.WEEKLY, interval=2, weekday=MONDAY)
    assert next_occurrence(date(2024, 1, 3), rule) == date(2024, 1, 15)


def test_weekly_without_weekday_keeps_anchor_weekday() -> None:
    rule = RecurrenceRule(type=RecurrenceType.WEEKLY)
    assert next_occurrence(date(2024, 1, 3), rule) == date(2024, 1, 10)


def test_monthly_day_31_clamps_and_recovers() -> None:
    rule = RecurrenceRule(type=RecurrenceType.MONTHLY, month_day=31)
    april = next_occurrence(date(2024, 3, 31), rule)
    assert april == date(2024, 4, 30)
    assert next_occurrence(april, rule) == date(2024, 5, 31)


def test_monthly_defaults_to_anchor_day() -> None:
    rule = RecurrenceRule(type=RecurrenceType.MONTHLY, interval=3)
    assert next_occurrence(date(2024, 11, 15), rule) == date(2025, 2, 15)


def test_monthly_day_29_in_leap_and_common_years() -> None:
    rule = RecurrenceRule(type=RecurrenceType.MONTHLY, month_day=29)
    assert next_occurrence(date(2024, 1, 29), rule) == date(2024, 2, 29)
    assert next_occurrence(date(2023, 1, 29), rule) == date(2023, 2, 28)


def test_monthly_weekday_second_tuesday() -> None:
    rule = RecurrenceRule(type=RecurrenceType.MONTHLY_WEEKDAY, weekday=TUESDAY, week_of_month=2)
    assert next_occurrence(date(2023, 12, 12), rule) == date(2024, 1, 9)


def test_last_weekday_in_month_with_four_occurrences() -> None:
    # February 2023 has four Fridays: 3, 10, 17, 24
    rule = RecurrenceRule(type=RecurrenceType.MONTHLY_WEEKDAY, weekday=FRIDAY, week_of_month=5)
    assert next_occurrence(date(2023, 1, 27), rule) == date(2023, 2, 24)


def test_last_weekday_in_month_with_five_occurrences() -> None:
    rule = RecurrenceRule(type=RecurrenceType.MONTHLY_WEEKDAY, weekday=FRIDAY, week_of_month=5)
    assert next_occurrence(date(2023, 2, 24), rule) == date(2023, 3, 31)


def test_nth_weekday_of_month() -> None:
    assert nth_weekday_of_month(2024, 1, MONDAY, 1) == date(2024, 1, 1)
    assert nth_weekday_of_month(2024, 1, 0, 5) == date(2024, 1, 28)


def test_monthly_last_day_handles_leap_year() -> None:
    rule = RecurrenceRule(type=RecurrenceType.MONTHLY_LAST_DAY)
    assert next_occurrence(date(2024, 1, 31), rule) == date(2024, 2, 29)
    assert next_occurrence(date(2024, 2, 29), rule) == date(2024, 3, 31)
    assert next_occurrence(date(2023, 1, 31), rule) == date(2023, 2, 28)


def test_end_date_terminates_series() -> None:
    ending = RecurrenceRule(type=RecurrenceType.DAILY, end_date=date(2024, 1, 2))
    assert next_occurrence(date(2024, 1, 1), ending) is None

    open_ended = RecurrenceRule(type=RecurrenceType.DAILY, end_date=date(2024, 1, 3))
    assert next_occurrence(date(2024, 1, 1), open_ended) == date(2024, 1, 2)


def test_next_occurrence_is_deterministic() -> None:
    rule = RecurrenceRule(type=RecurrenceType.MONTHLY_WEEKDAY, weekday=FRIDAY, week_of_month=5)
    anchor = date(2023, 1, 27)
    assert next_occurrence(anchor, rule) == next_occurrence(anchor, rule)


def test_occurrences_between_chains_and_stops_at_end() -> None:
    rule = RecurrenceRule(type=RecurrenceType.DAILY, end_date=date(2024, 1, 4))
    assert occurrences_between(date(2024, 1, 1), rule, limit=10) == [date(2024, 1, 2), date(2024, 1, 3)]

    unbounded = RecurrenceRule(type=RecurrenceType.WEEKLY, weekday=MONDAY)
    assert occurrences_between(date(2024, 1, 3), unbounded, until=date(2024, 1, 20)) == [
        date(2024, 1, 8),
        date(2024, 1, 15),
    ]
