"""Recurrence Rule value object."""
from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class RecurrenceType(str, Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    MONTHLY_WEEKDAY = "monthly_weekday"
    MONTHLY_LAST_DAY = "monthly_last_day"


# week_of_month value meaning "last such weekday in the month"
LAST_WEEK_OF_MONTH = 5


class RecurrenceRule(BaseModel):
    """How a task repeats.

    Weekdays use Sunday=0 .. Saturday=6. Range and cross-field checks live in
    RecurrenceValidator; this model only fixes the shape.
    """

    model_config = ConfigDict(frozen=True)

    type: RecurrenceType = RecurrenceType.NONE
    interval: int = 1
    weekday: Optional[int] = None
    month_day: Optional[int] = None
    week_of_month: Optional[int] = None
    end_date: Optional[date] = None
    completion_based: bool = False

    @property
    def is_recurring(self) -> bool:
        return self.type != RecurrenceType.NONE

    @classmethod
    def none(cls) -> "RecurrenceRule":
        return cls()
