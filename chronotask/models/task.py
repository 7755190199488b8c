"""Task model for SQLModel."""
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel

from chronotask.models.recurrence_rule import RecurrenceRule, RecurrenceType
from chronotask.utils.clock import utcnow


class TaskStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    ARCHIVED = "archived"


# Statuses from which a task can still be completed
OPEN_STATUSES = (TaskStatus.NOT_STARTED.value, TaskStatus.IN_PROGRESS.value)


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Task(SQLModel, table=True):
    """Task entity; a recurring series is a root task plus its spawned occurrences."""

    id: Optional[int] = Field(default=None, primary_key=True)
    profile_id: str = Field(index=True, max_length=100)
    name: str = Field(max_length=255, min_length=1)
    description: Optional[str] = Field(default=None)
    note: Optional[str] = Field(default=None)
    status: str = Field(default=TaskStatus.NOT_STARTED.value, max_length=20, index=True)
    priority: Optional[str] = Field(default=None, max_length=20)
    due_date: Optional[date] = Field(default=None, index=True)
    today: bool = Field(default=False)
    project_id: Optional[int] = Field(default=None, index=True)
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    completed_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))

    # Weak reference to the series root: no foreign key, deleting a root detaches children
    parent_task_id: Optional[int] = Field(default=None, index=True)
    # Anchor date this occurrence was computed from
    recurrence_anchor: Optional[date] = Field(default=None)
    # Occurrence spawned when this one was completed; a re-completion never spawns again
    spawned_task_id: Optional[int] = Field(default=None)

    # Embedded recurrence rule (canonical on roots, spawn-time copy on children)
    recurrence_type: str = Field(default=RecurrenceType.NONE.value, max_length=32)
    recurrence_interval: int = Field(default=1)
    recurrence_weekday: Optional[int] = Field(default=None)
    recurrence_month_day: Optional[int] = Field(default=None)
    recurrence_week_of_month: Optional[int] = Field(default=None)
    recurrence_end_date: Optional[date] = Field(default=None)
    completion_based: bool = Field(default=False)

    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))

    @property
    def recurrence_rule(self) -> RecurrenceRule:
        return RecurrenceRule(
            type=RecurrenceType(self.recurrence_type or RecurrenceType.NONE.value),
            interval=self.recurrence_interval or 1,
            weekday=self.recurrence_weekday,
            month_day=self.recurrence_month_day,
            week_of_month=self.recurrence_week_of_month,
            end_date=self.recurrence_end_date,
            completion_based=bool(self.completion_based),
        )

    def set_recurrence_rule(self, rule: RecurrenceRule) -> None:
        """Overwrite the embedded rule columns."""
        self.recurrence_type = rule.type.value
        self.recurrence_interval = rule.interval
        self.recurrence_weekday = rule.weekday
        self.recurrence_month_day = rule.month_day
        self.recurrence_week_of_month = rule.week_of_month
        self.recurrence_end_date = rule.end_date
        self.completion_based = rule.completion_based

    @property
    def is_root(self) -> bool:
        return self.parent_task_id is None

    def snapshot(self) -> Dict[str, Any]:
        """Field values tracked by the change ledger."""
        return {
            "name": self.name,
            "description": self.description,
            "note": self.note,
            "status": self.status,
            "priority": self.priority,
            "due_date": self.due_date,
            "today": self.today,
            "project_id": self.project_id,
            "tags": list(self.tags or []),
        }
