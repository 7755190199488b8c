"""Task schemas for the HTTP adapter."""
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from chronotask.models.recurrence_rule import RecurrenceType


class RecurrenceRuleIn(BaseModel):
    """Recurrence settings as submitted by the task form."""
    type: RecurrenceType = RecurrenceType.NONE
    interval: int = Field(default=1, ge=1, le=999)
    weekday: Optional[int] = Field(None, ge=0, le=6)  # 0=Sunday..6=Saturday
    month_day: Optional[int] = Field(None, ge=1, le=31)
    week_of_month: Optional[int] = Field(None, ge=1, le=5)  # 5 = last
    end_date: Optional[date] = None
    completion_based: bool = False


class TaskCreate(BaseModel):
    """Schema for creating a task."""
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    note: Optional[str] = None
    priority: Optional[str] = Field(None, pattern=r"^(high|medium|low)$")
    due_date: Optional[date] = None
    project_id: Optional[int] = None
    tags: Optional[List[str]] = Field(None, max_length=10)
    today: bool = False
    recurrence: Optional[RecurrenceRuleIn] = None
    parent_task_id: Optional[int] = None


class TaskUpdate(BaseModel):
    """Schema for setter-style task updates; only provided fields change."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    note: Optional[str] = None
    status: Optional[str] = Field(None, pattern=r"^(not_started|in_progress|done|archived)$")
    priority: Optional[str] = Field(None, pattern=r"^(high|medium|low)$")
    due_date: Optional[date] = None
    project_id: Optional[int] = None
    tags: Optional[List[str]] = Field(None, max_length=10)
    today: Optional[bool] = None


class TaskResponse(BaseModel):
    """Schema for task API responses."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    profile_id: str
    name: str
    description: Optional[str] = None
    note: Optional[str] = None
    status: str
    priority: Optional[str] = None
    due_date: Optional[date] = None
    today: bool = False
    project_id: Optional[int] = None
    tags: List[str] = []
    completed_at: Optional[datetime] = None
    parent_task_id: Optional[int] = None
    spawned_task_id: Optional[int] = None
    recurrence_type: str
    recurrence_interval: int
    recurrence_weekday: Optional[int] = None
    recurrence_month_day: Optional[int] = None
    recurrence_week_of_month: Optional[int] = None
    recurrence_end_date: Optional[date] = None
    completion_based: bool = False
    created_at: datetime
    updated_at: datetime


class CompletionResponse(BaseModel):
    task: TaskResponse
    changed: bool
    spawned: Optional[TaskResponse] = None


class DeleteResponse(BaseModel):
    deleted: int
    detached: List[int]


class TimelineEventResponse(BaseModel):
    """One ledger event as shown by the timeline view."""
    sequence: int
    event_type: str
    old_value: Optional[Dict[str, Any]] = None
    new_value: Optional[Dict[str, Any]] = None
    created_at: datetime
