"""Change ledger models for SQLModel."""
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column, DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel

from chronotask.utils.clock import utcnow


class TaskEvent(SQLModel, table=True):
    """One immutable field-level mutation of a task."""

    __tablename__ = "task_event"
    __table_args__ = (UniqueConstraint("task_id", "sequence", name="uq_task_event_sequence"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    # No foreign key: history outlives the task it describes
    task_id: int = Field(index=True)
    sequence: int = Field(ge=1)
    event_type: str = Field(max_length=32)
    old_value: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    new_value: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))


class TaskEventCounter(SQLModel, table=True):
    """Per-task sequence allocator; rows are never deleted so numbers are never reused."""

    __tablename__ = "task_event_counter"

    task_id: int = Field(primary_key=True, sa_column_kwargs={"autoincrement": False})
    last_sequence: int = Field(default=0)
