"""Task summary scheduler state for SQLModel."""
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel

from chronotask.utils.clock import utcnow


class SchedulerPhase(str, Enum):
    DISABLED = "disabled"
    IDLE = "idle"
    SENDING = "sending"


class SendStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class SchedulerState(SQLModel, table=True):
    """Singleton row per profile; written only by NotificationScheduler."""

    __tablename__ = "scheduler_state"

    profile_id: str = Field(primary_key=True, max_length=100)
    enabled: bool = Field(default=False)
    frequency: str = Field(default="daily", max_length=20)
    timezone: str = Field(default="UTC", max_length=64)
    state: str = Field(default=SchedulerPhase.DISABLED.value, max_length=20)
    last_run: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
    next_run: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True, index=True))
    last_status: Optional[str] = Field(default=None, max_length=20)
    last_error: Optional[str] = Field(default=None, max_length=500)
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))
