"""Task summary scheduler schemas."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SchedulerStatus(BaseModel):
    """Schema for the profile settings view of the scheduler."""
    model_config = ConfigDict(from_attributes=True)

    profile_id: str
    enabled: bool
    frequency: str
    timezone: str
    state: str
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None
    last_status: Optional[str] = None
    last_error: Optional[str] = None


class FrequencyUpdate(BaseModel):
    frequency: str = Field(..., min_length=1, max_length=20)


class SendNowResponse(BaseModel):
    profile_id: str
    success: bool


class TimezoneUpdate(BaseModel):
    timezone: str = Field(..., min_length=1, max_length=64)
