"""Profile settings router for the periodic task summary."""
from fastapi import APIRouter, Depends, HTTPException, Request, status

from chronotask.exceptions import ValidationError
from chronotask.schemas.scheduler import FrequencyUpdate, SchedulerStatus, SendNowResponse, TimezoneUpdate
from chronotask.services.notification_scheduler import NotificationScheduler

router = APIRouter(prefix="/profile/{profile_id}/task-summary", tags=["Task Summary"])


def get_scheduler(request: Request) -> NotificationScheduler:
    """Dependency returning the scheduler created at startup."""
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Scheduler not initialised")
    return scheduler


@router.get("/status", response_model=SchedulerStatus)
async def summary_status(profile_id: str, scheduler: NotificationScheduler = Depends(get_scheduler)):
    """Current scheduler state, last/next run and the last delivery outcome."""
    return scheduler.get_status(profile_id)


@router.post("/toggle", response_model=SchedulerStatus)
async def toggle_summary(profile_id: str, scheduler: NotificationScheduler = Depends(get_scheduler)):
    """Enable or disable periodic summaries for the profile."""
    return scheduler.toggle(profile_id)


@router.post("/frequency", response_model=SchedulerStatus)
async def set_summary_frequency(
    profile_id: str,
    body: FrequencyUpdate,
    scheduler: NotificationScheduler = Depends(get_scheduler),
):
    try:
        return scheduler.set_frequency(profile_id, body.frequency)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.errors) from e


@router.post("/timezone", response_model=SchedulerStatus)
async def set_summary_timezone(
    profile_id: str,
    body: TimezoneUpdate,
    scheduler: NotificationScheduler = Depends(get_scheduler),
):
    try:
        return scheduler.set_timezone(profile_id, body.timezone)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.errors) from e


@router.post("/send-now", response_model=SendNowResponse)
async def send_summary_now(profile_id: str, scheduler: NotificationScheduler = Depends(get_scheduler)):
    """Send a summary immediately; the schedule is left untouched."""
    success = await scheduler.send_now(profile_id)
    return SendNowResponse(profile_id=profile_id, success=success)
