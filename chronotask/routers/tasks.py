"""Task router exposing the planner and ledger contracts."""
from datetime import date
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel import Session

from chronotask.db.config import get_session
from chronotask.exceptions import TaskNotFoundError, TransientError, ValidationError
from chronotask.models.recurrence_rule import RecurrenceRule
from chronotask.schemas.task import (
    CompletionResponse,
    DeleteResponse,
    RecurrenceRuleIn,
    TaskCreate,
    TaskResponse,
    TaskUpdate,
    TimelineEventResponse,
)
from chronotask.services.task_service import TaskService

router = APIRouter(tags=["Tasks"])  # No prefix since main.py adds /api prefix


def get_task_service(session: Session = Depends(get_session)) -> TaskService:
    """Dependency for getting TaskService instance."""
    return TaskService(session)


def _raise_http(e: Exception):
    if isinstance(e, TaskNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    if isinstance(e, ValidationError):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.errors) from e
    if isinstance(e, TransientError):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Storage unavailable, retry") from e
    raise e


@router.get("/{profile_id}/tasks", response_model=List[TaskResponse])
async def list_tasks(
    profile_id: str,
    include_done: bool = Query(True, description="Include completed tasks"),
    service: TaskService = Depends(get_task_service),
):
    """List tasks for a profile ordered by due date."""
    return service.list_tasks(profile_id, include_done=include_done)


@router.post("/{profile_id}/tasks", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    profile_id: str,
    task_data: TaskCreate,
    service: TaskService = Depends(get_task_service),
):
    """Create a task, optionally recurring or attached to an existing series."""
    try:
        rule = RecurrenceRule(**task_data.recurrence.model_dump()) if task_data.recurrence else None
        return service.create_task(
            profile_id=profile_id,
            name=task_data.name,
            description=task_data.description,
            note=task_data.note,
            priority=task_data.priority,
            due_date=task_data.due_date,
            project_id=task_data.project_id,
            tags=task_data.tags,
            today=task_data.today,
            recurrence=rule,
            parent_task_id=task_data.parent_task_id,
        )
    except (ValidationError, TaskNotFoundError, TransientError) as e:
        _raise_http(e)


@router.get("/tasks/{task_id}", response_model=TaskResponse)
async def get_task(task_id: int, service: TaskService = Depends(get_task_service)):
    """Get a specific task by ID."""
    try:
        return service.get_task(task_id)
    except TaskNotFoundError as e:
        _raise_http(e)


@router.patch("/tasks/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: int,
    task_data: TaskUpdate,
    service: TaskService = Depends(get_task_service),
):
    """Update only the provided fields; each changed field lands in the timeline."""
    try:
        return service.update_task(task_id, **task_data.model_dump(exclude_unset=True))
    except (ValidationError, TaskNotFoundError, TransientError) as e:
        _raise_http(e)


@router.post("/tasks/{task_id}/complete", response_model=CompletionResponse)
async def complete_task(task_id: int, service: TaskService = Depends(get_task_service)):
    """Complete a task. Safe to retry: a second call changes nothing."""
    try:
        result = service.complete_task(task_id)
    except (TaskNotFoundError, TransientError) as e:
        _raise_http(e)
    return CompletionResponse(
        task=TaskResponse.model_validate(result.task),
        changed=result.changed,
        spawned=TaskResponse.model_validate(result.spawned) if result.spawned else None,
    )


@router.put("/tasks/{task_id}/recurrence", response_model=TaskResponse)
async def update_recurrence(
    task_id: int,
    rule_data: RecurrenceRuleIn,
    propagate: bool = Query(False, description="Also reschedule open occurrences"),
    service: TaskService = Depends(get_task_service),
):
    """Edit the series root's recurrence rule."""
    try:
        return service.update_recurrence(task_id, RecurrenceRule(**rule_data.model_dump()), propagate=propagate)
    except (ValidationError, TaskNotFoundError, TransientError) as e:
        _raise_http(e)


@router.delete("/tasks/{task_id}", response_model=DeleteResponse)
async def delete_task(task_id: int, service: TaskService = Depends(get_task_service)):
    """Delete a task; occurrences of a deleted root are detached, not deleted."""
    try:
        detached = service.delete_task(task_id)
    except (TaskNotFoundError, TransientError) as e:
        _raise_http(e)
    return DeleteResponse(deleted=task_id, detached=detached)


@router.get("/tasks/{task_id}/timeline", response_model=List[TimelineEventResponse])
async def task_timeline(task_id: int, service: TaskService = Depends(get_task_service)):
    """Chronological change history of a task (available after deletion too)."""
    return [
        TimelineEventResponse(
            sequence=event.sequence,
            event_type=event.event_type,
            old_value=event.old_value.model_dump(mode="json") if event.old_value is not None else None,
            new_value=event.new_value.model_dump(mode="json"),
            created_at=event.created_at,
        )
        for event in service.timeline(task_id)
    ]


@router.get("/tasks/{task_id}/series", response_model=List[TaskResponse])
async def task_series(task_id: int, service: TaskService = Depends(get_task_service)):
    """The series root followed by its occurrences."""
    try:
        return service.get_series(task_id)
    except TaskNotFoundError as e:
        _raise_http(e)


@router.get("/tasks/{task_id}/upcoming", response_model=List[date])
async def upcoming_occurrences(
    task_id: int,
    limit: int = Query(5, ge=1, le=50),
    service: TaskService = Depends(get_task_service),
):
    """Preview the next dates the series would produce."""
    try:
        return service.upcoming(task_id, limit=limit)
    except TaskNotFoundError as e:
        _raise_http(e)
