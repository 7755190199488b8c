"""
Change Ledger.

Append-only, field-level history of task mutations. The ledger never
commits: every write joins the caller's transaction so a task mutation and
its events are persisted together or not at all.
"""

import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import update
from sqlmodel import Session, select

from chronotask.config import TIMELINE_BATCH_SIZE
from chronotask.exceptions import ValidationError
from chronotask.models.task import TaskStatus
from chronotask.models.task_event import TaskEvent, TaskEventCounter
from chronotask.schemas.task_event import (
    FIELD_EVENT_TYPES,
    VALUE_MODELS,
    ChangeEvent,
    EventType,
    parse_event,
)
from chronotask.utils.clock import utcnow
from chronotask.utils.metrics import metrics_collector

logger = logging.getLogger(__name__)

# Field order used when one edit touches several fields
TRACKED_FIELDS = ("name", "description", "note", "status", "priority", "due_date", "project_id", "tags", "today")


def _to_payload(event_type: EventType, value: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    """Validate one side of a change against its typed model and dump it to JSON-safe data."""
    if value is None:
        return None
    model = VALUE_MODELS[event_type]
    try:
        return model(**value).model_dump(mode="json")
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {event_type.value} payload: {e.errors()[0]['msg']}") from e


def event_type_for(field: str, new_value: Any) -> EventType:
    if field == "status" and new_value == TaskStatus.ARCHIVED.value:
        return EventType.ARCHIVED
    return FIELD_EVENT_TYPES[field]


def diff_snapshots(before: Mapping[str, Any], after: Mapping[str, Any]) -> List[Tuple[str, Any, Any]]:
    """Return (field, old, new) for each tracked field whose value changed."""
    changes = []
    for field in TRACKED_FIELDS:
        if field not in after:
            continue
        old, new = before.get(field), after[field]
        if field == "tags":
            old, new = list(old or []), list(new or [])
        if old != new:
            changes.append((field, old, new))
    return changes


class TaskTimeline:
    """Lazy, restartable view over one task's events in sequence order.

    Every iteration starts a fresh keyset-paged scan, so iterating twice sees
    events appended in between.
    """

    def __init__(self, session: Session, task_id: int, batch_size: int = TIMELINE_BATCH_SIZE):
        self.session = session
        self.task_id = task_id
        self.batch_size = max(1, batch_size)

    def __iter__(self) -> Iterator[ChangeEvent]:
        after_sequence = 0
        while True:
            statement = (
                select(TaskEvent)
                .where(TaskEvent.task_id == self.task_id)
                .where(TaskEvent.sequence > after_sequence)
                .order_by(TaskEvent.sequence.asc())
                .limit(self.batch_size)
            )
            rows = list(self.session.exec(statement).all())
            for row in rows:
                yield parse_event(row)
            if len(rows) < self.batch_size:
                return
            after_sequence = rows[-1].sequence

    def to_list(self) -> List[ChangeEvent]:
        return list(self)


class ChangeLedger:
    """Records ChangeEvents inside the caller's unit of work."""

    def __init__(self, session: Session, clock: Callable[[], datetime] = utcnow):
        self.session = session
        self.clock = clock

    def _next_sequence(self, task_id: int) -> int:
        # The UPDATE takes the row lock, so concurrent writers to one task serialize here
        result = self.session.execute(
            update(TaskEventCounter)
            .where(TaskEventCounter.task_id == task_id)
            .values(last_sequence=TaskEventCounter.last_sequence + 1)
        )
        if result.rowcount == 0:
            self.session.add(TaskEventCounter(task_id=task_id, last_sequence=1))
            self.session.flush()
            return 1
        return self.session.exec(
            select(TaskEventCounter.last_sequence).where(TaskEventCounter.task_id == task_id)
        ).one()

    def _created_at(self, task_id: int) -> datetime:
        now = self.clock()
        last = self.session.exec(
            select(TaskEvent.created_at)
            .where(TaskEvent.task_id == task_id)
            .order_by(TaskEvent.sequence.desc())
            .limit(1)
        ).first()
        # Clock skew must not make a later event look older
        return max(now, last) if last is not None else now

    def record(
        self,
        task_id: int,
        event_type: Union[EventType, str],
        old_value: Optional[Mapping[str, Any]],
        new_value: Mapping[str, Any],
    ) -> TaskEvent:
        """
        Append one immutable event.

        Args:
            task_id: Task the mutation applies to
            event_type: One of EventType
            old_value: Snapshot of the changed field before the mutation
            new_value: Snapshot of the changed field after the mutation

        Returns:
            The flushed (uncommitted) TaskEvent row
        """
        try:
            kind = EventType(event_type)
        except ValueError as e:
            raise ValidationError(f"Unknown event type: {event_type}") from e
        if new_value is None:
            raise ValidationError(f"{kind.value} event requires a new value")
        old_payload = _to_payload(kind, old_value)
        new_payload = _to_payload(kind, new_value)

        event = TaskEvent(
            task_id=task_id,
            sequence=self._next_sequence(task_id),
            event_type=kind.value,
            old_value=old_payload,
            new_value=new_payload,
            created_at=self._created_at(task_id),
        )
        self.session.add(event)
        self.session.flush()
        metrics_collector.ledger_event_recorded()
        logger.debug(f"Recorded {kind.value} #{event.sequence} for task {task_id}")
        return event

    def record_changes(self, task_id: int, changes: List[Tuple[str, Any, Any]]) -> List[TaskEvent]:
        """Record one event per (field, old, new) change."""
        events = []
        for field, old, new in changes:
            events.append(self.record(task_id, event_type_for(field, new), {field: old}, {field: new}))
        return events

    def record_created(self, task_id: int, name: str, status: str, due_date: Optional[date],
                       parent_task_id: Optional[int] = None) -> TaskEvent:
        return self.record(
            task_id,
            EventType.CREATED,
            None,
            {"name": name, "status": status, "due_date": due_date, "parent_task_id": parent_task_id},
        )

    def timeline(self, task_id: int, batch_size: int = TIMELINE_BATCH_SIZE) -> TaskTimeline:
        return TaskTimeline(self.session, task_id, batch_size=batch_size)
