"""Typed change-ledger events.

Each event type carries a before/after pair specific to the field it
describes. `ChangeEvent` is a discriminated union keyed by `event_type`, so a
stored row can be parsed back into exactly one variant.
"""
from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from chronotask.models.task import TaskPriority, TaskStatus


class EventType(str, Enum):
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    PRIORITY_CHANGED = "priority_changed"
    DUE_DATE_CHANGED = "due_date_changed"
    NAME_CHANGED = "name_changed"
    DESCRIPTION_CHANGED = "description_changed"
    NOTE_CHANGED = "note_changed"
    PROJECT_CHANGED = "project_changed"
    TAGS_CHANGED = "tags_changed"
    TODAY_CHANGED = "today_changed"
    ARCHIVED = "archived"


class _Value(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class StatusValue(_Value):
    status: TaskStatus


class PriorityValue(_Value):
    priority: Optional[TaskPriority] = None


class DueDateValue(_Value):
    due_date: Optional[date] = None


class NameValue(_Value):
    name: str


class DescriptionValue(_Value):
    description: Optional[str] = None


class NoteValue(_Value):
    note: Optional[str] = None


class ProjectValue(_Value):
    project_id: Optional[int] = None


class TagsValue(_Value):
    tags: List[str] = Field(default_factory=list)


class TodayValue(_Value):
    today: bool


class CreatedValue(_Value):
    name: str
    status: TaskStatus
    due_date: Optional[date] = None
    parent_task_id: Optional[int] = None


class _EventBase(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: Optional[int] = None
    task_id: int
    sequence: int
    created_at: datetime


class CreatedEvent(_EventBase):
    event_type: Literal["created"] = "created"
    old_value: None = None
    new_value: CreatedValue


class StatusChangedEvent(_EventBase):
    event_type: Literal["status_changed"] = "status_changed"
    old_value: Optional[StatusValue] = None
    new_value: StatusValue


class ArchivedEvent(_EventBase):
    event_type: Literal["archived"] = "archived"
    old_value: Optional[StatusValue] = None
    new_value: StatusValue


class PriorityChangedEvent(_EventBase):
    event_type: Literal["priority_changed"] = "priority_changed"
    old_value: Optional[PriorityValue] = None
    new_value: PriorityValue


class DueDateChangedEvent(_EventBase):
    event_type: Literal["due_date_changed"] = "due_date_changed"
    old_value: Optional[DueDateValue] = None
    new_value: DueDateValue


class NameChangedEvent(_EventBase):
    event_type: Literal["name_changed"] = "name_changed"
    old_value: Optional[NameValue] = None
    new_value: NameValue


class DescriptionChangedEvent(_EventBase):
    event_type: Literal["description_changed"] = "description_changed"
    old_value: Optional[DescriptionValue] = None
    new_value: DescriptionValue


class NoteChangedEvent(_EventBase):
    event_type: Literal["note_changed"] = "note_changed"
    old_value: Optional[NoteValue] = None
    new_value: NoteValue


class ProjectChangedEvent(_EventBase):
    event_type: Literal["project_changed"] = "project_changed"
    old_value: Optional[ProjectValue] = None
    new_value: ProjectValue


class TagsChangedEvent(_EventBase):
    event_type: Literal["tags_changed"] = "tags_changed"
    old_value: Optional[TagsValue] = None
    new_value: TagsValue


class TodayChangedEvent(_EventBase):
    event_type: Literal["today_changed"] = "today_changed"
    old_value: Optional[TodayValue] = None
    new_value: TodayValue


ChangeEvent = Annotated[
    Union[
        CreatedEvent,
        StatusChangedEvent,
        ArchivedEvent,
        PriorityChangedEvent,
        DueDateChangedEvent,
        NameChangedEvent,
        DescriptionChangedEvent,
        NoteChangedEvent,
        ProjectChangedEvent,
        TagsChangedEvent,
        TodayChangedEvent,
    ],
    Field(discriminator="event_type"),
]

change_event_adapter: TypeAdapter = TypeAdapter(ChangeEvent)

# Payload model for each event type's old/new snapshot
VALUE_MODELS: Dict[EventType, type] = {
    EventType.CREATED: CreatedValue,
    EventType.STATUS_CHANGED: StatusValue,
    EventType.ARCHIVED: StatusValue,
    EventType.PRIORITY_CHANGED: PriorityValue,
    EventType.DUE_DATE_CHANGED: DueDateValue,
    EventType.NAME_CHANGED: NameValue,
    EventType.DESCRIPTION_CHANGED: DescriptionValue,
    EventType.NOTE_CHANGED: NoteValue,
    EventType.PROJECT_CHANGED: ProjectValue,
    EventType.TAGS_CHANGED: TagsValue,
    EventType.TODAY_CHANGED: TodayValue,
}

# Tracked task field -> event type recording a change to it
FIELD_EVENT_TYPES: Dict[str, EventType] = {
    "name": EventType.NAME_CHANGED,
    "description": EventType.DESCRIPTION_CHANGED,
    "note": EventType.NOTE_CHANGED,
    "status": EventType.STATUS_CHANGED,
    "priority": EventType.PRIORITY_CHANGED,
    "due_date": EventType.DUE_DATE_CHANGED,
    "project_id": EventType.PROJECT_CHANGED,
    "tags": EventType.TAGS_CHANGED,
    "today": EventType.TODAY_CHANGED,
}


def parse_event(row: Any) -> ChangeEvent:
    """Parse a stored TaskEvent row (or dict) into its typed variant."""
    if isinstance(row, dict):
        return change_event_adapter.validate_python(row)
    return change_event_adapter.validate_python(
        {
            "id": row.id,
            "task_id": row.task_id,
            "sequence": row.sequence,
            "event_type": row.event_type,
            "old_value": row.old_value,
            "new_value": row.new_value,
            "created_at": row.created_at,
        }
    )
