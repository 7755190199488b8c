"""Task service: the mutation boundary every task write goes through."""
import logging
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterator, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from chronotask.exceptions import TaskNotFoundError, TransientError, ValidationError
from chronotask.models.recurrence_rule import RecurrenceRule
from chronotask.models.task import Task, TaskStatus
from chronotask.services.change_ledger import ChangeLedger, TaskTimeline, diff_snapshots
from chronotask.services.occurrence_planner import CompletionResult, OccurrencePlanner
from chronotask.services.recurrence import occurrences_between
from chronotask.services.recurrence_validator import RecurrenceValidator
from chronotask.utils.clock import utcnow

logger = logging.getLogger(__name__)

# Fields callers may set through update_task
UPDATABLE_FIELDS = ("name", "description", "note", "status", "priority", "due_date", "project_id", "tags", "today")


class TaskService:
    """Service class for task mutations with ledger recording and series planning."""

    def __init__(self, session: Session, clock: Callable[[], datetime] = utcnow):
        self.session = session
        self.clock = clock
        self.ledger = ChangeLedger(session, clock=clock)
        self.planner = OccurrencePlanner(session, ledger=self.ledger, clock=clock)

    @contextmanager
    def _unit_of_work(self) -> Iterator[None]:
        """Commit once on success; roll back task and ledger writes together on failure."""
        try:
            yield
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Transaction rolled back: {str(e)}")
            raise TransientError(str(e)) from e
        except Exception:
            self.session.rollback()
            raise

    def _validate_fields(self, fields: Dict[str, Any]) -> None:
        if "priority" in fields:
            RecurrenceValidator.raise_for(RecurrenceValidator.validate_priority(fields["priority"]))
        if "tags" in fields:
            RecurrenceValidator.raise_for(RecurrenceValidator.validate_tag_limits(fields["tags"]))
        if "status" in fields and fields["status"] not in [s.value for s in TaskStatus]:
            raise ValidationError(f"Unknown status: {fields['status']}")
        if "name" in fields and not (fields["name"] or "").strip():
            raise ValidationError("Task name is required")

    def get_task(self, task_id: int) -> Task:
        task = self.session.get(Task, task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def list_tasks(self, profile_id: str, include_done: bool = True) -> List[Task]:
        statement = select(Task).where(Task.profile_id == profile_id)
        if not include_done:
            statement = statement.where(Task.status != TaskStatus.DONE.value)
        return list(self.session.exec(statement.order_by(Task.due_date.asc(), Task.id.asc())).all())

    def create_task(
        self,
        profile_id: str,
        name: str,
        description: Optional[str] = None,
        note: Optional[str] = None,
        priority: Optional[str] = None,
        due_date: Optional[date] = None,
        project_id: Optional[int] = None,
        tags: Optional[List[str]] = None,
        today: bool = False,
        recurrence: Optional[RecurrenceRule] = None,
        parent_task_id: Optional[int] = None,
    ) -> Task:
        """Create a task and record its `created` event."""
        self._validate_fields({"name": name, "priority": priority, "tags": tags or []})
        rule = RecurrenceValidator.ensure_valid(recurrence or RecurrenceRule.none())

        with self._unit_of_work():
            now = self.clock()
            task = Task(
                profile_id=profile_id,
                name=name.strip(),
                description=description,
                note=note,
                priority=priority,
                due_date=due_date,
                project_id=project_id,
                tags=list(tags or []),
                today=today,
                created_at=now,
                updated_at=now,
            )
            task.set_recurrence_rule(rule)
            self.session.add(task)
            self.session.flush()
            if parent_task_id is not None:
                self.planner.attach_to_series(task, parent_task_id)
                self.session.add(task)
                self.session.flush()
            self.ledger.record_created(task.id, task.name, task.status, task.due_date, task.parent_task_id)

        self.session.refresh(task)
        logger.info(f"Created task {task.id} for profile {profile_id}")
        return task

    def update_task(self, task_id: int, **fields: Any) -> Task:
        """
        Apply setter-style changes, recording one ledger event per changed field.

        Setting status to done routes through the planner so recurring series
        advance exactly as an explicit completion would. Archived tasks must be
        restored before they can be marked done.
        """
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown task field(s): {', '.join(sorted(unknown))}")
        self._validate_fields(fields)
        if fields.get("name") is not None:
            fields["name"] = fields["name"].strip()

        with self._unit_of_work():
            task = self.get_task(task_id)
            if fields.get("status") == TaskStatus.DONE.value and task.status == TaskStatus.ARCHIVED.value:
                raise ValidationError(f"Task {task_id} is archived; restore it before completing")
            completing = fields.get("status") == TaskStatus.DONE.value and task.status != TaskStatus.DONE.value
            plain = {k: v for k, v in fields.items() if not (completing and k == "status")}

            changes = diff_snapshots(task.snapshot(), plain)
            for field, _, new in changes:
                setattr(task, field, list(new) if field == "tags" else new)
            if changes:
                task.updated_at = self.clock()
                self.session.add(task)
                self.session.flush()
                self.ledger.record_changes(task.id, changes)

            if completing:
                self.planner.complete_occurrence(task.id)

        self.session.refresh(task)
        return task

    def complete_task(self, task_id: int) -> CompletionResult:
        with self._unit_of_work():
            result = self.planner.complete_occurrence(task_id)
        self.session.refresh(result.task)
        if result.spawned is not None:
            self.session.refresh(result.spawned)
        return result

    def update_recurrence(self, task_id: int, rule: RecurrenceRule, propagate: bool = False) -> Task:
        with self._unit_of_work():
            root = self.planner.edit_parent_recurrence(task_id, rule, propagate=propagate)
        self.session.refresh(root)
        return root

    def delete_task(self, task_id: int) -> List[int]:
        with self._unit_of_work():
            detached = self.planner.delete_task(task_id)
        logger.info(f"Deleted task {task_id}")
        return detached

    def get_series(self, task_id: int) -> List[Task]:
        task = self.get_task(task_id)
        root = self.planner.series_root(task)
        if root is None:
            return [task]
        return [root] + self.planner.children(root.id)

    def upcoming(self, task_id: int, limit: int = 5) -> List[date]:
        """Preview the next dates the task's governing rule would produce."""
        task = self.get_task(task_id)
        rule = self.planner.governing_rule(task)
        start = task.due_date or self.clock().date()
        return occurrences_between(start, rule, limit=limit)

    def timeline(self, task_id: int) -> TaskTimeline:
        return self.ledger.timeline(task_id)
