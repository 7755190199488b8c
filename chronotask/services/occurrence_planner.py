"""
Occurrence Planner.

Decides when a recurring series advances, spawns and links the next
occurrence, and propagates recurrence edits. Runs inside the caller's
transaction; it flushes but never commits.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, List, Optional

from sqlalchemy import update
from sqlmodel import Session, select

from chronotask.exceptions import SeriesCycleError, TaskNotFoundError
from chronotask.models.recurrence_rule import RecurrenceRule
from chronotask.models.task import OPEN_STATUSES, Task, TaskStatus
from chronotask.services.change_ledger import ChangeLedger
from chronotask.services.recurrence import next_occurrence
from chronotask.services.recurrence_validator import RecurrenceValidator
from chronotask.utils.clock import utcnow
from chronotask.utils.metrics import metrics_collector

logger = logging.getLogger(__name__)


@dataclass
class CompletionResult:
    task: Task
    changed: bool
    spawned: Optional[Task] = None


class OccurrencePlanner:
    """Service to handle recurring task logic."""

    def __init__(self, session: Session, ledger: Optional[ChangeLedger] = None,
                 clock: Callable[[], datetime] = utcnow):
        self.session = session
        self.ledger = ledger or ChangeLedger(session, clock=clock)
        self.clock = clock

    def _get(self, task_id: int) -> Task:
        task = self.session.get(Task, task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def series_root(self, task: Task) -> Optional[Task]:
        """Return the series root (the task itself for roots, None if the root was deleted)."""
        if task.parent_task_id is None:
            return task
        return self.session.get(Task, task.parent_task_id)

    def governing_rule(self, task: Task) -> RecurrenceRule:
        """The root's canonical rule, or the occurrence's own copy once the root is gone."""
        root = self.series_root(task)
        return root.recurrence_rule if root is not None else task.recurrence_rule

    @staticmethod
    def anchor_for(task: Task, rule: RecurrenceRule) -> date:
        if rule.completion_based or task.due_date is None:
            return (task.completed_at or utcnow()).date()
        return task.due_date

    def complete_occurrence(self, task_id: int) -> CompletionResult:
        """
        Mark an occurrence done and spawn the next one if its rule says so.

        Completing an already done (or archived) task is a no-op, and an
        occurrence reopened and completed again keeps the child it already
        spawned, so retries never produce a second child.
        """
        task = self._get(task_id)
        old_status = task.status
        now = self.clock()

        # Conditional update: only the caller that flips the status gets to spawn
        result = self.session.execute(
            update(Task)
            .where(Task.id == task_id)
            .where(Task.status.in_(OPEN_STATUSES))
            .values(status=TaskStatus.DONE.value, completed_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info(f"Task {task_id} already {task.status}, completion is a no-op")
            return CompletionResult(task=task, changed=False)

        self.session.refresh(task)
        self.ledger.record(task.id, "status_changed", {"status": old_status}, {"status": task.status})

        spawned = self._spawn_next(task)
        return CompletionResult(task=task, changed=True, spawned=spawned)

    def _spawn_next(self, completed: Task) -> Optional[Task]:
        rule = self.governing_rule(completed)
        if not rule.is_recurring:
            return None
        if completed.spawned_task_id is not None and self.session.get(Task, completed.spawned_task_id) is not None:
            logger.info(f"Task {completed.id} already spawned task {completed.spawned_task_id}, not spawning again")
            return None

        anchor = self.anchor_for(completed, rule)
        next_due = next_occurrence(anchor, rule)
        if next_due is None:
            metrics_collector.series_terminated()
            logger.info(f"Series of task {completed.id} ended (anchor {anchor}, end date {rule.end_date})")
            return None

        root = self.series_root(completed)
        child = Task(
            profile_id=completed.profile_id,
            name=completed.name,
            description=completed.description,
            note=completed.note,
            priority=completed.priority,
            project_id=completed.project_id,
            tags=list(completed.tags or []),
            status=TaskStatus.NOT_STARTED.value,
            due_date=next_due,
            parent_task_id=root.id if root is not None else None,
            recurrence_anchor=anchor,
            created_at=self.clock(),
            updated_at=self.clock(),
        )
        child.set_recurrence_rule(rule)
        self.session.add(child)
        self.session.flush()
        completed.spawned_task_id = child.id
        self.session.add(completed)
        self.session.flush()

        self.ledger.record_created(child.id, child.name, child.status, child.due_date, child.parent_task_id)
        metrics_collector.occurrence_spawned()
        logger.info(f"Created next occurrence of task {completed.id}: new task {child.id} due {next_due}")
        return child

    def children(self, root_id: int, open_only: bool = False) -> List[Task]:
        statement = select(Task).where(Task.parent_task_id == root_id)
        if open_only:
            statement = statement.where(Task.status.in_(OPEN_STATUSES))
        return list(self.session.exec(statement.order_by(Task.due_date.asc(), Task.id.asc())).all())

    def edit_parent_recurrence(self, task_id: int, new_rule: RecurrenceRule, propagate: bool = False) -> Task:
        """
        Replace the series root's rule.

        Already spawned occurrences keep their embedded copy unless `propagate`
        is set, in which case open children take the new rule and have their
        due date recomputed from the anchor they were spawned from.
        """
        RecurrenceValidator.ensure_valid(new_rule)
        task = self._get(task_id)
        root = self.series_root(task) or task

        root.set_recurrence_rule(new_rule)
        root.updated_at = self.clock()
        self.session.add(root)

        if propagate:
            for child in self.children(root.id, open_only=True):
                self._reschedule_child(child, new_rule)

        self.session.flush()
        logger.info(f"Updated recurrence of series {root.id} to {new_rule.type.value} (propagate={propagate})")
        return root

    def _reschedule_child(self, child: Task, rule: RecurrenceRule) -> None:
        child.set_recurrence_rule(rule)
        child.updated_at = self.clock()
        self.session.add(child)

        anchor = child.recurrence_anchor or child.due_date
        if anchor is None:
            return
        new_due = next_occurrence(anchor, rule)
        if new_due is None or new_due == child.due_date:
            return

        old_due = child.due_date
        child.due_date = new_due
        self.ledger.record(child.id, "due_date_changed", {"due_date": old_due}, {"due_date": new_due})

    def attach_to_series(self, task: Task, parent_id: Optional[int]) -> Optional[int]:
        """
        Validate and set a task's parent, normalising it to the series root.

        Raises SeriesCycleError when the task would become its own ancestor.
        """
        if parent_id is None:
            task.parent_task_id = None
            return None

        if task.id is not None and parent_id == task.id:
            raise SeriesCycleError(f"Task {task.id} cannot be its own parent")

        seen = set()
        current = self._get(parent_id)
        while current.parent_task_id is not None:
            if current.id in seen or (task.id is not None and current.parent_task_id == task.id):
                raise SeriesCycleError(f"Task {task.id} cannot be an ancestor of task {parent_id}")
            seen.add(current.id)
            parent = self.session.get(Task, current.parent_task_id)
            if parent is None:
                break
            current = parent

        if task.id is not None and self.children(task.id):
            raise SeriesCycleError(f"Task {task.id} is a series root and cannot join another series")

        task.parent_task_id = current.id
        return current.id

    def delete_task(self, task_id: int) -> List[int]:
        """
        Delete a task. Children of a root are detached, not deleted.

        Returns:
            Ids of the detached children
        """
        task = self._get(task_id)
        detached = [child.id for child in self.children(task.id)]
        if detached:
            self.session.execute(
                update(Task)
                .where(Task.parent_task_id == task.id)
                .values(parent_task_id=None, updated_at=self.clock())
                .execution_options(synchronize_session="fetch")
            )
            logger.info(f"Detached {len(detached)} occurrence(s) from deleted root {task.id}")

        self.session.delete(task)
        self.session.flush()
        return detached
