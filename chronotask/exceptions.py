"""Error taxonomy shared by the planner, ledger and scheduler."""
from typing import List, Optional


class ChronotaskError(Exception):
    """Base class for all chronotask errors."""


class ValidationError(ChronotaskError):
    """Input rejected before any state change."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or [message]


class RecurrenceValidationError(ValidationError):
    """Malformed recurrence rule (bad interval, missing required field)."""


class SeriesCycleError(ValidationError):
    """A task would become its own ancestor."""


class TaskNotFoundError(ChronotaskError):
    def __init__(self, task_id: int):
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class TransientError(ChronotaskError):
    """Storage or transaction failure; the whole unit of work was rolled back."""
