"""Task summary payload for periodic notifications."""
from datetime import datetime
from typing import Any, Dict

from sqlmodel import Session, select

from chronotask.models.task import OPEN_STATUSES, Task, TaskStatus

MAX_LISTED_TASKS = 10


def build_task_summary(session: Session, profile_id: str, now: datetime) -> Dict[str, Any]:
    """
    Summarise a profile's open tasks as of `now`.

    Returns:
        Dict with counts and the names of tasks due today or flagged for today
    """
    today = now.date()
    statement = (
        select(Task)
        .where(Task.profile_id == profile_id)
        .where(Task.status.in_(OPEN_STATUSES))
        .order_by(Task.due_date.asc(), Task.id.asc())
    )
    open_tasks = list(session.exec(statement).all())

    due_today = [t for t in open_tasks if t.due_date == today or t.today]
    overdue = [t for t in open_tasks if t.due_date is not None and t.due_date < today]
    in_progress = [t for t in open_tasks if t.status == TaskStatus.IN_PROGRESS.value]

    return {
        "profile_id": profile_id,
        "generated_at": now.isoformat(),
        "open_count": len(open_tasks),
        "due_today_count": len(due_today),
        "overdue_count": len(overdue),
        "in_progress_count": len(in_progress),
        "today": [t.name for t in due_today[:MAX_LISTED_TASKS]],
        "overdue": [t.name for t in overdue[:MAX_LISTED_TASKS]],
    }
