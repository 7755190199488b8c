"""Initialize database tables."""
import logging
from typing import Optional

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel

from chronotask.db.config import engine as default_engine
from chronotask.models.scheduler_state import SchedulerState  # noqa: F401
from chronotask.models.task import Task  # noqa: F401
from chronotask.models.task_event import TaskEvent, TaskEventCounter  # noqa: F401

logger = logging.getLogger(__name__)


def init_db(engine: Optional[Engine] = None) -> None:
    """Create all tables in the database."""
    target = engine or default_engine
    logger.info("[DB INIT] Creating all tables...")
    SQLModel.metadata.create_all(target)
    logger.info("[DB INIT] Tables created successfully.")


if __name__ == "__main__":
    init_db()
