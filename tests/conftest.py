# tests/conftest.py

import os

# Configure before any chronotask module reads the environment
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CHRONOTASK_SCHEDULER_ENABLED"] = "false"
os.environ["CHRONOTASK_SUMMARY_HOUR"] = "7"
os.environ["CHRONOTASK_DEFAULT_TIMEZONE"] = "UTC"
os.environ["CHRONOTASK_DEFAULT_FREQUENCY"] = "daily"
os.environ["CHRONOTASK_DELIVERY_WEBHOOK_URL"] = ""

from datetime import datetime

import pytest
from sqlmodel import Session

from chronotask.db.config import build_engine
from chronotask.db.init import init_db
from chronotask.services.task_service import TaskService
from chronotask.utils.metrics import metrics_collector

from .fakes import FixedClock


@pytest.fixture()
def clock() -> FixedClock:
    """Wednesday 2024-01-03 09:00 UTC."""
    return FixedClock(datetime(2024, 1, 3, 9, 0, 0))


@pytest.fixture()
def engine():
    """Fresh in-memory database per test."""
    test_engine = build_engine("sqlite://")
    init_db(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture()
def session(engine):
    with Session(engine) as db_session:
        yield db_session


@pytest.fixture()
def service(session, clock) -> TaskService:
    return TaskService(session, clock=clock)


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics_collector.reset()
    yield
