"""Application configuration loaded from environment variables (+ optional .env)."""
import os
from typing import Optional

from dotenv import load_dotenv

# Load environment variables but prioritize local development
load_dotenv()


def _parse_int(val: Optional[str], default: int) -> int:
    """Parse an integer from string, return default if invalid."""
    if not val:
        return default
    try:
        return int(val)
    except ValueError:
        return default


def _parse_float(val: Optional[str], default: float) -> float:
    """Parse a float from string, return default if invalid."""
    if not val:
        return default
    try:
        return float(val)
    except ValueError:
        return default


def _parse_bool(val: Optional[str], default: bool) -> bool:
    if val is None or val.strip() == "":
        return default
    return val.strip().lower() in {"1", "true", "yes", "y", "on"}


# Use the DATABASE_URL from environment variable, with fallback to SQLite for local dev
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./chronotask.db")

LOG_LEVEL = os.environ.get("CHRONOTASK_LOG_LEVEL", "INFO").upper()

# Task summary scheduler
SCHEDULER_ENABLED = _parse_bool(os.environ.get("CHRONOTASK_SCHEDULER_ENABLED"), True)
SCHEDULER_TICK_SECONDS = max(1.0, _parse_float(os.environ.get("CHRONOTASK_SCHEDULER_TICK_SECONDS"), 60.0))

# Local hour (0-23) at which daily/weekdays/weekly summaries go out
SUMMARY_HOUR = min(23, max(0, _parse_int(os.environ.get("CHRONOTASK_SUMMARY_HOUR"), 7)))
DEFAULT_TIMEZONE = os.environ.get("CHRONOTASK_DEFAULT_TIMEZONE", "UTC")
DEFAULT_FREQUENCY = os.environ.get("CHRONOTASK_DEFAULT_FREQUENCY", "daily")

# Delivery collaborator: empty webhook URL means dev mode (log only)
DELIVERY_WEBHOOK_URL = os.environ.get("CHRONOTASK_DELIVERY_WEBHOOK_URL", "")
DELIVERY_TIMEOUT_SECONDS = max(0.1, _parse_float(os.environ.get("CHRONOTASK_DELIVERY_TIMEOUT_SECONDS"), 10.0))

# Change ledger
TIMELINE_BATCH_SIZE = max(1, _parse_int(os.environ.get("CHRONOTASK_TIMELINE_BATCH_SIZE"), 100))

# CORS: development origins plus an optional deployed frontend
ENVIRONMENT = os.environ.get("ENVIRONMENT", "development")
FRONTEND_URL = os.environ.get("FRONTEND_URL", "")
