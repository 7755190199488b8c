"""Database configuration for the chronotask core."""
import logging
from typing import Generator, Optional

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from chronotask.config import DATABASE_URL

logger = logging.getLogger(__name__)


def build_engine(database_url: Optional[str] = None) -> Engine:
    """Create an engine, enabling SQLite pragmas when needed."""
    url = database_url or DATABASE_URL

    if not url.startswith("sqlite"):
        logger.info("[DB CONFIG] Using PostgreSQL database")
        return create_engine(url, echo=False, pool_pre_ping=True)

    logger.info(f"[DB CONFIG] Using SQLite database: {url}")
    connect_args = {"check_same_thread": False}
    if url.endswith(":memory:") or url == "sqlite://":
        # One shared connection, otherwise every checkout sees an empty database
        new_engine = create_engine(url, echo=False, connect_args=connect_args, poolclass=StaticPool)
    else:
        new_engine = create_engine(url, echo=False, connect_args=connect_args)

    @event.listens_for(new_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        # Enable foreign keys and WAL mode so timeline reads never block writers
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    return new_engine


engine = build_engine()


def get_session() -> Generator[Session, None, None]:
    """Dependency for getting database sessions."""
    with Session(engine) as session:
        yield session
