"""Database configuration and session dependency."""

import logging
from typing import Iterator

from sqlalchemy import event
from sqlmodel import Session, SQLModel, create_engine

from assignment_engine.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()
DATABASE_URL = settings.database_url

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

# echo off by default to avoid noisy logs; toggle ENGINE_SQL_ECHO for debugging
engine = create_engine(DATABASE_URL, echo=settings.sql_echo, connect_args=connect_args)


@event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Enforce foreign keys when running on SQLite."""
    if DATABASE_URL.startswith("sqlite"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_db_and_tables() -> None:
    """Create database tables based on SQLModel metadata."""
    SQLModel.metadata.create_all(engine)
    logger.info("Database tables ready")


def get_session() -> Iterator[Session]:
    """FastAPI dependency that yields a database session."""
    with Session(engine) as session:
        yield session
