"""
Database connection and initialization for the link/exam record store.
"""
from pathlib import Path
from typing import Optional

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, Session, create_engine

from backend.config import get_settings

# Engine singleton
_engine = None


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine; SQLite files get their parent directory created."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        prefix = "sqlite:///"
        if database_url.startswith(prefix) and ":memory:" not in database_url:
            Path(database_url[len(prefix):]).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(database_url, echo=echo, connect_args=connect_args)


def get_engine() -> Engine:
    """Get or create the process-wide database engine."""
    global _engine
    if _engine is None:
        _engine = build_engine(get_settings().database_url)
    return _engine


def init_db(engine: Optional[Engine] = None):
    """Initialize database tables."""
    from backend.persistence.models import Link, Exam  # noqa: F401
    SQLModel.metadata.create_all(engine or get_engine())


def get_db_session(engine: Optional[Engine] = None) -> Session:
    """Get a database session (non-generator version)."""
    return Session(engine or get_engine())
