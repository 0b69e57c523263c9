from __future__ import annotations

import os
from typing import Any, Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .models import Base


_engine: Optional[Engine] = None
_engine_url: Optional[str] = None


def _default_db_url() -> str:
    # Default to a local SQLite database for dev/tests when DATABASE_URL is unset.
    return os.getenv("DATABASE_URL", "sqlite:///./dev.db")


def _query_timeout_seconds() -> float:
    return float(os.getenv("DB_QUERY_TIMEOUT_SECONDS", "10"))


def _connect_args(url: str) -> dict[str, Any]:
    """Per-connection options that bound how long a single query may block."""
    timeout = _query_timeout_seconds()
    if url.startswith("postgresql"):
        return {"options": f"-c statement_timeout={int(timeout * 1000)}"}
    if url.startswith("sqlite"):
        # SQLite only blocks on locks held by other writers.
        return {"timeout": timeout}
    return {}


def get_engine() -> Engine:
    """Return a process-wide Engine, recreating it when DATABASE_URL changes.

    This makes tests reliable when they override DATABASE_URL per test.
    """
    global _engine, _engine_url
    current_url = _default_db_url()
    if _engine is None or _engine_url != current_url:
        _engine = create_engine(
            current_url, pool_pre_ping=True, connect_args=_connect_args(current_url)
        )
        _engine_url = current_url
    return _engine


def session_factory() -> sessionmaker[Session]:
    return sessionmaker(bind=get_engine(), autoflush=False, autocommit=False, future=True)


def get_session() -> Generator[Session, None, None]:
    """Yield a database session; FastAPI can use this as a dependency.

    Closes the session after use to avoid connection leaks.
    """
    db = session_factory()()
    try:
        yield db
    finally:
        db.close()


def create_all() -> None:
    """Create all tables using SQLAlchemy metadata (useful for tests/dev)."""
    Base.metadata.create_all(bind=get_engine())
