"""Database handle, request-scoped sessions, and the transaction scope.

The handle is built once by ``create_app`` and disposed at shutdown; components
receive a ``Session`` from it rather than importing a module-level engine.
"""

from contextlib import contextmanager
from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from autolot.config.settings import Settings
from autolot.database.models import Base


class Database:
    """Owns the engine (connection pool) and the session factory."""

    def __init__(self, url: str, **engine_kwargs):
        self.url = url
        self.engine: Engine = create_engine(url, **engine_kwargs)
        self.session_factory = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        engine_kwargs = {"echo": settings.debug}
        if settings.uses_sqlite:
            engine_kwargs["connect_args"] = {"check_same_thread": False}
        else:
            engine_kwargs["pool_size"] = settings.db_pool_size
            engine_kwargs["max_overflow"] = settings.db_max_overflow
            engine_kwargs["pool_pre_ping"] = True
        return cls(settings.database_url, **engine_kwargs)

    def session(self) -> Session:
        return self.session_factory()

    def create_all(self) -> None:
        """Create all tables (local dev and tests; deployed envs run alembic)."""
        Base.metadata.create_all(bind=self.engine)

    def dispose(self) -> None:
        self.engine.dispose()


@contextmanager
def transaction(session: Session) -> Iterator[Session]:
    """Commit on success; roll back and re-raise on any exception."""
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise


def get_db(request: Request) -> Iterator[Session]:
    """Dependency for FastAPI - yields a session and always closes it."""
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()
