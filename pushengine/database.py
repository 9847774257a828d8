"""Database configuration and session management."""

from collections.abc import Generator, Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from pushengine.config import get_settings
from pushengine.exceptions import PersistenceFault

settings = get_settings()

engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    pool_size=5,
    max_overflow=10,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base: Any = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Dependency that provides a database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def store_errors(db: Session, action: str) -> Iterator[None]:
    """Translate store failures into PersistenceFault, rolling back the session."""
    try:
        yield
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceFault(f"Store unavailable while trying to {action}") from e
