"""Database session management."""

from collections.abc import Generator
from typing import Any

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def create_db_engine(url: str, echo: bool = False, **options: Any) -> Engine:
    """Create an engine for the configured database URL."""
    return create_engine(
        url,
        echo=echo,
        **options,
        connect_args={"check_same_thread": False} if url.startswith("sqlite") else {},
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


def get_db(request: Request) -> Generator[Session, None, None]:
    """Yield a database session."""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
