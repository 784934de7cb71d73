"""Base model configuration."""
from datetime import UTC, datetime
from typing import Optional

from sqlalchemy import Column, DateTime, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from wordsync.config import settings

# Create declarative base class
Base = declarative_base()


class TimestampMixin:
    """Mixin to add timestamp columns to models."""
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize to UTC. SQLite keeps no offset, so naive values are read as UTC."""
    if value is None:
        return value
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def create_db_engine(url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """Create an engine for the local store."""
    return create_engine(
        url or settings.database.url,
        echo=settings.database.echo if echo is None else echo,
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    """Create a session factory bound to the engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Initialize database."""
    # Import models so their tables are registered on the metadata
    from wordsync.models import models  # noqa: F401

    Base.metadata.create_all(bind=engine)  # Create tables if they don't exist
