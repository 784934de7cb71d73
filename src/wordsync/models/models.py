"""Database models for the local store."""
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Integer,
    String,
    UniqueConstraint,
)

from wordsync.models.base import Base, TimestampMixin


class ProgressRow(Base, TimestampMixin):
    """Stored progress record, one per (user, item)."""

    __tablename__ = "user_progress"
    __table_args__ = (UniqueConstraint("user_id", "item_id", name="uq_user_progress_user_item"),)

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    item_id = Column(String, nullable=False)
    strength = Column(String, nullable=False, default="new")
    practice_count = Column(Integer, nullable=False, default=0)
    correct_count = Column(Integer, nullable=False, default=0)
    last_practiced_at = Column(DateTime(timezone=True))
    next_due_at = Column(DateTime(timezone=True), index=True)
    saved_at = Column(DateTime(timezone=True), nullable=False)
    is_favorite = Column(Boolean, nullable=False, default=False)
    notes = Column(String)
    sync_state = Column(String, nullable=False, default="pendingCreate")


class QueuedMutationRow(Base):
    """Pending write intent in the offline queue."""

    __tablename__ = "offline_queue"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String, unique=True, nullable=False)
    mutation_type = Column(String, nullable=False)
    user_id = Column(String, nullable=False, index=True)
    item_id = Column(String, nullable=False, index=True)
    payload = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False)
    retry_count = Column(Integer, nullable=False, default=0)


class DeadLetterRow(Base):
    """Mutation that exhausted its retries, kept for visibility."""

    __tablename__ = "dead_letters"

    id = Column(String, primary_key=True)
    mutation_id = Column(String, nullable=False)
    mutation_type = Column(String, nullable=False)
    user_id = Column(String, nullable=False, index=True)
    item_id = Column(String, nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False)
    failed_at = Column(DateTime(timezone=True), nullable=False)
    retry_count = Column(Integer, nullable=False)
    reason = Column(String)
