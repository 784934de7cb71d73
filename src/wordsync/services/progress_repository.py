"""Local storage of progress records."""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from wordsync.models.base import as_utc
from wordsync.models.models import ProgressRow
from wordsync.models.progress import ProgressRecord, Strength, SyncState


def row_to_record(row: ProgressRow) -> ProgressRecord:
    """Convert a database row into a progress record."""
    return ProgressRecord(
        id=row.id,
        user_id=row.user_id,
        item_id=row.item_id,
        strength=Strength(row.strength),
        practice_count=row.practice_count,
        correct_count=row.correct_count,
        last_practiced_at=as_utc(row.last_practiced_at),
        next_due_at=as_utc(row.next_due_at),
        saved_at=as_utc(row.saved_at),
        is_favorite=row.is_favorite,
        notes=row.notes,
        sync_state=SyncState(row.sync_state),
    )


def _copy_to_row(record: ProgressRecord, row: ProgressRow) -> None:
    row.user_id = record.user_id
    row.item_id = record.item_id
    row.strength = record.strength.value
    row.practice_count = record.practice_count
    row.correct_count = record.correct_count
    row.last_practiced_at = as_utc(record.last_practiced_at)
    row.next_due_at = as_utc(record.next_due_at)
    row.saved_at = as_utc(record.saved_at)
    row.is_favorite = record.is_favorite
    row.notes = record.notes
    row.sync_state = record.sync_state.value


class ProgressRepository:
    """Repository for progress records keyed by (user, item)."""

    def __init__(self, db: Session):
        """Initialize the repository with a database session."""
        self.db = db

    def _get_row(self, user_id: str, item_id: str) -> Optional[ProgressRow]:
        return (
            self.db.query(ProgressRow)
            .filter(and_(ProgressRow.user_id == user_id, ProgressRow.item_id == item_id))
            .first()
        )

    def get(self, user_id: str, item_id: str) -> Optional[ProgressRecord]:
        """Get a record, including one that is pending deletion."""
        row = self._get_row(user_id, item_id)
        return row_to_record(row) if row else None

    def put(self, record: ProgressRecord) -> ProgressRecord:
        """Insert or replace the record for (user, item)."""
        row = self._get_row(record.user_id, record.item_id)
        if row is None:
            row = ProgressRow(id=record.id)
            self.db.add(row)
        elif row.id != record.id:
            # The remote copy may carry a different id for the same pair
            row.id = record.id
        _copy_to_row(record, row)
        self.db.commit()
        return record

    def delete(self, user_id: str, item_id: str) -> bool:
        """Delete the record. Returns False if it did not exist."""
        row = self._get_row(user_id, item_id)
        if row is None:
            return False
        self.db.delete(row)
        self.db.commit()
        return True

    def list_for_user(self, user_id: str) -> List[ProgressRecord]:
        """Get all records of a user that are not pending deletion."""
        query = self.db.query(ProgressRow).filter(
            and_(
                ProgressRow.user_id == user_id,
                ProgressRow.sync_state != SyncState.PENDING_DELETE.value,
            )
        )
        return [row_to_record(row) for row in query.all()]

    def list_due(self, user_id: str, now: datetime, limit: Optional[int] = None) -> List[ProgressRecord]:
        """Get records due for practice, unscheduled ones first."""
        query = (
            self.db.query(ProgressRow)
            .filter(
                and_(
                    ProgressRow.user_id == user_id,
                    ProgressRow.sync_state != SyncState.PENDING_DELETE.value,
                    or_(ProgressRow.next_due_at.is_(None), ProgressRow.next_due_at <= as_utc(now)),
                )
            )
            .order_by(ProgressRow.next_due_at.is_not(None), ProgressRow.next_due_at)
        )
        if limit is not None:
            query = query.limit(limit)
        return [row_to_record(row) for row in query.all()]

    def list_weak(self, user_id: str, limit: Optional[int] = None) -> List[ProgressRecord]:
        """Get records in the two lowest tiers, least practiced first."""
        query = (
            self.db.query(ProgressRow)
            .filter(
                and_(
                    ProgressRow.user_id == user_id,
                    ProgressRow.sync_state != SyncState.PENDING_DELETE.value,
                    ProgressRow.strength.in_([Strength.NEW.value, Strength.LEARNING.value]),
                )
            )
            .order_by(ProgressRow.practice_count)
        )
        if limit is not None:
            query = query.limit(limit)
        return [row_to_record(row) for row in query.all()]
