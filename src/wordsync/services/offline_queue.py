"""Offline mutation queue: durable, ordered log of unsynced write intents."""
import logging
import uuid
from datetime import datetime, UTC
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from wordsync import monitoring
from wordsync.config import settings
from wordsync.models.base import as_utc
from wordsync.models.models import DeadLetterRow, QueuedMutationRow
from wordsync.models.sync_models import DeadLetter, MutationType, QueuedMutation

logger = logging.getLogger(__name__)


def _to_mutation(row: QueuedMutationRow) -> QueuedMutation:
    return QueuedMutation(
        id=row.id,
        mutation_type=MutationType(row.mutation_type),
        user_id=row.user_id,
        item_id=row.item_id,
        payload=dict(row.payload or {}),
        created_at=as_utc(row.created_at),
        retry_count=row.retry_count,
    )


def _to_dead_letter(row: DeadLetterRow) -> DeadLetter:
    return DeadLetter(
        id=row.id,
        mutation_id=row.mutation_id,
        mutation_type=MutationType(row.mutation_type),
        user_id=row.user_id,
        item_id=row.item_id,
        payload=dict(row.payload or {}),
        created_at=as_utc(row.created_at),
        failed_at=as_utc(row.failed_at),
        retry_count=row.retry_count,
        reason=row.reason,
    )


class OfflineQueue:
    """Queue of mutations waiting for remote acknowledgement.

    Writes coalesce: a new mutation replaces a pending one of the same type
    for the same item, an unsave drops everything else pending for the item,
    and a save drops a pending unsave. The replacing entry takes the newest
    position so replay always ends with the latest intent.
    """

    def __init__(
        self,
        db: Session,
        max_retries: Optional[int] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize the queue with a database session."""
        self.db = db
        self.max_retries = settings.sync.max_retries if max_retries is None else max_retries
        self._now = now or (lambda: datetime.now(UTC))

    def _rows_for_item(self, user_id: str, item_id: str) -> List[QueuedMutationRow]:
        return (
            self.db.query(QueuedMutationRow)
            .filter(
                and_(
                    QueuedMutationRow.user_id == user_id,
                    QueuedMutationRow.item_id == item_id,
                )
            )
            .all()
        )

    def _superseded(self, row: QueuedMutationRow, mutation_type: MutationType) -> bool:
        existing = MutationType(row.mutation_type)
        if existing is mutation_type:
            return True
        if mutation_type is MutationType.UNSAVE:
            return True
        if mutation_type is MutationType.SAVE and existing is MutationType.UNSAVE:
            return True
        return False

    def enqueue(
        self,
        mutation_type: MutationType,
        item_id: str,
        payload: Dict[str, Any],
        user_id: str,
        created_at: Optional[datetime] = None,
    ) -> QueuedMutation:
        """Append a mutation, replacing any pending mutation it supersedes."""
        replaced = 0
        for row in self._rows_for_item(user_id, item_id):
            if self._superseded(row, mutation_type):
                self.db.delete(row)
                replaced += 1

        row = QueuedMutationRow(
            id=uuid.uuid4().hex,
            mutation_type=mutation_type.value,
            user_id=user_id,
            item_id=item_id,
            payload=payload,
            created_at=as_utc(created_at or self._now()),
            retry_count=0,
        )
        self.db.add(row)
        self.db.commit()

        if replaced:
            logger.debug(
                "Coalesced %d pending mutation(s) for item %s into %s",
                replaced,
                item_id,
                mutation_type.value,
            )
        monitoring.mutations_enqueued.labels(mutation_type=mutation_type.value).inc()
        monitoring.queue_size.set(self.size())
        return _to_mutation(row)

    def get(self, mutation_id: str) -> Optional[QueuedMutation]:
        """Get a pending mutation by id."""
        row = self.db.query(QueuedMutationRow).filter(QueuedMutationRow.id == mutation_id).first()
        return _to_mutation(row) if row else None

    def dequeue_confirmed(self, mutation_id: str) -> bool:
        """Remove a mutation the remote store accepted. False if already gone."""
        row = self.db.query(QueuedMutationRow).filter(QueuedMutationRow.id == mutation_id).first()
        if row is None:
            return False
        self.db.delete(row)
        self.db.commit()
        monitoring.queue_size.set(self.size())
        return True

    def mark_failed(self, mutation_id: str, reason: Optional[str] = None) -> Optional[DeadLetter]:
        """Count a failed attempt; move the mutation to dead letters once retries run out."""
        row = self.db.query(QueuedMutationRow).filter(QueuedMutationRow.id == mutation_id).first()
        if row is None:
            return None

        row.retry_count += 1
        if row.retry_count <= self.max_retries:
            self.db.commit()
            logger.info(
                "Mutation %s (%s, item %s) failed, attempt %d/%d: %s",
                row.id,
                row.mutation_type,
                row.item_id,
                row.retry_count,
                self.max_retries,
                reason,
            )
            return None

        dead_row = DeadLetterRow(
            id=uuid.uuid4().hex,
            mutation_id=row.id,
            mutation_type=row.mutation_type,
            user_id=row.user_id,
            item_id=row.item_id,
            payload=dict(row.payload or {}),
            created_at=row.created_at,
            failed_at=as_utc(self._now()),
            retry_count=row.retry_count,
            reason=reason,
        )
        self.db.add(dead_row)
        self.db.delete(row)
        self.db.commit()

        logger.warning(
            "Mutation %s (%s, item %s) exhausted %d retries and was moved to dead letters: %s",
            dead_row.mutation_id,
            dead_row.mutation_type,
            dead_row.item_id,
            self.max_retries,
            reason,
        )
        monitoring.dead_letters.labels(mutation_type=dead_row.mutation_type).inc()
        monitoring.queue_size.set(self.size())
        return _to_dead_letter(dead_row)

    def list_pending(self, user_id: Optional[str] = None) -> List[QueuedMutation]:
        """Pending mutations in replay order (oldest first)."""
        query = self.db.query(QueuedMutationRow)
        if user_id is not None:
            query = query.filter(QueuedMutationRow.user_id == user_id)
        rows = query.order_by(QueuedMutationRow.created_at, QueuedMutationRow.seq).all()
        return [_to_mutation(row) for row in rows]

    def pending_for_item(self, user_id: str, item_id: str) -> List[QueuedMutation]:
        """Pending mutations of one item in replay order."""
        rows = sorted(self._rows_for_item(user_id, item_id), key=lambda r: (as_utc(r.created_at), r.seq))
        return [_to_mutation(row) for row in rows]

    def refresh_payloads(self, user_id: str, item_id: str, payload: Dict[str, Any]) -> int:
        """Replace the snapshot of every pending upsert of an item, keeping ids and order."""
        refreshed = 0
        for row in self._rows_for_item(user_id, item_id):
            if row.mutation_type != MutationType.UNSAVE.value:
                row.payload = dict(payload)
                refreshed += 1
        self.db.commit()
        return refreshed

    def size(self, user_id: Optional[str] = None) -> int:
        """Number of pending mutations."""
        query = self.db.query(QueuedMutationRow)
        if user_id is not None:
            query = query.filter(QueuedMutationRow.user_id == user_id)
        return query.count()

    def has_pending_changes(self, user_id: Optional[str] = None) -> bool:
        return self.size(user_id) > 0

    def list_dead_letters(self, user_id: Optional[str] = None) -> List[DeadLetter]:
        """Mutations that need attention, oldest failure first."""
        query = self.db.query(DeadLetterRow)
        if user_id is not None:
            query = query.filter(DeadLetterRow.user_id == user_id)
        return [_to_dead_letter(row) for row in query.order_by(DeadLetterRow.failed_at).all()]

    def get_dead_letter(self, dead_letter_id: str) -> Optional[DeadLetter]:
        row = self.db.query(DeadLetterRow).filter(DeadLetterRow.id == dead_letter_id).first()
        return _to_dead_letter(row) if row else None

    def discard_dead_letter(self, dead_letter_id: str) -> bool:
        """Acknowledge a dead letter and remove it."""
        row = self.db.query(DeadLetterRow).filter(DeadLetterRow.id == dead_letter_id).first()
        if row is None:
            return False
        self.db.delete(row)
        self.db.commit()
        return True

    def clear(self, user_id: Optional[str] = None) -> int:
        """Drop all pending mutations. Returns how many were removed."""
        query = self.db.query(QueuedMutationRow)
        if user_id is not None:
            query = query.filter(QueuedMutationRow.user_id == user_id)
        removed = query.delete(synchronize_session=False)
        self.db.commit()
        monitoring.queue_size.set(self.size())
        return removed
