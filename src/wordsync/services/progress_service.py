"""Service for a learner's saved items and their progress."""
import logging
from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from wordsync import monitoring
from wordsync.config import LearningSettings, settings
from wordsync.models import progress
from wordsync.models.progress import ProgressRecord, Strength, SyncState, serialize_record
from wordsync.models.sync_models import MutationType, QueuedMutation
from wordsync.services.connectivity import Clock, SystemClock
from wordsync.services.offline_queue import OfflineQueue
from wordsync.services.progress_repository import ProgressRepository
from wordsync.services.strength import advance

logger = logging.getLogger(__name__)

SORT_OPTIONS = ("saved_desc", "saved_asc", "strength", "last_practiced")


class ProgressService:
    """Optimistic local writes for one learner, each mirrored into the offline queue."""

    def __init__(
        self,
        db: Session,
        user_id: str,
        queue: Optional[OfflineQueue] = None,
        clock: Optional[Clock] = None,
        learning: Optional[LearningSettings] = None,
    ):
        """Initialize the service with a database session and the learner's id."""
        self.db = db
        self.user_id = user_id
        self.clock = clock or SystemClock()
        self.queue = queue or OfflineQueue(db, now=self.clock.now)
        self.repository = ProgressRepository(db)
        self.learning = learning or settings.learning

    def _enqueue(self, mutation_type: MutationType, record: ProgressRecord) -> QueuedMutation:
        payload = {} if mutation_type is MutationType.UNSAVE else serialize_record(record)
        return self.queue.enqueue(mutation_type, record.item_id, payload, user_id=self.user_id)

    def _require(self, item_id: str) -> ProgressRecord:
        record = self.get(item_id)
        if record is None:
            raise ValueError(f"Item {item_id} is not saved for user {self.user_id}")
        return record

    @staticmethod
    def _pending_update_state(record: ProgressRecord) -> SyncState:
        # A record the server has never seen stays a create
        if record.sync_state is SyncState.PENDING_CREATE:
            return SyncState.PENDING_CREATE
        return SyncState.PENDING_UPDATE

    def get(self, item_id: str) -> Optional[ProgressRecord]:
        """Get the visible record for an item (unsaved items are hidden)."""
        record = self.repository.get(self.user_id, item_id)
        if record is None or record.sync_state is SyncState.PENDING_DELETE:
            return None
        return record

    def is_saved(self, item_id: str) -> bool:
        return self.get(item_id) is not None

    def save_item(self, item_id: str) -> ProgressRecord:
        """Save an item. Saving an already saved item returns its record."""
        existing = self.repository.get(self.user_id, item_id)
        if existing is not None and existing.sync_state is not SyncState.PENDING_DELETE:
            return existing

        if existing is not None:
            # Unsaved locally but not yet synced: bring the old record back
            record = existing
            record.sync_state = SyncState.PENDING_UPDATE
            logger.info("Restoring unsaved item %s for user %s", item_id, self.user_id)
        else:
            record = progress.create(self.user_id, item_id, self.clock.now())
            logger.info("Saved item %s for user %s", item_id, self.user_id)

        progress.validate(record)
        self.repository.put(record)
        self._enqueue(MutationType.SAVE, record)
        return record

    def unsave_item(self, item_id: str) -> bool:
        """Unsave an item. The record is removed once the server confirms."""
        record = self.get(item_id)
        if record is None:
            return False
        record.sync_state = SyncState.PENDING_DELETE
        self.repository.put(record)
        self._enqueue(MutationType.UNSAVE, record)
        logger.info("Unsaved item %s for user %s", item_id, self.user_id)
        return True

    def update_notes(self, item_id: str, notes: Optional[str]) -> ProgressRecord:
        """Replace the learner's notes for an item."""
        record = self._require(item_id)
        record.notes = notes or None
        record.sync_state = self._pending_update_state(record)
        self.repository.put(record)
        self._enqueue(MutationType.UPDATE_NOTES, record)
        return record

    def set_favorite(self, item_id: str, is_favorite: bool) -> ProgressRecord:
        """Set the favorite flag. Queued together with notes as a user edit."""
        record = self._require(item_id)
        record.is_favorite = is_favorite
        record.sync_state = self._pending_update_state(record)
        self.repository.put(record)
        self._enqueue(MutationType.UPDATE_NOTES, record)
        return record

    def toggle_favorite(self, item_id: str) -> ProgressRecord:
        record = self._require(item_id)
        return self.set_favorite(item_id, not record.is_favorite)

    def record_practice(self, item_id: str, is_correct: bool, now: Optional[datetime] = None) -> ProgressRecord:
        """Apply a practice outcome through the strength state machine."""
        record = self._require(item_id)
        updated = advance(record, is_correct, now or self.clock.now(), self.learning)
        updated.sync_state = self._pending_update_state(record)
        progress.validate(updated)
        self.repository.put(updated)
        self._enqueue(MutationType.RECORD_PRACTICE, updated)

        monitoring.practice_attempts.labels(outcome="correct" if is_correct else "incorrect").inc()
        if updated.strength is not record.strength:
            monitoring.tier_transitions.labels(
                from_tier=record.strength.value,
                to_tier=updated.strength.value,
            ).inc()
            logger.info(
                "Item %s for user %s is now %s (%d/%d correct)",
                item_id,
                self.user_id,
                updated.strength.value,
                updated.correct_count,
                updated.practice_count,
            )
        return updated

    def due_items(self, now: Optional[datetime] = None, limit: Optional[int] = None) -> List[ProgressRecord]:
        """Records due for practice, unscheduled first, then by due date."""
        limit = self.learning.due_limit if limit is None else limit
        return self.repository.list_due(self.user_id, now or self.clock.now(), limit)

    def weak_items(self, limit: Optional[int] = None) -> List[ProgressRecord]:
        """Records still in the new or learning tier, least practiced first."""
        limit = self.learning.due_limit if limit is None else limit
        return self.repository.list_weak(self.user_id, limit)

    def list_records(
        self,
        strength: Optional[Strength] = None,
        favorites_only: bool = False,
        sort: str = "saved_desc",
    ) -> List[ProgressRecord]:
        """Saved records with optional filters."""
        if sort not in SORT_OPTIONS:
            raise ValueError(f"Unknown sort option: {sort}")

        records = self.repository.list_for_user(self.user_id)
        if strength is not None:
            records = [r for r in records if r.strength is strength]
        if favorites_only:
            records = [r for r in records if r.is_favorite]

        if sort == "saved_desc":
            records.sort(key=lambda r: r.saved_at, reverse=True)
        elif sort == "saved_asc":
            records.sort(key=lambda r: r.saved_at)
        elif sort == "strength":
            records.sort(key=lambda r: r.strength.rank, reverse=True)
        else:
            # Never practiced records go last
            practiced = sorted(
                (r for r in records if r.last_practiced_at),
                key=lambda r: r.last_practiced_at,
                reverse=True,
            )
            records = practiced + [r for r in records if not r.last_practiced_at]
        return records

    def strength_breakdown(self) -> Dict[Strength, int]:
        """Number of saved records per tier."""
        counts = Counter(r.strength for r in self.repository.list_for_user(self.user_id))
        return {tier: counts.get(tier, 0) for tier in Strength}

    def apply_remote(self, record: ProgressRecord) -> ProgressRecord:
        """Store a record that came from the server, keeping pending work pending."""
        pending = self.queue.pending_for_item(self.user_id, record.item_id)
        record.sync_state = SyncState.PENDING_UPDATE if pending else SyncState.SYNCED
        progress.validate(record)
        self.repository.put(record)
        return record

    def settle(self, item_id: str) -> None:
        """Mark the record synced when nothing is left in the queue for it."""
        if self.queue.pending_for_item(self.user_id, item_id):
            return
        record = self.repository.get(self.user_id, item_id)
        if record is None:
            return
        if record.sync_state is SyncState.PENDING_DELETE:
            self.repository.delete(self.user_id, item_id)
            logger.debug("Removed unsaved item %s for user %s", item_id, self.user_id)
        elif record.sync_state is not SyncState.SYNCED:
            record.sync_state = SyncState.SYNCED
            self.repository.put(record)

    def requeue_dead_letter(self, dead_letter_id: str) -> Optional[QueuedMutation]:
        """Give a dead-lettered mutation another round of retries."""
        dead = self.queue.get_dead_letter(dead_letter_id)
        if dead is None or dead.user_id != self.user_id:
            return None

        payload = dead.payload
        current = self.repository.get(self.user_id, dead.item_id)
        if current is not None and dead.mutation_type is not MutationType.UNSAVE:
            payload = serialize_record(current)

        mutation = self.queue.enqueue(dead.mutation_type, dead.item_id, payload, user_id=self.user_id)
        self.queue.discard_dead_letter(dead_letter_id)
        logger.info("Requeued dead-lettered %s for item %s", dead.mutation_type.value, dead.item_id)
        return mutation
