"""Practice session orchestration."""
import logging
import uuid
from typing import List, Optional, Sequence

from wordsync import monitoring
from wordsync.config import EvaluationSettings, settings
from wordsync.errors import EmptyQueueError, NothingSubmittedError, SessionEndedError
from wordsync.models.practice_models import (
    EvaluationOutcome,
    NextAction,
    SessionProgress,
    SessionResult,
    SessionSummary,
    Verdict,
)
from wordsync.models.progress import ProgressRecord, VocabularyItem
from wordsync.services.evaluation_service import EvaluationService
from wordsync.services.progress_service import ProgressService

logger = logging.getLogger(__name__)


def verdict_for(score: int, config: Optional[EvaluationSettings] = None) -> Verdict:
    """Map a 0-100 score onto a verdict."""
    config = config or settings.evaluation
    if score >= config.excellent_score:
        return Verdict.EXCELLENT
    if score >= config.good_score:
        return Verdict.GOOD
    if score >= config.partial_score:
        return Verdict.PARTIAL
    return Verdict.NEEDS_WORK


def suggest_next_action(summary: SessionSummary, config: Optional[EvaluationSettings] = None) -> NextAction:
    """Pick what to do next from the share of low-scoring attempts."""
    config = config or settings.evaluation
    if summary.evaluated == 0:
        return NextAction.REVIEW_WEAK if summary.skipped_count else NextAction.CONTINUE
    low_ratio = summary.needs_work / summary.evaluated
    if low_ratio < config.continue_below:
        return NextAction.CONTINUE
    if low_ratio < config.review_below:
        return NextAction.REVIEW_WEAK
    return NextAction.REST


class PracticeSession:
    """A bounded run of practice attempts over a fixed list of items."""

    def __init__(
        self,
        items: Sequence[VocabularyItem],
        progress_service: ProgressService,
        evaluation_service: EvaluationService,
    ):
        if not items:
            raise EmptyQueueError("No items to practice")
        self.id = uuid.uuid4().hex
        self.items: List[VocabularyItem] = list(items)
        self.progress_service = progress_service
        self.evaluation_service = evaluation_service
        self.index = 0
        self.results: List[SessionResult] = []
        self.started_at = progress_service.clock.now()
        self.ended_at = None
        self._sentence: Optional[str] = None
        self._outcome: Optional[EvaluationOutcome] = None

    @property
    def is_active(self) -> bool:
        return self.ended_at is None

    @property
    def current_item(self) -> Optional[VocabularyItem]:
        return self.items[self.index] if self.is_active else None

    @property
    def last_outcome(self) -> Optional[EvaluationOutcome]:
        return self._outcome

    def _ensure_active(self) -> VocabularyItem:
        if not self.is_active:
            raise SessionEndedError(f"Session {self.id} has ended")
        return self.items[self.index]

    def _move_on(self) -> None:
        self._sentence = None
        self._outcome = None
        self.index += 1
        if self.index >= len(self.items):
            self.ended_at = self.progress_service.clock.now()
            logger.info("Practice session %s completed with %d result(s)", self.id, len(self.results))

    async def submit(self, sentence: str) -> EvaluationOutcome:
        """Evaluate a sentence for the current item. Resubmitting replaces the outcome."""
        item = self._ensure_active()
        outcome = await self.evaluation_service.evaluate(sentence, item)
        # The session may have been driven elsewhere while we waited
        if self.current_item is not item:
            raise SessionEndedError(f"Item {item.id} is no longer current in session {self.id}")
        self._sentence = sentence
        self._outcome = outcome
        logger.debug("Item %s scored %d (fallback: %s)", item.id, outcome.score, outcome.is_fallback)
        return outcome

    def advance(self) -> ProgressRecord:
        """Apply the last outcome to the item's progress and move to the next item."""
        item = self._ensure_active()
        if self._outcome is None:
            raise NothingSubmittedError(f"Nothing submitted for item {item.id}")

        if not self.progress_service.is_saved(item.id):
            self.progress_service.save_item(item.id)
        record = self.progress_service.record_practice(item.id, self._outcome.is_correct)

        self.results.append(
            SessionResult(
                item_id=item.id,
                sentence=self._sentence or "",
                verdict=verdict_for(self._outcome.score, self.evaluation_service.config),
                timestamp=self.progress_service.clock.now(),
                outcome=self._outcome,
            )
        )
        self._move_on()
        return record

    def skip(self) -> None:
        """Skip the current item without touching its progress."""
        item = self._ensure_active()
        self.results.append(
            SessionResult(
                item_id=item.id,
                sentence="",
                verdict=Verdict.SKIPPED,
                timestamp=self.progress_service.clock.now(),
            )
        )
        monitoring.practice_skips.inc()
        self._move_on()

    def progress(self) -> SessionProgress:
        total = len(self.items)
        return SessionProgress(
            current=min(self.index + 1, total),
            total=total,
            percentage=round(len(self.results) / total * 100),
        )

    def summary(self) -> SessionSummary:
        """Aggregate the results so far."""
        config = self.evaluation_service.config
        summary = SessionSummary(total_items=len(self.items), completed_items=len(self.results))
        scores = []
        for result in self.results:
            if result.verdict is Verdict.SKIPPED:
                summary.skipped_count += 1
                continue
            scores.append(result.outcome.score)
            if result.outcome.is_fallback:
                summary.fallback_count += 1
            if result.verdict is Verdict.EXCELLENT:
                summary.excellent += 1
            elif result.verdict is Verdict.GOOD:
                summary.good += 1
            elif result.verdict is Verdict.PARTIAL:
                summary.partial += 1
            else:
                summary.needs_work += 1

        if scores:
            summary.average_score = sum(scores) / len(scores)
        summary.next_action = suggest_next_action(summary, config)
        return summary


class PracticeService:
    """Builds practice sessions for a learner."""

    def __init__(self, progress_service: ProgressService, evaluation_service: Optional[EvaluationService] = None):
        self.progress_service = progress_service
        self.evaluation_service = evaluation_service or EvaluationService()

    def start_session(self, items: Sequence[VocabularyItem]) -> PracticeSession:
        """Start a session over the given items.

        Raises:
            EmptyQueueError: no items were given.
        """
        limit = self.progress_service.learning.max_session_size
        session = PracticeSession(list(items)[:limit], self.progress_service, self.evaluation_service)
        logger.info("Started practice session %s with %d item(s)", session.id, len(session.items))
        return session

    def due_candidates(self, catalogue: Sequence[VocabularyItem], limit: Optional[int] = None) -> List[VocabularyItem]:
        """Catalogue items whose saved records are due, in due order."""
        by_id = {item.id: item for item in catalogue}
        due = self.progress_service.due_items(limit=limit)
        return [by_id[record.item_id] for record in due if record.item_id in by_id]
