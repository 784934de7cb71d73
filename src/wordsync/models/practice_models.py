"""Models for practice-session data structures."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class Verdict(Enum):
    """Outcome category of a single practice result."""
    EXCELLENT = "excellent"
    GOOD = "good"
    PARTIAL = "partial"
    NEEDS_WORK = "needs_work"
    SKIPPED = "skipped"


class NextAction(Enum):
    """What the learner should do after a session."""
    CONTINUE = "continue"
    REVIEW_WEAK = "review_weak"
    REST = "rest"


@dataclass
class EvaluationOutcome:
    """Score and feedback for one submitted sentence."""
    score: int
    is_correct: bool
    feedback: str
    suggestions: List[str] = field(default_factory=list)
    is_fallback: bool = False


@dataclass
class SessionResult:
    """One practice attempt (or skip) within a session."""
    item_id: str
    sentence: str
    verdict: Verdict
    timestamp: datetime
    outcome: Optional[EvaluationOutcome] = None

    @property
    def skipped(self) -> bool:
        return self.verdict is Verdict.SKIPPED


@dataclass
class SessionSummary:
    """Aggregated statistics for a practice session."""
    total_items: int
    completed_items: int
    excellent: int = 0
    good: int = 0
    partial: int = 0
    needs_work: int = 0
    skipped_count: int = 0
    fallback_count: int = 0
    average_score: Optional[float] = None
    next_action: NextAction = NextAction.CONTINUE

    @property
    def evaluated(self) -> int:
        return self.excellent + self.good + self.partial + self.needs_work

    @property
    def correct(self) -> int:
        return self.excellent + self.good


@dataclass
class SessionProgress:
    """Position within a session."""
    current: int
    total: int
    percentage: int
