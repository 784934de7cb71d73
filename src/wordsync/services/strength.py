"""Strength state machine: tier transitions and review scheduling.

The machine has four ordered states (new < learning < familiar < mastered)
and no terminal state: a failed attempt demotes familiar and mastered items
one tier, modelling forgetting. Review intervals are fixed per tier rather
than adapted per item.
"""
import dataclasses
import logging
from datetime import datetime, timedelta
from typing import Optional

from wordsync.config import LearningSettings, settings
from wordsync.models.progress import ProgressRecord, Strength

logger = logging.getLogger(__name__)


def interval_for(strength: Strength, learning: Optional[LearningSettings] = None) -> timedelta:
    """Time until the next review for an item in the given tier."""
    learning = learning or settings.learning
    return timedelta(hours=learning.interval_hours[strength.value])


def next_strength(
    current: Strength,
    is_correct: bool,
    practice_count: int,
    correct_count: int,
    learning: Optional[LearningSettings] = None,
) -> Strength:
    """Tier after an attempt, given the counts that already include it."""
    learning = learning or settings.learning
    rate = correct_count / practice_count if practice_count else 0.0

    if not is_correct:
        if current in (Strength.FAMILIAR, Strength.MASTERED):
            return current.demoted()
        return current

    if current is Strength.NEW and practice_count >= 1:
        return Strength.LEARNING
    if (
        current is Strength.LEARNING
        and practice_count >= learning.familiar_min_practice
        and rate >= learning.familiar_min_rate
    ):
        return Strength.FAMILIAR
    if (
        current is Strength.FAMILIAR
        and practice_count >= learning.mastered_min_practice
        and rate >= learning.mastered_min_rate
    ):
        return Strength.MASTERED
    return current


def advance(
    record: ProgressRecord,
    is_correct: bool,
    now: datetime,
    learning: Optional[LearningSettings] = None,
) -> ProgressRecord:
    """Apply one practice outcome and return the updated record.

    The input record is left untouched. The same (record, is_correct, now)
    always produces the same result.
    """
    practice_count = record.practice_count + 1
    correct_count = record.correct_count + (1 if is_correct else 0)
    strength = next_strength(record.strength, is_correct, practice_count, correct_count, learning)

    if strength is not record.strength:
        logger.debug(
            "Item %s for user %s moved %s -> %s",
            record.item_id,
            record.user_id,
            record.strength.value,
            strength.value,
        )

    return dataclasses.replace(
        record,
        strength=strength,
        practice_count=practice_count,
        correct_count=correct_count,
        last_practiced_at=now,
        next_due_at=now + interval_for(strength, learning),
    )
