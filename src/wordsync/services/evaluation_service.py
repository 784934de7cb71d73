"""Sentence evaluation with a deterministic offline fallback."""
import asyncio
import logging
import re
from typing import List, Optional, Protocol

import httpx

from wordsync import monitoring
from wordsync.config import EvaluationSettings, settings
from wordsync.models.practice_models import EvaluationOutcome
from wordsync.models.progress import VocabularyItem

logger = logging.getLogger(__name__)

_TERMINAL_PUNCTUATION = re.compile(r"[.!?]$")


class Evaluator(Protocol):
    """Scores how well a sentence uses a vocabulary item."""

    async def evaluate(self, sentence: str, item: VocabularyItem) -> EvaluationOutcome:
        ...


def fallback_evaluation(
    sentence: str,
    item: VocabularyItem,
    config: Optional[EvaluationSettings] = None,
) -> EvaluationOutcome:
    """Score a sentence locally from simple surface checks."""
    config = config or settings.evaluation
    stripped = sentence.strip()
    word_lower = item.text.lower()
    sentence_lower = stripped.lower()
    word_index = sentence_lower.find(word_lower) if word_lower else -1
    word_count = len(stripped.split())

    score = 0
    feedback: List[str] = []
    suggestions: List[str] = []

    if word_index >= 0:
        score += config.word_present_points
        feedback.append("The word is used in the sentence.")
    else:
        feedback.append("The word was not found in the sentence.")
        suggestions.append(f'Add the word "{item.text}" to your sentence.')

    if word_count >= config.min_words:
        score += config.length_points
        feedback.append("The sentence is long enough.")
    else:
        suggestions.append("Try writing a longer sentence.")

    if _TERMINAL_PUNCTUATION.search(stripped):
        score += config.punctuation_points
    else:
        suggestions.append("End the sentence with a punctuation mark.")

    if stripped[:1].isupper():
        score += config.capitalization_points
    else:
        suggestions.append("Start the sentence with a capital letter.")

    # Word surrounded by other text
    if 0 < word_index < len(stripped) - len(item.text):
        score += config.context_points
        feedback.append("The word fits into its context.")

    score = min(100, score)
    return EvaluationOutcome(
        score=score,
        is_correct=score >= config.pass_score,
        feedback=" ".join(feedback) or "The sentence was checked.",
        suggestions=suggestions,
        is_fallback=True,
    )


class HttpEvaluator:
    """Evaluator backed by a remote evaluation endpoint."""

    def __init__(self, url: str, client: Optional[httpx.AsyncClient] = None, token: Optional[str] = None):
        self.url = url
        self.client = client or httpx.AsyncClient()
        self.token = token

    async def evaluate(self, sentence: str, item: VocabularyItem) -> EvaluationOutcome:
        """Post the sentence and parse the verdict. Raises on any failure."""
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        response = await self.client.post(
            self.url,
            json={
                "sentence": sentence,
                "word": {
                    "word": item.text,
                    "definition": item.definition,
                    "level": item.difficulty,
                    "category": item.category,
                },
            },
            headers=headers,
        )
        response.raise_for_status()
        data = response.json()
        if not data:
            raise ValueError("Empty evaluation response")

        score = max(0, min(100, int(data["score"])))
        return EvaluationOutcome(
            score=score,
            is_correct=bool(data["isCorrect"]),
            feedback=str(data.get("feedback", "")),
            suggestions=list(data.get("suggestions") or []),
        )

    async def aclose(self) -> None:
        await self.client.aclose()


class EvaluationService:
    """Runs the evaluator under a timeout and falls back locally on failure."""

    def __init__(
        self,
        evaluator: Optional[Evaluator] = None,
        timeout: Optional[float] = None,
        config: Optional[EvaluationSettings] = None,
    ):
        self.evaluator = evaluator
        self.config = config or settings.evaluation
        self.timeout = self.config.timeout_seconds if timeout is None else timeout

    async def evaluate(self, sentence: str, item: VocabularyItem) -> EvaluationOutcome:
        """Evaluate a sentence. Never raises for evaluator failures."""
        if self.evaluator is None:
            monitoring.evaluator_fallbacks.labels(reason="no_evaluator").inc()
            return fallback_evaluation(sentence, item, self.config)

        try:
            return await asyncio.wait_for(self.evaluator.evaluate(sentence, item), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Evaluator timed out after %.1fs for item %s, using fallback", self.timeout, item.id)
            monitoring.evaluator_fallbacks.labels(reason="timeout").inc()
        except Exception as e:
            logger.error("Evaluator failed for item %s, using fallback: %s", item.id, e)
            monitoring.evaluator_fallbacks.labels(reason="error").inc()
        return fallback_evaluation(sentence, item, self.config)
