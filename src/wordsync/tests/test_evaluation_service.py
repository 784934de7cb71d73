"""Tests for sentence evaluation."""
import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from wordsync.models.practice_models import EvaluationOutcome
from wordsync.models.progress import VocabularyItem
from wordsync.services.evaluation_service import (
    EvaluationService,
    HttpEvaluator,
    fallback_evaluation,
)

WORD = VocabularyItem(
    id="w1",
    text="serendipity",
    definition="finding something good without looking for it",
    difficulty="advanced",
    category="general",
)


class SlowEvaluator:
    async def evaluate(self, sentence, item):
        await asyncio.sleep(5)


def test_fallback_full_score() -> None:
    """Test a sentence that passes every check."""
    outcome = fallback_evaluation("It was pure serendipity that we met.", WORD)

    assert outcome.score == 100
    assert outcome.is_correct
    assert outcome.is_fallback
    assert outcome.suggestions == []


def test_fallback_bare_word() -> None:
    """Test that the word alone is not enough."""
    outcome = fallback_evaluation("serendipity", WORD)

    assert outcome.score == 40
    assert not outcome.is_correct
    assert "Try writing a longer sentence." in outcome.suggestions
    assert "Start the sentence with a capital letter." in outcome.suggestions


def test_fallback_word_at_start_gets_no_context_points() -> None:
    outcome = fallback_evaluation("Serendipity is a lovely word to learn.", WORD)
    assert outcome.score == 80
    assert outcome.is_correct


def test_fallback_missing_word() -> None:
    outcome = fallback_evaluation("I like cats", WORD)

    assert outcome.score == 10
    assert not outcome.is_correct
    assert 'Add the word "serendipity" to your sentence.' in outcome.suggestions


def test_fallback_ignores_surrounding_whitespace() -> None:
    assert fallback_evaluation("  It was pure serendipity that we met.  ", WORD).score == 100


def test_fallback_empty_sentence() -> None:
    outcome = fallback_evaluation("", WORD)
    assert outcome.score == 0
    assert outcome.feedback


@pytest.mark.asyncio
async def test_evaluate_without_evaluator_uses_fallback() -> None:
    outcome = await EvaluationService().evaluate("It was pure serendipity that we met.", WORD)
    assert outcome.is_fallback
    assert outcome.score == 100


@pytest.mark.asyncio
async def test_evaluate_passes_through_evaluator_result() -> None:
    """Test that a working evaluator is used as is."""
    remote = EvaluationOutcome(score=73, is_correct=True, feedback="Nice.", suggestions=["Vary it."])
    evaluator = MagicMock()
    evaluator.evaluate = AsyncMock(return_value=remote)

    outcome = await EvaluationService(evaluator).evaluate("A serendipity sentence.", WORD)

    assert outcome is remote
    evaluator.evaluate.assert_awaited_once_with("A serendipity sentence.", WORD)


@pytest.mark.asyncio
async def test_evaluate_falls_back_on_error() -> None:
    """Test that evaluator failures never reach the caller."""
    evaluator = MagicMock()
    evaluator.evaluate = AsyncMock(side_effect=ConnectionError("evaluator unreachable"))

    outcome = await EvaluationService(evaluator).evaluate("serendipity", WORD)
    assert outcome.is_fallback
    assert outcome.score == 40


@pytest.mark.asyncio
async def test_evaluate_falls_back_on_timeout() -> None:
    service = EvaluationService(SlowEvaluator(), timeout=0.01)
    outcome = await service.evaluate("It was pure serendipity that we met.", WORD)
    assert outcome.is_fallback
    assert outcome.score == 100


@pytest.mark.asyncio
async def test_http_evaluator_posts_sentence_and_word() -> None:
    """Test the request body and response parsing of the HTTP evaluator."""
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(
            200,
            json={"score": 120, "isCorrect": True, "feedback": "Great", "suggestions": ["Keep going"]},
        )

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    evaluator = HttpEvaluator("https://eval.test/evaluate", client=client, token="secret")

    outcome = await evaluator.evaluate("It was pure serendipity.", WORD)
    await evaluator.aclose()

    assert seen["body"] == {
        "sentence": "It was pure serendipity.",
        "word": {
            "word": "serendipity",
            "definition": "finding something good without looking for it",
            "level": "advanced",
            "category": "general",
        },
    }
    assert seen["auth"] == "Bearer secret"
    assert outcome.score == 100
    assert outcome.is_correct
    assert outcome.suggestions == ["Keep going"]
    assert not outcome.is_fallback


@pytest.mark.asyncio
async def test_http_evaluator_error_status_falls_back() -> None:
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
    service = EvaluationService(HttpEvaluator("https://eval.test/evaluate", client=client))

    outcome = await service.evaluate("serendipity", WORD)
    await client.aclose()

    assert outcome.is_fallback
    assert outcome.score == 40


@pytest.mark.asyncio
async def test_http_evaluator_malformed_body_falls_back() -> None:
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"ok": 1})))
    service = EvaluationService(HttpEvaluator("https://eval.test/evaluate", client=client))

    outcome = await service.evaluate("serendipity", WORD)
    await client.aclose()

    assert outcome.is_fallback


if __name__ == "__main__":
    pytest.main([__file__])
