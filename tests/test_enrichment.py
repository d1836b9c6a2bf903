"""Tests for the content enricher."""

import asyncio

from lecture_recall.services.enrichment import ContentEnricher
from tests.conftest import SAMPLE_OPTIONS, FakeEnrichmentClient


class _SlowClient(FakeEnrichmentClient):
    async def generate_json(self, **kwargs):  # type: ignore[no-untyped-def]
        await asyncio.sleep(1)
        return {"has_question": True, "question": "Too late?"}


def test_detect_returns_trimmed_question() -> None:
    client = FakeEnrichmentClient()
    client.queue_json(
        "question_detection", {"has_question": True, "question": "  What is ATP? "}
    )
    enricher = ContentEnricher(client)

    detection = asyncio.run(enricher.detect("so, what is ATP?"))

    assert detection is not None
    assert detection.has_question is True
    assert detection.question == "What is ATP?"
    assert client.json_calls[0][0] == "question_detection"
    assert "so, what is ATP?" in client.json_calls[0][1]


def test_detect_treats_empty_question_as_no_question() -> None:
    client = FakeEnrichmentClient()
    client.queue_json("question_detection", {"has_question": True, "question": "  "})
    enricher = ContentEnricher(client)

    detection = asyncio.run(enricher.detect("umm"))

    assert detection is not None
    assert detection.has_question is False
    assert detection.question is None


def test_detect_returns_none_on_failure_or_malformed_output() -> None:
    client = FakeEnrichmentClient()
    client.queue_json("question_detection", RuntimeError("boom"))
    client.queue_json("question_detection", {"question": "missing flag"})
    enricher = ContentEnricher(client)

    assert asyncio.run(enricher.detect("first")) is None
    assert asyncio.run(enricher.detect("second")) is None


def test_detect_times_out() -> None:
    enricher = ContentEnricher(_SlowClient(), timeout_seconds=0.01)

    assert asyncio.run(enricher.detect("anything")) is None


def test_generate_quiz_validates_options() -> None:
    client = FakeEnrichmentClient()
    client.queue_json("quiz_options", {**SAMPLE_OPTIONS, "correct_answer": "C"})
    client.queue_json("quiz_options", {**SAMPLE_OPTIONS, "correct_answer": "E"})
    client.queue_json("quiz_options", {**SAMPLE_OPTIONS, "option_b": "", "correct_answer": "A"})
    enricher = ContentEnricher(client)

    generated = asyncio.run(enricher.generate_quiz("Which organelle?"))
    assert generated is not None
    assert generated.correct_answer == "C"
    assert generated.options()["A"] == SAMPLE_OPTIONS["option_a"]

    assert asyncio.run(enricher.generate_quiz("Which organelle?")) is None
    assert asyncio.run(enricher.generate_quiz("Which organelle?")) is None


def test_summarize_and_review_return_text_or_none() -> None:
    client = FakeEnrichmentClient(text_responses=["  Cells make ATP.  ", "   "])
    enricher = ContentEnricher(client)

    assert asyncio.run(enricher.summarize("transcript")) == "Cells make ATP."
    assert (
        asyncio.run(enricher.review([{"question": "What is ATP?"}], "summary")) is None
    )
    assert asyncio.run(enricher.summarize("transcript")) is None
    assert '"What is ATP?"' in client.text_calls[1]
