"""Content enrichment: question detection, quiz generation and summaries."""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Protocol

from pydantic import ValidationError

from lecture_recall.domain.enrichment import GeneratedQuiz, QuestionDetection

logger = logging.getLogger(__name__)

DETECTION_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "has_question": {"type": "boolean"},
        "question": {"anyOf": [{"type": "string"}, {"type": "null"}]},
    },
    "required": ["has_question", "question"],
    "additionalProperties": False,
}

QUIZ_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "option_a": {"type": "string"},
        "option_b": {"type": "string"},
        "option_c": {"type": "string"},
        "option_d": {"type": "string"},
        "correct_answer": {"type": "string", "enum": ["A", "B", "C", "D"]},
    },
    "required": ["option_a", "option_b", "option_c", "option_d", "correct_answer"],
    "additionalProperties": False,
}

DETECTION_PROMPT = (
    "A presenter is speaking to a live audience. The text below is a "
    "speech-to-text transcript and may contain recognition errors.\n"
    "Decide whether it contains a question addressed to the audience. "
    "If it contains several, keep only the first complete one. Rewrite it "
    "as a concise quiz question without adding information.\n\n"
    'Transcript: "{text}"'
)

QUIZ_PROMPT = (
    "Write four short multiple-choice answers for the question below so "
    "they can be read quickly. Exactly one must be correct; the other three "
    "must be plausible but wrong. Make them challenging. Mark the correct "
    "one as A, B, C or D.\n\n"
    'Question: "{question}"'
)

SUMMARY_PROMPT = (
    "Summarize this lecture transcript for student review. Cover the main "
    "topics, the key concepts explained and the points the lecturer "
    "emphasized. Be concise but complete.\n\n"
    'Transcript: "{text}"'
)

REVIEW_PROMPT = (
    "A student missed the questions below during a lecture. Using the "
    "lecture summary, recommend 3-5 specific topics they should review.\n\n"
    "Missed questions: {missed}\n"
    'Lecture summary: "{summary}"'
)


class EnrichmentClient(Protocol):
    """Interface for the language model behind content enrichment."""

    async def generate_json(
        self,
        *,
        prompt: str,
        schema: dict[str, object],
        schema_name: str,
        temperature: float,
    ) -> dict[str, object]:
        """Return a JSON object conforming to ``schema``."""

    async def generate_text(self, *, prompt: str, temperature: float) -> str:
        """Return free-form text."""


@dataclass
class ContentEnricher:
    """Best-effort wrapper whose methods return None instead of raising."""

    client: EnrichmentClient
    timeout_seconds: float = 15.0

    async def detect(self, text: str) -> QuestionDetection | None:
        """Look for an audience question in a transcript fragment."""
        raw = await self._call_json(
            DETECTION_PROMPT.format(text=text),
            DETECTION_SCHEMA,
            "question_detection",
            temperature=0.1,
        )
        if raw is None:
            return None
        try:
            detection = QuestionDetection.model_validate(raw)
        except ValidationError:
            logger.warning("Discarding malformed question detection", exc_info=True)
            return None
        question = (detection.question or "").strip()
        if not detection.has_question or not question:
            return QuestionDetection(has_question=False, question=None)
        return QuestionDetection(has_question=True, question=question)

    async def generate_quiz(self, question: str) -> GeneratedQuiz | None:
        """Generate four options for a detected question."""
        raw = await self._call_json(
            QUIZ_PROMPT.format(question=question),
            QUIZ_SCHEMA,
            "quiz_options",
            temperature=0.3,
        )
        if raw is None:
            return None
        try:
            return GeneratedQuiz.model_validate(raw)
        except ValidationError:
            logger.warning("Discarding malformed quiz options", exc_info=True)
            return None

    async def summarize(self, text: str) -> str | None:
        """Summarize a full lecture transcript."""
        return await self._call_text(SUMMARY_PROMPT.format(text=text), 0.2)

    async def review(
        self, missed_questions: list[dict[str, object]], summary: str
    ) -> str | None:
        """Recommend review topics from missed questions and a summary."""
        prompt = REVIEW_PROMPT.format(
            missed=json.dumps(missed_questions, ensure_ascii=False),
            summary=summary,
        )
        return await self._call_text(prompt, 0.3)

    async def _call_json(
        self,
        prompt: str,
        schema: dict[str, object],
        schema_name: str,
        *,
        temperature: float,
    ) -> dict[str, object] | None:
        try:
            return await asyncio.wait_for(
                self.client.generate_json(
                    prompt=prompt,
                    schema=schema,
                    schema_name=schema_name,
                    temperature=temperature,
                ),
                timeout=self.timeout_seconds,
            )
        except Exception:
            logger.warning(
                "Enrichment call failed", extra={"call": schema_name}, exc_info=True
            )
            return None

    async def _call_text(self, prompt: str, temperature: float) -> str | None:
        try:
            text = await asyncio.wait_for(
                self.client.generate_text(prompt=prompt, temperature=temperature),
                timeout=self.timeout_seconds,
            )
        except Exception:
            logger.warning("Enrichment text call failed", exc_info=True)
            return None
        cleaned = text.strip()
        return cleaned or None
