"""Domain models for generated quizzes and submitted answers."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

OPTION_LABELS = ("A", "B", "C", "D")


@dataclass(frozen=True)
class QuizRecord:
    """A multiple-choice quiz derived from a transcript fragment."""

    id: UUID
    session_id: UUID
    source_text: str
    question: str
    options: dict[str, str]
    correct_answer: str
    time_limit: int
    created_at: datetime


@dataclass(frozen=True)
class AnswerRecord:
    """A participant's answer to a quiz."""

    id: UUID
    quiz_id: UUID
    participant_id: UUID
    selected_option: str
    answered_at: datetime
    on_time: bool


def normalize_option(value: str) -> str | None:
    """Return the canonical option label, or None when it isn't one."""
    label = value.strip().upper()
    return label if label in OPTION_LABELS else None
