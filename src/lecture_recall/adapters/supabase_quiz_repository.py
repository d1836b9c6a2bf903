"""Supabase repository for generated quizzes."""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from postgrest.exceptions import APIError
from supabase import Client

from lecture_recall.domain.errors import StorageError
from lecture_recall.domain.quizzes import OPTION_LABELS, QuizRecord
from lecture_recall.services.store import QuizRepository

logger = logging.getLogger(__name__)

_QUIZ_COLUMNS = (
    "id, session_id, source_text, question, option_a, option_b, option_c, "
    "option_d, correct_answer, time_limit, created_at"
)


@dataclass
class SupabaseQuizRepository(QuizRepository):
    """Supabase implementation for quizzes."""

    client: Client

    def create_quiz(  # noqa: PLR0913
        self,
        session_id: UUID,
        source_text: str,
        question: str,
        options: dict[str, str],
        correct_answer: str,
        time_limit: int,
        created_at: datetime,
    ) -> QuizRecord:
        """Create a quiz row and return it."""
        payload: dict[str, object] = {
            "session_id": str(session_id),
            "source_text": source_text,
            "question": question,
            "correct_answer": correct_answer,
            "time_limit": time_limit,
            "created_at": created_at.isoformat(),
        }
        for label in OPTION_LABELS:
            payload[f"option_{label.lower()}"] = options[label]
        try:
            response = self.client.table("quizzes").insert(payload).execute()
        except APIError as exc:
            logger.exception(
                "Failed to create quiz", extra={"session_id": str(session_id)}
            )
            raise StorageError("Failed to create quiz") from exc
        if not response.data:
            raise StorageError("Failed to create quiz")
        return _parse_quiz(response.data[0])

    def get_quiz(self, quiz_id: UUID) -> QuizRecord | None:
        response = (
            self.client.table("quizzes")
            .select(_QUIZ_COLUMNS)
            .eq("id", str(quiz_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_quiz(response.data[0])

    def list_quizzes(self, session_id: UUID) -> list[QuizRecord]:
        """Return a session's quizzes in creation order."""
        response = (
            self.client.table("quizzes")
            .select(_QUIZ_COLUMNS)
            .eq("session_id", str(session_id))
            .order("seq", desc=False)
            .execute()
        )
        return [_parse_quiz(row) for row in response.data or []]


def _parse_quiz(row: dict[str, object]) -> QuizRecord:
    return QuizRecord(
        id=UUID(str(row["id"])),
        session_id=UUID(str(row["session_id"])),
        source_text=str(row["source_text"]),
        question=str(row["question"]),
        options={label: str(row[f"option_{label.lower()}"]) for label in OPTION_LABELS},
        correct_answer=str(row["correct_answer"]),
        time_limit=int(row["time_limit"]),
        created_at=datetime.fromisoformat(str(row["created_at"])),
    )
