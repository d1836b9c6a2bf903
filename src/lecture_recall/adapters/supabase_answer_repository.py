"""Supabase repository for quiz answers."""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from postgrest.exceptions import APIError
from supabase import Client

from lecture_recall.domain.errors import (
    DuplicateAnswerError,
    NotFoundError,
    StorageError,
)
from lecture_recall.domain.quizzes import AnswerRecord
from lecture_recall.services.store import AnswerRepository

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"

_ANSWER_COLUMNS = "id, quiz_id, participant_id, selected_option, answered_at, on_time"


@dataclass
class SupabaseAnswerRepository(AnswerRepository):
    """Supabase implementation for answers.

    The ``answers`` table carries a unique (quiz_id, participant_id)
    constraint, so concurrent duplicates surface as DuplicateAnswerError.
    """

    client: Client

    def create_answer(  # noqa: PLR0913
        self,
        quiz_id: UUID,
        participant_id: UUID,
        selected_option: str,
        answered_at: datetime,
        on_time: bool,
    ) -> AnswerRecord:
        try:
            response = (
                self.client.table("answers")
                .insert(
                    {
                        "quiz_id": str(quiz_id),
                        "participant_id": str(participant_id),
                        "selected_option": selected_option,
                        "answered_at": answered_at.isoformat(),
                        "on_time": on_time,
                    }
                )
                .execute()
            )
        except APIError as exc:
            if exc.code == UNIQUE_VIOLATION:
                raise DuplicateAnswerError(
                    "Answer already submitted for this quiz"
                ) from exc
            if exc.code == FOREIGN_KEY_VIOLATION:
                raise NotFoundError("Quiz or participant not found") from exc
            logger.exception(
                "Failed to store answer",
                extra={"quiz_id": str(quiz_id), "participant_id": str(participant_id)},
            )
            raise StorageError("Failed to store answer") from exc
        if not response.data:
            raise StorageError("Failed to store answer")
        return _parse_answer(response.data[0])

    def get_answer(self, quiz_id: UUID, participant_id: UUID) -> AnswerRecord | None:
        response = (
            self.client.table("answers")
            .select(_ANSWER_COLUMNS)
            .eq("quiz_id", str(quiz_id))
            .eq("participant_id", str(participant_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_answer(response.data[0])

    def list_answers(self, quiz_ids: list[UUID]) -> list[AnswerRecord]:
        """Return all answers for the given quizzes, oldest first."""
        if not quiz_ids:
            return []
        response = (
            self.client.table("answers")
            .select(_ANSWER_COLUMNS)
            .in_("quiz_id", [str(quiz_id) for quiz_id in quiz_ids])
            .order("answered_at", desc=False)
            .execute()
        )
        return [_parse_answer(row) for row in response.data or []]


def _parse_answer(row: dict[str, object]) -> AnswerRecord:
    return AnswerRecord(
        id=UUID(str(row["id"])),
        quiz_id=UUID(str(row["quiz_id"])),
        participant_id=UUID(str(row["participant_id"])),
        selected_option=str(row["selected_option"]),
        answered_at=datetime.fromisoformat(str(row["answered_at"])),
        on_time=bool(row["on_time"]),
    )
