"""Persistence contract for sessions and their accumulated records."""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol
from uuid import UUID

from lecture_recall.domain.quizzes import AnswerRecord, QuizRecord
from lecture_recall.domain.sessions import (
    ParticipantRecord,
    SessionRecord,
    TranscriptFragment,
)


class SessionRepository(Protocol):
    """Persistence interface for sessions."""

    def create_session(  # noqa: PLR0913
        self,
        presenter_name: str,
        title: str,
        join_code: str,
        time_limit: int,
        created_at: datetime,
    ) -> SessionRecord:
        """Create a session in the waiting status and return it."""

    def get_session(self, session_id: UUID) -> SessionRecord | None:
        """Return a session by id, if present."""

    def get_open_session_by_join_code(self, join_code: str) -> SessionRecord | None:
        """Return the non-ended session using a join code, if any."""

    def update_status(
        self, session_id: UUID, status: str, ended_at: datetime | None = None
    ) -> None:
        """Update the session status and, when ending, its end timestamp."""

    def list_recent_sessions(self, limit: int) -> list[SessionRecord]:
        """Return the most recently created sessions."""

    def list_presenter_sessions(
        self, presenter_name: str, since: datetime | None = None
    ) -> list[SessionRecord]:
        """Return a presenter's sessions created at or after ``since``, newest first."""


class ParticipantRepository(Protocol):
    """Persistence interface for participants."""

    def create_participant(
        self, session_id: UUID, name: str, joined_at: datetime
    ) -> ParticipantRecord:
        """Create a participant and return it."""

    def get_participant(self, participant_id: UUID) -> ParticipantRecord | None:
        """Return a participant by id, if present."""

    def list_participants(self, session_id: UUID) -> list[ParticipantRecord]:
        """Return the participants of a session in join order."""


class TranscriptRepository(Protocol):
    """Persistence interface for transcript fragments."""

    def create_fragment(
        self, session_id: UUID, text: str, created_at: datetime
    ) -> TranscriptFragment:
        """Append a transcript fragment and return it."""

    def list_fragments(self, session_id: UUID) -> list[TranscriptFragment]:
        """Return a session's fragments in arrival order."""


class QuizRepository(Protocol):
    """Persistence interface for quizzes."""

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
        """Create a quiz and return it."""

    def get_quiz(self, quiz_id: UUID) -> QuizRecord | None:
        """Return a quiz by id, if present."""

    def list_quizzes(self, session_id: UUID) -> list[QuizRecord]:
        """Return a session's quizzes in creation order."""


class AnswerRepository(Protocol):
    """Persistence interface for answers."""

    def create_answer(  # noqa: PLR0913
        self,
        quiz_id: UUID,
        participant_id: UUID,
        selected_option: str,
        answered_at: datetime,
        on_time: bool,
    ) -> AnswerRecord:
        """Create an answer; raise DuplicateAnswerError if one exists."""

    def get_answer(self, quiz_id: UUID, participant_id: UUID) -> AnswerRecord | None:
        """Return a participant's answer to a quiz, if present."""

    def list_answers(self, quiz_ids: list[UUID]) -> list[AnswerRecord]:
        """Return all answers for the given quizzes."""


@dataclass
class SessionStore:
    """Groups the repositories that make up the session store."""

    sessions: SessionRepository
    participants: ParticipantRepository
    transcripts: TranscriptRepository
    quizzes: QuizRepository
    answers: AnswerRepository
