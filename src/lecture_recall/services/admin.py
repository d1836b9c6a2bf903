"""Admin service for session listings and exports."""

from dataclasses import dataclass
from uuid import UUID

from lecture_recall.domain.errors import NotFoundError
from lecture_recall.domain.quizzes import AnswerRecord, QuizRecord
from lecture_recall.domain.sessions import (
    ParticipantRecord,
    SessionRecord,
    TranscriptFragment,
)
from lecture_recall.services.store import SessionStore

MAX_LIST_LIMIT = 200


@dataclass
class AdminService:
    """Service for admin dashboards."""

    store: SessionStore

    def list_sessions(self, limit: int = 20) -> list[dict[str, object]]:
        """Return recent sessions, newest first."""
        limit = max(1, min(limit, MAX_LIST_LIMIT))
        return [
            _serialize_session(session)
            for session in self.store.sessions.list_recent_sessions(limit)
        ]

    def export_session(self, session_id: UUID) -> dict[str, object]:
        """Return every stored record of a session, answer keys included."""
        session = self.store.sessions.get_session(session_id)
        if session is None:
            raise NotFoundError("Session not found")
        quizzes = self.store.quizzes.list_quizzes(session_id)
        answers = self.store.answers.list_answers([quiz.id for quiz in quizzes])
        return {
            "session": _serialize_session(session),
            "participants": [
                _serialize_participant(participant)
                for participant in self.store.participants.list_participants(
                    session_id
                )
            ],
            "quizzes": [_serialize_quiz(quiz) for quiz in quizzes],
            "answers": [_serialize_answer(answer) for answer in answers],
            "transcript": [
                _serialize_fragment(fragment)
                for fragment in self.store.transcripts.list_fragments(session_id)
            ],
        }


def _serialize_session(session: SessionRecord) -> dict[str, object]:
    return {
        "id": str(session.id),
        "presenter_name": session.presenter_name,
        "title": session.title,
        "join_code": session.join_code,
        "status": session.status,
        "time_limit": session.time_limit,
        "created_at": session.created_at.isoformat(),
        "ended_at": session.ended_at.isoformat() if session.ended_at else None,
    }


def _serialize_participant(participant: ParticipantRecord) -> dict[str, object]:
    return {
        "id": str(participant.id),
        "name": participant.name,
        "joined_at": participant.joined_at.isoformat(),
    }


def _serialize_quiz(quiz: QuizRecord) -> dict[str, object]:
    return {
        "id": str(quiz.id),
        "source_text": quiz.source_text,
        "question": quiz.question,
        "options": dict(quiz.options),
        "correct_answer": quiz.correct_answer,
        "time_limit": quiz.time_limit,
        "created_at": quiz.created_at.isoformat(),
    }


def _serialize_answer(answer: AnswerRecord) -> dict[str, object]:
    return {
        "id": str(answer.id),
        "quiz_id": str(answer.quiz_id),
        "participant_id": str(answer.participant_id),
        "selected_option": answer.selected_option,
        "answered_at": answer.answered_at.isoformat(),
        "on_time": answer.on_time,
    }


def _serialize_fragment(fragment: TranscriptFragment) -> dict[str, object]:
    return {
        "id": str(fragment.id),
        "text": fragment.text,
        "created_at": fragment.created_at.isoformat(),
    }
