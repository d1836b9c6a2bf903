"""Report models produced by the analytics engine."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

PERFORMANCE_NO_DATA = "no_data"
PERFORMANCE_PERFECT = "perfect"
PERFORMANCE_NEEDS_REVIEW = "needs_review"

OUTCOME_CORRECT = "correct"
OUTCOME_INCORRECT = "incorrect"
OUTCOME_UNANSWERED = "unanswered"


class ReportModel(BaseModel):
    """Base model serialized with camelCase keys for clients."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    def to_payload(self) -> dict[str, object]:
        return self.model_dump(mode="json", by_alias=True)


class QuestionStats(ReportModel):
    """Aggregated on-time answers for one quiz."""

    quiz_id: UUID
    question: str
    correct_answer: str
    created_at: datetime
    total_answers: int
    correct_answers: int
    accuracy_rate: float
    answer_distribution: dict[str, int]
    late_answers: int = 0


class ParticipantSummary(ReportModel):
    """One participant's row in the session-wide report."""

    participant_id: UUID
    participant_name: str
    questions_answered: int
    correct_answers: int
    accuracy_rate: float


class SessionReport(ReportModel):
    """Session-wide analytics pushed to the presenter."""

    session_id: UUID
    title: str
    presenter_name: str
    created_at: datetime
    ended_at: datetime | None
    duration_minutes: int | None
    total_questions: int
    total_students: int
    total_answers: int
    participation_rate: float
    overall_accuracy: float
    performance: Literal["no_data", "perfect", "needs_review"]
    most_problematic_question: QuestionStats | None
    most_missed_questions: list[QuestionStats]
    recommendation: str
    questions: list[QuestionStats]
    participants: list[ParticipantSummary]
    lecture_summary: str | None = None


class ParticipantQuizResult(ReportModel):
    """How one participant did on one quiz."""

    quiz_id: UUID
    question: str
    correct_answer: str
    selected_answer: str | None
    outcome: Literal["correct", "incorrect", "unanswered"]
    late: bool = False
    answered_at: datetime | None = None


class ParticipantReport(ReportModel):
    """Personal analytics pushed to a participant."""

    session_id: UUID
    participant_id: UUID
    participant_name: str
    total_questions: int
    questions_answered: int
    correct_answers: int
    accuracy_rate: float
    results: list[ParticipantQuizResult]
    missed_questions: list[ParticipantQuizResult]
    lecture_summary: str | None = None
    personalized_review: str | None = None


class SessionDetails(ReportModel):
    """Session metadata with headline counts."""

    session_id: UUID
    title: str
    presenter_name: str
    status: str
    time_limit: int
    created_at: datetime
    ended_at: datetime | None
    question_count: int
    student_count: int
    answer_count: int
    overall_accuracy: float
    participants: list[ParticipantSummary]


class PresenterSessionRow(ReportModel):
    """A recent session in a presenter's statistics."""

    session_id: UUID
    title: str
    created_at: datetime
    status: str
    student_count: int
    question_count: int


class PresenterStatistics(ReportModel):
    """Totals across every session one presenter ran in a time range."""

    presenter_name: str
    time_range: Literal["all", "week", "month", "year"]
    since: datetime | None
    total_sessions: int
    total_students: int
    total_questions: int
    total_answers: int
    overall_accuracy: float
    average_time_limit: float | None
    completed_sessions: int
    active_sessions: int
    recent_sessions: list[PresenterSessionRow]
    generated_at: datetime
