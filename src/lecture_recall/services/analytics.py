"""Session and participant analytics derived from stored answers."""

import calendar
import logging
import math
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

from lecture_recall.domain.errors import InvalidRequestError, NotFoundError
from lecture_recall.domain.quizzes import OPTION_LABELS, AnswerRecord, QuizRecord
from lecture_recall.domain.reports import (
    OUTCOME_CORRECT,
    OUTCOME_INCORRECT,
    OUTCOME_UNANSWERED,
    PERFORMANCE_NEEDS_REVIEW,
    PERFORMANCE_NO_DATA,
    PERFORMANCE_PERFECT,
    ParticipantQuizResult,
    ParticipantReport,
    ParticipantSummary,
    PresenterSessionRow,
    PresenterStatistics,
    QuestionStats,
    SessionDetails,
    SessionReport,
)
from lecture_recall.domain.sessions import (
    STATUS_ACTIVE,
    STATUS_ENDED,
    ParticipantRecord,
    SessionRecord,
    TranscriptFragment,
)
from lecture_recall.services.enrichment import ContentEnricher
from lecture_recall.services.store import SessionStore

logger = logging.getLogger(__name__)

MOST_MISSED_LIMIT = 3
RECOMMENDATION_SNIPPET = 50

ALL_CORRECT_RECOMMENDATION = "All students performed well on the questions!"
NO_ANSWERS_RECOMMENDATION = "No answers were recorded during this session."

RECENT_SESSIONS_LIMIT = 5
TIME_RANGE_ALL = "all"
TIME_RANGES = (TIME_RANGE_ALL, "week", "month", "year")


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def percentage(part: int, whole: int) -> float:
    """Return ``part / whole`` as a percentage with two decimals."""
    if whole <= 0:
        return 0.0
    return round(part / whole * 100, 2)


def answer_distribution(answers: list[AnswerRecord]) -> dict[str, int]:
    """Count on-time selections per option label."""
    counts = dict.fromkeys(OPTION_LABELS, 0)
    for answer in _earliest_per_pair(answers):
        if answer.on_time and answer.selected_option in counts:
            counts[answer.selected_option] += 1
    return counts


def _earliest_per_pair(answers: list[AnswerRecord]) -> list[AnswerRecord]:
    earliest: dict[tuple[UUID, UUID], AnswerRecord] = {}
    for answer in sorted(answers, key=lambda row: row.answered_at):
        earliest.setdefault((answer.quiz_id, answer.participant_id), answer)
    return list(earliest.values())


def _question_stats(quiz: QuizRecord, answers: list[AnswerRecord]) -> QuestionStats:
    on_time = [answer for answer in answers if answer.on_time]
    correct = sum(
        1 for answer in on_time if answer.selected_option == quiz.correct_answer
    )
    return QuestionStats(
        quiz_id=quiz.id,
        question=quiz.question,
        correct_answer=quiz.correct_answer,
        created_at=quiz.created_at,
        total_answers=len(on_time),
        correct_answers=correct,
        accuracy_rate=percentage(correct, len(on_time)),
        answer_distribution=answer_distribution(on_time),
        late_answers=len(answers) - len(on_time),
    )


def _duration_minutes(session: SessionRecord) -> int | None:
    if session.ended_at is None:
        return None
    minutes = (session.ended_at - session.created_at).total_seconds() / 60
    # halves round up
    return math.floor(minutes + 0.5)


def _recommendation(missed: list[QuestionStats], total_answers: int) -> str:
    if missed:
        topics = ", ".join(
            f"{stats.question[:RECOMMENDATION_SNIPPET]}..." for stats in missed
        )
        return f"Focus on reviewing concepts related to: {topics}"
    if total_answers == 0:
        return NO_ANSWERS_RECOMMENDATION
    return ALL_CORRECT_RECOMMENDATION


def build_session_report(
    session: SessionRecord,
    participants: list[ParticipantRecord],
    quizzes: list[QuizRecord],
    answers: list[AnswerRecord],
) -> SessionReport:
    """Aggregate a session's rows into the presenter report.

    Only on-time answers count toward accuracy, distribution, participation
    and totals. Quizzes keep their creation order, which also breaks ties
    when ranking the most missed questions.
    """
    answers = _earliest_per_pair(answers)
    by_quiz: dict[UUID, list[AnswerRecord]] = {quiz.id: [] for quiz in quizzes}
    for answer in answers:
        if answer.quiz_id in by_quiz:
            by_quiz[answer.quiz_id].append(answer)

    ordered = sorted(quizzes, key=lambda quiz: quiz.created_at)
    questions = [_question_stats(quiz, by_quiz[quiz.id]) for quiz in ordered]
    total_answers = sum(stats.total_answers for stats in questions)
    total_correct = sum(stats.correct_answers for stats in questions)

    # sorted() is stable, so equal accuracy keeps creation order
    missed = sorted(
        (
            stats
            for stats in questions
            if stats.total_answers > 0 and stats.accuracy_rate < 100
        ),
        key=lambda stats: stats.accuracy_rate,
    )[:MOST_MISSED_LIMIT]

    if total_answers == 0:
        performance = PERFORMANCE_NO_DATA
    elif total_correct == total_answers:
        performance = PERFORMANCE_PERFECT
    else:
        performance = PERFORMANCE_NEEDS_REVIEW

    answer_keys = {quiz.id: quiz.correct_answer for quiz in quizzes}
    rows = []
    for participant in participants:
        own = [
            answer
            for answer in answers
            if answer.participant_id == participant.id
            and answer.on_time
            and answer.quiz_id in answer_keys
        ]
        own_correct = sum(
            1
            for answer in own
            if answer.selected_option == answer_keys[answer.quiz_id]
        )
        rows.append(
            ParticipantSummary(
                participant_id=participant.id,
                participant_name=participant.name,
                questions_answered=len(own),
                correct_answers=own_correct,
                accuracy_rate=percentage(own_correct, len(own)),
            )
        )

    return SessionReport(
        session_id=session.id,
        title=session.title,
        presenter_name=session.presenter_name,
        created_at=session.created_at,
        ended_at=session.ended_at,
        duration_minutes=_duration_minutes(session),
        total_questions=len(quizzes),
        total_students=len(participants),
        total_answers=total_answers,
        participation_rate=percentage(
            total_answers, len(quizzes) * len(participants)
        ),
        overall_accuracy=percentage(total_correct, total_answers),
        performance=performance,
        most_problematic_question=missed[0] if missed else None,
        most_missed_questions=missed,
        recommendation=_recommendation(missed, total_answers),
        questions=questions,
        participants=rows,
    )


def build_participant_report(
    session: SessionRecord,
    participant: ParticipantRecord,
    quizzes: list[QuizRecord],
    answers: list[AnswerRecord],
) -> ParticipantReport:
    """Build one participant's per-quiz outcomes."""
    own = {
        answer.quiz_id: answer
        for answer in _earliest_per_pair(answers)
        if answer.participant_id == participant.id
    }
    results = []
    for quiz in sorted(quizzes, key=lambda quiz: quiz.created_at):
        answer = own.get(quiz.id)
        if answer is None or not answer.on_time:
            outcome = OUTCOME_UNANSWERED
        elif answer.selected_option == quiz.correct_answer:
            outcome = OUTCOME_CORRECT
        else:
            outcome = OUTCOME_INCORRECT
        results.append(
            ParticipantQuizResult(
                quiz_id=quiz.id,
                question=quiz.question,
                correct_answer=quiz.correct_answer,
                selected_answer=answer.selected_option if answer else None,
                outcome=outcome,
                late=answer is not None and not answer.on_time,
                answered_at=answer.answered_at if answer else None,
            )
        )

    answered = [result for result in results if result.outcome != OUTCOME_UNANSWERED]
    correct = sum(1 for result in answered if result.outcome == OUTCOME_CORRECT)
    return ParticipantReport(
        session_id=session.id,
        participant_id=participant.id,
        participant_name=participant.name,
        total_questions=len(results),
        questions_answered=len(answered),
        correct_answers=correct,
        accuracy_rate=percentage(correct, len(answered)),
        results=results,
        missed_questions=[
            result for result in results if result.outcome != OUTCOME_CORRECT
        ],
    )


def transcript_text(fragments: list[TranscriptFragment]) -> str:
    """Join fragments in arrival order into one transcript."""
    ordered = sorted(fragments, key=lambda fragment: fragment.created_at)
    return " ".join(fragment.text for fragment in ordered).strip()


def build_session_details(
    session: SessionRecord, report: SessionReport
) -> SessionDetails:
    """Session metadata with the report's headline counts."""
    return SessionDetails(
        session_id=session.id,
        title=session.title,
        presenter_name=session.presenter_name,
        status=session.status,
        time_limit=session.time_limit,
        created_at=session.created_at,
        ended_at=session.ended_at,
        question_count=report.total_questions,
        student_count=report.total_students,
        answer_count=report.total_answers,
        overall_accuracy=report.overall_accuracy,
        participants=report.participants,
    )


def range_start(time_range: str, now: datetime) -> datetime | None:
    """Return the earliest creation time a statistics range includes."""
    if time_range == TIME_RANGE_ALL:
        return None
    if time_range == "week":
        return now - timedelta(days=7)
    if time_range == "month":
        return _shift_months(now, -1)
    if time_range == "year":
        return _shift_months(now, -12)
    raise InvalidRequestError(f"time_range must be one of {', '.join(TIME_RANGES)}")


def _shift_months(value: datetime, months: int) -> datetime:
    index = value.year * 12 + value.month - 1 + months
    year, month_index = divmod(index, 12)
    month = month_index + 1
    # clamp to the end of shorter months
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def build_presenter_statistics(  # noqa: PLR0913
    presenter_name: str,
    time_range: str,
    since: datetime | None,
    sessions: list[SessionRecord],
    participants: list[ParticipantRecord],
    quizzes: list[QuizRecord],
    answers: list[AnswerRecord],
    generated_at: datetime,
) -> PresenterStatistics:
    """Aggregate a presenter's sessions; only on-time answers are counted."""
    answer_keys = {quiz.id: quiz.correct_answer for quiz in quizzes}
    counted = [
        answer
        for answer in _earliest_per_pair(answers)
        if answer.on_time and answer.quiz_id in answer_keys
    ]
    correct = sum(
        1 for answer in counted if answer.selected_option == answer_keys[answer.quiz_id]
    )
    students = Counter(participant.session_id for participant in participants)
    questions = Counter(quiz.session_id for quiz in quizzes)
    ordered = sorted(sessions, key=lambda session: session.created_at, reverse=True)
    average_time_limit = (
        round(sum(session.time_limit for session in sessions) / len(sessions), 2)
        if sessions
        else None
    )
    return PresenterStatistics(
        presenter_name=presenter_name,
        time_range=time_range,
        since=since,
        total_sessions=len(sessions),
        total_students=len(participants),
        total_questions=len(quizzes),
        total_answers=len(counted),
        overall_accuracy=percentage(correct, len(counted)),
        average_time_limit=average_time_limit,
        completed_sessions=sum(1 for s in sessions if s.status == STATUS_ENDED),
        active_sessions=sum(1 for s in sessions if s.status == STATUS_ACTIVE),
        recent_sessions=[
            PresenterSessionRow(
                session_id=session.id,
                title=session.title,
                created_at=session.created_at,
                status=session.status,
                student_count=students[session.id],
                question_count=questions[session.id],
            )
            for session in ordered[:RECENT_SESSIONS_LIMIT]
        ],
        generated_at=generated_at,
    )


@dataclass
class AnalyticsService:
    """Loads session rows from the store and builds reports."""

    store: SessionStore
    enricher: ContentEnricher
    clock: Callable[[], datetime] = utc_now

    async def session_report(
        self, session_id: UUID, include_summary: bool = False
    ) -> SessionReport:
        session = self._require_session(session_id)
        quizzes = self.store.quizzes.list_quizzes(session_id)
        report = build_session_report(
            session,
            self.store.participants.list_participants(session_id),
            quizzes,
            self.store.answers.list_answers([quiz.id for quiz in quizzes]),
        )
        if not include_summary:
            return report
        summary = await self.lecture_summary(session_id)
        return report.model_copy(update={"lecture_summary": summary})

    async def participant_report(
        self,
        session_id: UUID,
        participant_id: UUID,
        include_review: bool = False,
        lecture_summary: str | None = None,
    ) -> ParticipantReport:
        """Build a participant's report, optionally with a study review.

        ``lecture_summary`` lets callers reuse a summary they already
        generated instead of asking the enricher again.
        """
        session = self._require_session(session_id)
        participant = self.store.participants.get_participant(participant_id)
        if participant is None or participant.session_id != session_id:
            raise NotFoundError("Participant not found")
        quizzes = self.store.quizzes.list_quizzes(session_id)
        report = build_participant_report(
            session,
            participant,
            quizzes,
            self.store.answers.list_answers([quiz.id for quiz in quizzes]),
        )
        if not include_review:
            return report

        summary = lecture_summary or await self.lecture_summary(session_id)
        if summary is None:
            return report
        review = None
        if report.missed_questions:
            review = await self.enricher.review(
                [
                    {
                        "question": result.question,
                        "correctAnswer": result.correct_answer,
                        "selectedAnswer": result.selected_answer,
                    }
                    for result in report.missed_questions
                ],
                summary,
            )
        return report.model_copy(
            update={"lecture_summary": summary, "personalized_review": review}
        )

    async def session_details(self, session_id: UUID) -> SessionDetails:
        session = self._require_session(session_id)
        return build_session_details(session, await self.session_report(session_id))

    def presenter_statistics(
        self, presenter_name: str, time_range: str = TIME_RANGE_ALL
    ) -> PresenterStatistics:
        """Totals across a presenter's sessions created within ``time_range``."""
        name = presenter_name.strip()
        if not name:
            raise InvalidRequestError("Presenter name is required")
        now = self.clock()
        since = range_start(time_range, now)
        sessions = self.store.sessions.list_presenter_sessions(name, since)
        participants = [
            participant
            for session in sessions
            for participant in self.store.participants.list_participants(session.id)
        ]
        quizzes = [
            quiz
            for session in sessions
            for quiz in self.store.quizzes.list_quizzes(session.id)
        ]
        return build_presenter_statistics(
            presenter_name=name,
            time_range=time_range,
            since=since,
            sessions=sessions,
            participants=participants,
            quizzes=quizzes,
            answers=self.store.answers.list_answers([quiz.id for quiz in quizzes]),
            generated_at=now,
        )

    async def lecture_summary(self, session_id: UUID) -> str | None:
        """Summarize the session transcript; None without transcript or on failure."""
        text = transcript_text(self.store.transcripts.list_fragments(session_id))
        if not text:
            return None
        summary = await self.enricher.summarize(text)
        if summary is None:
            logger.info(
                "Lecture summary unavailable", extra={"session_id": str(session_id)}
            )
        return summary

    def has_transcript(self, session_id: UUID) -> bool:
        return bool(self.store.transcripts.list_fragments(session_id))

    def _require_session(self, session_id: UUID) -> SessionRecord:
        session = self.store.sessions.get_session(session_id)
        if session is None:
            raise NotFoundError("Session not found")
        return session
