"""Tests for session and participant analytics."""

import asyncio
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import pytest

from lecture_recall.domain.errors import InvalidRequestError, NotFoundError
from lecture_recall.domain.quizzes import AnswerRecord, QuizRecord
from lecture_recall.domain.sessions import ParticipantRecord, SessionRecord
from lecture_recall.services.analytics import (
    ALL_CORRECT_RECOMMENDATION,
    NO_ANSWERS_RECOMMENDATION,
    answer_distribution,
    build_participant_report,
    build_presenter_statistics,
    build_session_report,
    percentage,
    range_start,
)
from tests.conftest import Harness

START = datetime(2025, 3, 3, 9, 0, tzinfo=UTC)
OPTIONS = {"A": "one", "B": "two", "C": "three", "D": "four"}


def _session(ended_after: float | None = None) -> SessionRecord:
    return SessionRecord(
        id=uuid4(),
        presenter_name="Dr. Smith",
        title="Biology 101",
        join_code="ABC123",
        status="ended" if ended_after is not None else "active",
        time_limit=30,
        created_at=START,
        ended_at=START + timedelta(minutes=ended_after) if ended_after is not None else None,
    )


def _participant(session: SessionRecord, name: str) -> ParticipantRecord:
    return ParticipantRecord(id=uuid4(), session_id=session.id, name=name, joined_at=START)


def _quiz(session: SessionRecord, question: str, correct: str, offset: int) -> QuizRecord:
    return QuizRecord(
        id=uuid4(),
        session_id=session.id,
        source_text=question,
        question=question,
        options=OPTIONS,
        correct_answer=correct,
        time_limit=30,
        created_at=START + timedelta(minutes=offset),
    )


def _answer(
    quiz: QuizRecord,
    participant: ParticipantRecord,
    option: str,
    on_time: bool = True,
    offset: int = 0,
) -> AnswerRecord:
    return AnswerRecord(
        id=uuid4(),
        quiz_id=quiz.id,
        participant_id=participant.id,
        selected_option=option,
        answered_at=quiz.created_at + timedelta(seconds=5 + offset),
        on_time=on_time,
    )


def test_percentage_is_zero_safe() -> None:
    assert percentage(0, 0) == 0.0
    assert percentage(1, 3) == 33.33
    assert percentage(2, 3) == 66.67


def test_report_with_no_answers_has_no_data() -> None:
    session = _session()
    quiz = _quiz(session, "What is ATP?", "A", 0)
    report = build_session_report(session, [_participant(session, "Ada")], [quiz], [])

    assert report.performance == "no_data"
    assert report.most_problematic_question is None
    assert report.questions[0].accuracy_rate == 0.0
    assert report.questions[0].answer_distribution == {"A": 0, "B": 0, "C": 0, "D": 0}
    assert report.recommendation == NO_ANSWERS_RECOMMENDATION
    assert report.participation_rate == 0.0
    assert report.duration_minutes is None


def test_report_with_all_correct_is_perfect() -> None:
    session = _session(ended_after=12.4)
    ada = _participant(session, "Ada")
    quiz = _quiz(session, "What is ATP?", "B", 0)

    report = build_session_report(session, [ada], [quiz], [_answer(quiz, ada, "B")])

    assert report.performance == "perfect"
    assert report.most_problematic_question is None
    assert report.most_missed_questions == []
    assert report.recommendation == ALL_CORRECT_RECOMMENDATION
    assert report.overall_accuracy == 100.0
    assert report.duration_minutes == 12


def test_most_problematic_question_breaks_ties_by_creation() -> None:
    session = _session()
    ada, grace = _participant(session, "Ada"), _participant(session, "Grace")
    first = _quiz(session, "What is ATP?", "A", 0)
    second = _quiz(session, "What is RNA?", "A", 1)
    third = _quiz(session, "What is DNA?", "A", 2)
    answers = [
        _answer(first, ada, "A"),
        _answer(first, grace, "B"),
        _answer(second, ada, "C"),
        _answer(second, grace, "A"),
        _answer(third, ada, "A"),
        _answer(third, grace, "A"),
    ]

    report = build_session_report(session, [ada, grace], [third, second, first], answers)

    assert report.performance == "needs_review"
    assert [stats.quiz_id for stats in report.questions] == [first.id, second.id, third.id]
    assert report.most_problematic_question is not None
    assert report.most_problematic_question.quiz_id == first.id
    assert [stats.quiz_id for stats in report.most_missed_questions] == [
        first.id,
        second.id,
    ]
    assert report.recommendation.startswith("Focus on reviewing concepts related to:")
    assert report.overall_accuracy == 66.67
    assert report.participation_rate == 100.0


def test_most_missed_questions_capped_at_three() -> None:
    session = _session()
    ada = _participant(session, "Ada")
    quizzes = [_quiz(session, f"Question {index}", "A", index) for index in range(5)]
    answers = [_answer(quiz, ada, "B") for quiz in quizzes]

    report = build_session_report(session, [ada], quizzes, answers)

    assert len(report.most_missed_questions) == 3
    assert report.most_problematic_question.quiz_id == quizzes[0].id


def test_late_and_duplicate_answers_are_excluded() -> None:
    session = _session()
    ada, grace = _participant(session, "Ada"), _participant(session, "Grace")
    quiz = _quiz(session, "What is ATP?", "A", 0)
    answers = [
        _answer(quiz, ada, "B", offset=1),
        _answer(quiz, ada, "A", offset=0),
        _answer(quiz, grace, "A", on_time=False),
    ]

    report = build_session_report(session, [ada, grace], [quiz], answers)

    stats = report.questions[0]
    assert stats.total_answers == 1
    assert stats.correct_answers == 1
    assert stats.late_answers == 1
    assert stats.answer_distribution == {"A": 1, "B": 0, "C": 0, "D": 0}
    assert report.participation_rate == 50.0
    rows = {row.participant_name: row for row in report.participants}
    assert rows["Ada"].questions_answered == 1
    assert rows["Grace"].questions_answered == 0


def test_answer_distribution_ignores_late_answers() -> None:
    session = _session()
    ada, grace = _participant(session, "Ada"), _participant(session, "Grace")
    quiz = _quiz(session, "What is ATP?", "A", 0)

    counts = answer_distribution(
        [_answer(quiz, ada, "C"), _answer(quiz, grace, "D", on_time=False)]
    )

    assert counts == {"A": 0, "B": 0, "C": 1, "D": 0}


def test_participant_report_outcomes() -> None:
    session = _session()
    ada = _participant(session, "Ada")
    correct = _quiz(session, "What is ATP?", "A", 0)
    wrong = _quiz(session, "What is RNA?", "A", 1)
    late = _quiz(session, "What is DNA?", "A", 2)
    skipped = _quiz(session, "What is a ribosome?", "A", 3)
    answers = [
        _answer(correct, ada, "A"),
        _answer(wrong, ada, "C"),
        _answer(late, ada, "A", on_time=False),
    ]

    report = build_participant_report(
        session, ada, [correct, wrong, late, skipped], answers
    )

    outcomes = [(result.outcome, result.late) for result in report.results]
    assert outcomes == [
        ("correct", False),
        ("incorrect", False),
        ("unanswered", True),
        ("unanswered", False),
    ]
    assert report.results[2].selected_answer == "A"
    assert report.questions_answered == 2
    assert report.correct_answers == 1
    assert report.accuracy_rate == 50.0
    assert [result.quiz_id for result in report.missed_questions] == [
        wrong.id,
        late.id,
        skipped.id,
    ]


def test_report_payload_uses_camel_case() -> None:
    session = _session()
    report = build_session_report(session, [], [], [])

    payload = report.to_payload()

    assert payload["sessionId"] == str(session.id)
    assert payload["mostProblematicQuestion"] is None
    assert "participationRate" in payload


def _seed(harness: Harness) -> tuple[UUID, UUID]:
    store = harness.store
    session = store.sessions.create_session("Dr. Smith", "Biology", "ABC123", 30, START)
    ada = store.participants.create_participant(session.id, "Ada", START)
    quiz = store.quizzes.create_quiz(
        session.id, "What is ATP?", "What is ATP?", OPTIONS, "A", 30, START
    )
    store.answers.create_answer(quiz.id, ada.id, "C", START, True)
    store.transcripts.create_fragment(session.id, "ATP stores energy.", START)
    store.transcripts.create_fragment(
        session.id, "What is ATP?", START + timedelta(seconds=1)
    )
    return session.id, ada.id


def test_service_attaches_summary_and_review(harness: Harness) -> None:
    session_id, participant_id = _seed(harness)
    harness.client.text_responses.extend(["ATP is the energy currency.", "Review ATP."])

    async def scenario() -> None:
        report = await harness.analytics.session_report(session_id, include_summary=True)
        assert report.lecture_summary == "ATP is the energy currency."
        assert "ATP stores energy. What is ATP?" in harness.client.text_calls[0]

        personal = await harness.analytics.participant_report(
            session_id,
            participant_id,
            include_review=True,
            lecture_summary=report.lecture_summary,
        )
        assert personal.lecture_summary == "ATP is the energy currency."
        assert personal.personalized_review == "Review ATP."

    asyncio.run(scenario())


def test_service_omits_enrichment_on_failure(harness: Harness) -> None:
    session_id, participant_id = _seed(harness)
    harness.client.text_responses.append(RuntimeError("quota exceeded"))

    async def scenario() -> None:
        personal = await harness.analytics.participant_report(
            session_id, participant_id, include_review=True
        )
        assert personal.lecture_summary is None
        assert personal.personalized_review is None

    asyncio.run(scenario())


def test_service_rejects_unknown_participant(harness: Harness) -> None:
    session_id, _ = _seed(harness)

    with pytest.raises(NotFoundError):
        asyncio.run(harness.analytics.participant_report(session_id, uuid4()))
    with pytest.raises(NotFoundError):
        asyncio.run(harness.analytics.session_report(uuid4()))


def test_duration_rounds_half_minutes_up() -> None:
    assert build_session_report(_session(ended_after=2.5), [], [], []).duration_minutes == 3
    assert build_session_report(_session(ended_after=2.49), [], [], []).duration_minutes == 2


def test_range_start_for_each_time_range() -> None:
    now = datetime(2024, 3, 31, 12, 0, tzinfo=UTC)

    assert range_start("all", now) is None
    assert range_start("week", now) == datetime(2024, 3, 24, 12, 0, tzinfo=UTC)
    assert range_start("month", now) == datetime(2024, 2, 29, 12, 0, tzinfo=UTC)
    assert range_start("year", datetime(2024, 2, 29, tzinfo=UTC)) == datetime(
        2023, 2, 28, tzinfo=UTC
    )
    assert range_start("month", datetime(2024, 1, 15, tzinfo=UTC)) == datetime(
        2023, 12, 15, tzinfo=UTC
    )
    with pytest.raises(InvalidRequestError):
        range_start("decade", now)


def test_presenter_statistics_totals() -> None:
    ended = _session(ended_after=30)
    active = replace(_session(), created_at=START + timedelta(days=1))
    ada, grace = _participant(ended, "Ada"), _participant(ended, "Grace")
    late_joiner = _participant(active, "Lin")
    first = _quiz(ended, "What is ATP?", "A", 0)
    second = _quiz(active, "What is RNA?", "B", 0)
    answers = [
        _answer(first, ada, "A"),
        _answer(first, grace, "C"),
        _answer(second, late_joiner, "B", on_time=False),
    ]

    stats = build_presenter_statistics(
        presenter_name="Dr. Smith",
        time_range="all",
        since=None,
        sessions=[ended, active],
        participants=[ada, grace, late_joiner],
        quizzes=[first, second],
        answers=answers,
        generated_at=START,
    )

    assert stats.total_sessions == 2
    assert stats.total_students == 3
    assert stats.total_questions == 2
    assert stats.total_answers == 2
    assert stats.overall_accuracy == 50.0
    assert stats.average_time_limit == 30.0
    assert stats.completed_sessions == 1
    assert stats.active_sessions == 1
    assert [row.session_id for row in stats.recent_sessions] == [active.id, ended.id]
    assert stats.recent_sessions[1].student_count == 2
    assert stats.to_payload()["timeRange"] == "all"


def test_service_filters_presenter_sessions_by_range(harness: Harness) -> None:
    store = harness.store
    old = store.sessions.create_session(
        "Dr. Smith", "Old", "OLD111", 30, START - timedelta(days=40)
    )
    recent = store.sessions.create_session(
        "Dr. Smith", "Recent", "NEW222", 20, START - timedelta(days=2)
    )
    store.sessions.create_session("Prof. Lee", "Other", "LEE333", 10, START)

    month = harness.analytics.presenter_statistics(" Dr. Smith ", time_range="month")
    everything = harness.analytics.presenter_statistics("Dr. Smith")

    assert [row.session_id for row in month.recent_sessions] == [recent.id]
    assert month.since == datetime(2025, 2, 3, 9, 0, tzinfo=UTC)
    assert everything.total_sessions == 2
    assert everything.recent_sessions[-1].session_id == old.id
    with pytest.raises(InvalidRequestError):
        harness.analytics.presenter_statistics("  ")
