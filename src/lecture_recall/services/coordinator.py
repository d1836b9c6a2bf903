"""Real-time coordination of live lecture sessions and their quizzes."""

import asyncio
import logging
import secrets
import string
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import Any
from uuid import UUID

from lecture_recall.domain.enrichment import GeneratedQuiz
from lecture_recall.domain.errors import (
    DuplicateAnswerError,
    InvalidRequestError,
    JoinCodeTakenError,
    NotFoundError,
    StorageError,
)
from lecture_recall.domain.quizzes import AnswerRecord, QuizRecord, normalize_option
from lecture_recall.domain.reports import SessionReport
from lecture_recall.domain.sessions import (
    STATUS_ACTIVE,
    STATUS_ENDED,
    STATUS_WAITING,
    ParticipantRecord,
    SessionRecord,
    TranscriptFragment,
)
from lecture_recall.services.analytics import (
    AnalyticsService,
    answer_distribution,
    utc_now,
)
from lecture_recall.services.channels import (
    PRESENTER_MEMBER_ID,
    ROLE_PARTICIPANT,
    ROLE_PRESENTER,
    Connection,
    SessionChannels,
)
from lecture_recall.services.enrichment import ContentEnricher
from lecture_recall.services.store import SessionStore
from lecture_recall.services.timers import (
    QuizTimerEntry,
    QuizTimerRegistry,
    Scheduler,
    TimerSnapshot,
    epoch_ms,
)

logger = logging.getLogger(__name__)

JOIN_CODE_ALPHABET = string.ascii_uppercase + string.digits
JOIN_CODE_ATTEMPTS = 10
MAX_NAME_LENGTH = 120

EVENT_QUIZ_TIMEOUT = "quiz-timeout"
EVENT_QUIZ_RESULTS = "quiz-results"


@dataclass(frozen=True)
class JoinResult:
    """What a participant learns when joining, including late-join state."""

    participant: ParticipantRecord
    session: SessionRecord
    previous_quizzes: list[dict[str, object]]
    current_timer: TimerSnapshot | None

    def to_payload(self) -> dict[str, object]:
        return {
            "participantId": str(self.participant.id),
            "participantName": self.participant.name,
            "sessionId": str(self.session.id),
            "title": self.session.title,
            "timeLimit": self.session.time_limit,
            "previousQuizzes": self.previous_quizzes,
            "currentTimer": (
                self.current_timer.to_payload() if self.current_timer else None
            ),
        }


@dataclass
class SessionCoordinator:
    """Owns the session lifecycle and mediates presenter/participant events.

    Every read-then-write on a session's live quiz happens under that
    session's registry lock. Timeout callbacks are never cancelled; they
    re-check the registry when they fire and do nothing if their quiz is no
    longer the live one.
    """

    store: SessionStore
    timers: QuizTimerRegistry
    channels: SessionChannels
    enricher: ContentEnricher
    analytics: AnalyticsService
    scheduler: Scheduler
    default_time_limit: int = 10
    min_time_limit: int = 5
    max_time_limit: int = 300
    join_code_length: int = 6
    end_session_on_presenter_disconnect: bool = True
    include_reviews_on_end: bool = False
    clock: Callable[[], datetime] = utc_now
    _tasks: set[asyncio.Task[None]] = field(default_factory=set, init=False)

    # ---------- Session lifecycle ----------

    async def create_session(
        self,
        presenter_name: str,
        title: str,
        time_limit: int | None = None,
        connection: Connection | None = None,
    ) -> SessionRecord:
        """Create a waiting session and subscribe the presenter to it."""
        presenter_name = _require_text(presenter_name, "Presenter name")
        title = _require_text(title, "Session title")
        limit = self._validate_time_limit(time_limit)
        session = self._insert_session(presenter_name, title, limit)
        logger.info(
            "Session created",
            extra={"session_id": str(session.id), "join_code": session.join_code},
        )
        if connection is not None:
            self.channels.subscribe(
                session.id, PRESENTER_MEMBER_ID, ROLE_PRESENTER, connection
            )
            await self.channels.send(
                session.id,
                PRESENTER_MEMBER_ID,
                "session-created",
                {
                    "sessionId": str(session.id),
                    "joinCode": session.join_code,
                    "title": session.title,
                    "timeLimit": session.time_limit,
                },
            )
        return session

    async def join_session(
        self,
        join_code: str,
        participant_name: str,
        connection: Connection | None = None,
    ) -> JoinResult:
        """Add a participant and hand back the late-join snapshot."""
        name = _require_text(participant_name, "Participant name")
        code = normalize_join_code(join_code)
        if not code:
            raise InvalidRequestError("Join code is required")
        found = self.store.sessions.get_open_session_by_join_code(code)
        if found is None:
            raise NotFoundError("Invalid join code or session ended")

        async with self.timers.lock(found.id):
            session = self.store.sessions.get_session(found.id)
            if session is None or session.is_ended:
                raise NotFoundError("Invalid join code or session ended")
            now = self.clock()
            participant = self.store.participants.create_participant(
                session.id, name, now
            )
            result = JoinResult(
                participant=participant,
                session=session,
                previous_quizzes=[
                    participant_quiz_view(quiz)
                    for quiz in self.store.quizzes.list_quizzes(session.id)
                ],
                current_timer=self.timers.snapshot(session.id, now),
            )
            if connection is not None:
                member_id = str(participant.id)
                self.channels.subscribe(
                    session.id, member_id, ROLE_PARTICIPANT, connection
                )
                await self.channels.send(
                    session.id, member_id, "session-joined", result.to_payload()
                )
            await self.channels.publish(
                session.id,
                "participant-joined",
                {"participantId": str(participant.id), "participantName": name},
                role=ROLE_PRESENTER,
            )
        logger.info(
            "Participant joined",
            extra={
                "session_id": str(session.id),
                "participant_id": str(participant.id),
                "previous_quizzes": len(result.previous_quizzes),
            },
        )
        return result

    async def start_recording(self, session_id: UUID) -> SessionRecord:
        """Move a waiting session to active; repeated starts are harmless."""
        async with self.timers.lock(session_id):
            session = self._require_open_session(session_id)
            if session.status == STATUS_WAITING:
                self.store.sessions.update_status(session_id, STATUS_ACTIVE)
        await self.channels.publish(
            session_id,
            "recording-started",
            {"sessionId": str(session_id)},
            role=ROLE_PARTICIPANT,
        )
        return self._require_session(session_id)

    async def stop_recording(self, session_id: UUID) -> None:
        """Stop the transcript stream while keeping the session open."""
        self._require_open_session(session_id)
        await self.channels.publish(
            session_id,
            "recording-stopped",
            {"sessionId": str(session_id)},
            role=ROLE_PARTICIPANT,
        )

    async def end_session(self, session_id: UUID) -> SessionReport:
        """End a session and push its reports.

        Ending is terminal, so a repeated call only recomputes the report
        from the now frozen rows and pushes nothing.
        """
        async with self.timers.lock(session_id):
            session = self._require_session(session_id)
            if session.is_ended:
                return await self.analytics.session_report(session_id)
            self.store.sessions.update_status(
                session_id, STATUS_ENDED, ended_at=self.clock()
            )
            abandoned = self.timers.discard(session_id)
            report = await self.analytics.session_report(
                session_id, include_summary=self.include_reviews_on_end
            )
            await self._push_reports(session_id, report)
        logger.info(
            "Session ended",
            extra={
                "session_id": str(session_id),
                "abandoned_quiz_id": str(abandoned.quiz_id) if abandoned else None,
            },
        )
        return report

    async def disconnect(self, session_id: UUID, member_id: str) -> None:
        """Forget a closed connection; a departing presenter ends the session."""
        self.channels.unsubscribe(session_id, member_id)
        if member_id != PRESENTER_MEMBER_ID:
            return
        if not self.end_session_on_presenter_disconnect:
            return
        session = self.store.sessions.get_session(session_id)
        if session is not None and not session.is_ended:
            logger.info(
                "Presenter disconnected; ending session",
                extra={"session_id": str(session_id)},
            )
            await self.end_session(session_id)

    # ---------- Transcript and quizzes ----------

    async def ingest_transcript_fragment(
        self, session_id: UUID, text: str
    ) -> TranscriptFragment:
        """Persist a fragment and enrich it in the background."""
        cleaned = _require_text(text, "Transcript text", max_length=None)
        self._require_open_session(session_id)
        fragment = self.store.transcripts.create_fragment(
            session_id, cleaned, self.clock()
        )
        await self.channels.send(
            session_id,
            PRESENTER_MEMBER_ID,
            "transcript-received",
            {"fragmentId": str(fragment.id), "text": fragment.text},
        )
        self._spawn(self._enrich_fragment(fragment))
        return fragment

    async def emit_quiz(
        self,
        session_id: UUID,
        source_text: str,
        question: str,
        generated: GeneratedQuiz,
    ) -> QuizRecord | None:
        """Persist a quiz, make it the live one and broadcast it."""
        async with self.timers.lock(session_id):
            session = self.store.sessions.get_session(session_id)
            if session is None or session.is_ended:
                logger.info(
                    "Discarding quiz for closed session",
                    extra={"session_id": str(session_id)},
                )
                return None
            now = self.clock()
            quiz = self.store.quizzes.create_quiz(
                session_id=session_id,
                source_text=source_text,
                question=question,
                options=generated.options(),
                correct_answer=generated.correct_answer,
                time_limit=session.time_limit,
                created_at=now,
            )
            self.timers.arm(
                session_id,
                QuizTimerEntry(quiz_id=quiz.id, started_at=now, duration=quiz.time_limit),
            )
            await self.channels.publish(
                session_id,
                "new-quiz",
                participant_quiz_view(quiz, started_at=now),
                role=ROLE_PARTICIPANT,
            )
            await self.channels.publish(
                session_id,
                "quiz-created",
                presenter_quiz_view(quiz, started_at=now),
                role=ROLE_PRESENTER,
            )
            self.scheduler.call_later(
                quiz.time_limit, partial(self._on_timeout, session_id, quiz.id)
            )
        logger.info(
            "Quiz emitted",
            extra={"session_id": str(session_id), "quiz_id": str(quiz.id)},
        )
        return quiz

    async def submit_answer(
        self, quiz_id: UUID, participant_id: UUID, selected_option: str
    ) -> AnswerRecord:
        """Record an answer without revealing whether it is correct."""
        label = (
            normalize_option(selected_option)
            if isinstance(selected_option, str)
            else None
        )
        if label is None:
            raise InvalidRequestError("Answer must be one of A, B, C or D")
        participant = self.store.participants.get_participant(participant_id)
        if participant is None:
            raise NotFoundError("Participant not found")
        quiz = self.store.quizzes.get_quiz(quiz_id)
        if quiz is None:
            raise NotFoundError("Quiz not found")
        if quiz.session_id != participant.session_id:
            raise InvalidRequestError("Quiz belongs to a different session")

        async with self.timers.lock(quiz.session_id):
            self._require_open_session(quiz.session_id)
            if self.store.answers.get_answer(quiz.id, participant.id) is not None:
                raise DuplicateAnswerError("Answer already submitted for this quiz")
            answer = self.store.answers.create_answer(
                quiz_id=quiz.id,
                participant_id=participant.id,
                selected_option=label,
                answered_at=self.clock(),
                on_time=self.timers.is_live(quiz.session_id, quiz.id),
            )
            answer_count = sum(
                1 for row in self.store.answers.list_answers([quiz.id]) if row.on_time
            )
        await self.channels.send(
            quiz.session_id,
            str(participant.id),
            "answer-submitted",
            {
                "answerId": str(answer.id),
                "quizId": str(quiz.id),
                "onTime": answer.on_time,
            },
        )
        await self.channels.publish(
            quiz.session_id,
            "answer-received",
            {"quizId": str(quiz.id), "answerCount": answer_count},
            role=ROLE_PRESENTER,
        )
        if not answer.on_time:
            logger.info(
                "Late answer recorded",
                extra={"quiz_id": str(quiz.id), "participant_id": str(participant.id)},
            )
        return answer

    async def end_quiz_manually(self, session_id: UUID, quiz_id: UUID) -> bool:
        """Reveal a quiz early; returns False if it was no longer live."""
        quiz = self.store.quizzes.get_quiz(quiz_id)
        if quiz is None or quiz.session_id != session_id:
            raise NotFoundError("Quiz not found")
        return await self._reveal(quiz, EVENT_QUIZ_RESULTS)

    # ---------- Queries ----------

    def get_session(self, session_id: UUID) -> SessionRecord:
        return self._require_session(session_id)

    def list_quiz_views(self, session_id: UUID) -> list[dict[str, object]]:
        """Return a session's quizzes as participants see them."""
        self._require_session(session_id)
        return [
            participant_quiz_view(quiz)
            for quiz in self.store.quizzes.list_quizzes(session_id)
        ]

    # ---------- Background work ----------

    async def wait_idle(self) -> None:
        """Wait until every in-flight enrichment task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel background enrichment and pending quiz timers."""
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.scheduler.close()

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _enrich_fragment(self, fragment: TranscriptFragment) -> None:
        try:
            detection = await self.enricher.detect(fragment.text)
            if detection is None or not detection.has_question:
                logger.debug(
                    "No question in fragment", extra={"fragment_id": str(fragment.id)}
                )
                return
            question = detection.question or ""
            await self.channels.publish(
                fragment.session_id,
                "question-detected",
                {"question": question, "originalText": fragment.text},
                role=ROLE_PRESENTER,
            )
            generated = await self.enricher.generate_quiz(question)
            if generated is None:
                logger.info(
                    "No quiz generated for detected question",
                    extra={"fragment_id": str(fragment.id)},
                )
                return
            await self.emit_quiz(fragment.session_id, fragment.text, question, generated)
        except Exception:
            logger.exception(
                "Fragment enrichment failed", extra={"fragment_id": str(fragment.id)}
            )

    async def _on_timeout(self, session_id: UUID, quiz_id: UUID) -> None:
        if not self.timers.is_live(session_id, quiz_id):
            logger.debug("Ignoring stale quiz timer", extra={"quiz_id": str(quiz_id)})
            return
        quiz = self.store.quizzes.get_quiz(quiz_id)
        if quiz is None:
            self.timers.release(session_id, quiz_id)
            return
        await self._reveal(quiz, EVENT_QUIZ_TIMEOUT)

    async def _reveal(self, quiz: QuizRecord, event: str) -> bool:
        async with self.timers.lock(quiz.session_id):
            if self.timers.release(quiz.session_id, quiz.id) is None:
                return False
            answers = self.store.answers.list_answers([quiz.id])
            await self.channels.publish(
                quiz.session_id,
                event,
                {
                    "quizId": str(quiz.id),
                    "correctAnswer": quiz.correct_answer,
                    "answerDistribution": answer_distribution(answers),
                },
            )
        logger.info(
            "Quiz revealed",
            extra={"quiz_id": str(quiz.id), "reason": event},
        )
        return True

    async def _push_reports(self, session_id: UUID, report: SessionReport) -> None:
        await self.channels.send(
            session_id,
            PRESENTER_MEMBER_ID,
            "session-ended",
            {"sessionId": str(session_id), "report": report.to_payload()},
        )
        for member_id in self.channels.member_ids(session_id, ROLE_PARTICIPANT):
            personal = await self.analytics.participant_report(
                session_id,
                UUID(member_id),
                include_review=self.include_reviews_on_end,
                lecture_summary=report.lecture_summary,
            )
            await self.channels.send(
                session_id,
                member_id,
                "session-ended",
                {"sessionId": str(session_id), "report": personal.to_payload()},
            )

    # ---------- Helpers ----------

    def _require_session(self, session_id: UUID) -> SessionRecord:
        session = self.store.sessions.get_session(session_id)
        if session is None:
            raise NotFoundError("Session not found")
        return session

    def _require_open_session(self, session_id: UUID) -> SessionRecord:
        session = self._require_session(session_id)
        if session.is_ended:
            raise InvalidRequestError("Session has ended")
        return session

    def _validate_time_limit(self, time_limit: int | None) -> int:
        if time_limit is None:
            return self.default_time_limit
        if isinstance(time_limit, bool) or not isinstance(time_limit, int):
            raise InvalidRequestError("Time limit must be a whole number of seconds")
        if not self.min_time_limit <= time_limit <= self.max_time_limit:
            raise InvalidRequestError(
                f"Time limit must be between {self.min_time_limit} "
                f"and {self.max_time_limit} seconds"
            )
        return time_limit

    def _insert_session(
        self, presenter_name: str, title: str, time_limit: int
    ) -> SessionRecord:
        """Persist a session under a fresh join code, retrying on collisions."""
        for _ in range(JOIN_CODE_ATTEMPTS):
            code = "".join(
                secrets.choice(JOIN_CODE_ALPHABET)
                for _ in range(self.join_code_length)
            )
            if self.store.sessions.get_open_session_by_join_code(code) is not None:
                continue
            try:
                return self.store.sessions.create_session(
                    presenter_name=presenter_name,
                    title=title,
                    join_code=code,
                    time_limit=time_limit,
                    created_at=self.clock(),
                )
            except JoinCodeTakenError:
                logger.info("Join code claimed concurrently", extra={"join_code": code})
        raise StorageError("Could not allocate a unique join code")


def normalize_join_code(value: str) -> str:
    """Strip whitespace and upper-case a typed join code."""
    if not isinstance(value, str):
        return ""
    return "".join(value.split()).upper()


def participant_quiz_view(
    quiz: QuizRecord, started_at: datetime | None = None
) -> dict[str, object]:
    """Quiz payload without the correct answer."""
    view: dict[str, object] = {
        "quizId": str(quiz.id),
        "question": quiz.question,
        "options": dict(quiz.options),
        "timeLimit": quiz.time_limit,
        "createdAt": quiz.created_at.isoformat(),
    }
    if started_at is not None:
        view["startTime"] = epoch_ms(started_at)
    return view


def presenter_quiz_view(quiz: QuizRecord, started_at: datetime) -> dict[str, object]:
    """Quiz payload for monitoring, including the answer key."""
    view = participant_quiz_view(quiz, started_at=started_at)
    view["correctAnswer"] = quiz.correct_answer
    view["sourceText"] = quiz.source_text
    return view


def _require_text(
    value: object, label: str, max_length: int | None = MAX_NAME_LENGTH
) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidRequestError(f"{label} is required")
    cleaned = value.strip()
    if max_length is not None and len(cleaned) > max_length:
        raise InvalidRequestError(f"{label} must be at most {max_length} characters")
    return cleaned
