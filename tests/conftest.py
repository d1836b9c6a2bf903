"""Shared test fixtures."""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import pytest

from lecture_recall.config import Settings
from lecture_recall.containers import AppContainer
from lecture_recall.domain.errors import (
    DuplicateAnswerError,
    JoinCodeTakenError,
    NotFoundError,
)
from lecture_recall.domain.quizzes import AnswerRecord, QuizRecord
from lecture_recall.domain.sessions import (
    STATUS_ENDED,
    STATUS_WAITING,
    ParticipantRecord,
    SessionRecord,
    TranscriptFragment,
)
from lecture_recall.services.admin import AdminService
from lecture_recall.services.analytics import AnalyticsService
from lecture_recall.services.channels import SessionChannels
from lecture_recall.services.coordinator import SessionCoordinator
from lecture_recall.services.enrichment import ContentEnricher, EnrichmentClient
from lecture_recall.services.store import (
    AnswerRepository,
    ParticipantRepository,
    QuizRepository,
    SessionRepository,
    SessionStore,
    TranscriptRepository,
)
from lecture_recall.services.timers import QuizTimerRegistry, Scheduler, TimeoutCallback

SAMPLE_OPTIONS = {
    "option_a": "Mitochondria",
    "option_b": "Nucleus",
    "option_c": "Ribosome",
    "option_d": "Golgi apparatus",
}


@dataclass
class InMemorySessionRepository(SessionRepository):
    """In-memory session repository for tests."""

    sessions: dict[UUID, SessionRecord] = field(default_factory=dict)

    def create_session(  # noqa: PLR0913
        self,
        presenter_name: str,
        title: str,
        join_code: str,
        time_limit: int,
        created_at: datetime,
    ) -> SessionRecord:
        if self.get_open_session_by_join_code(join_code) is not None:
            raise JoinCodeTakenError(f"Join code {join_code} is in use")
        session = SessionRecord(
            id=uuid4(),
            presenter_name=presenter_name,
            title=title,
            join_code=join_code,
            status=STATUS_WAITING,
            time_limit=time_limit,
            created_at=created_at,
        )
        self.sessions[session.id] = session
        return session

    def get_session(self, session_id: UUID) -> SessionRecord | None:
        return self.sessions.get(session_id)

    def get_open_session_by_join_code(self, join_code: str) -> SessionRecord | None:
        for session in self.sessions.values():
            if session.join_code == join_code and session.status != STATUS_ENDED:
                return session
        return None

    def update_status(
        self, session_id: UUID, status: str, ended_at: datetime | None = None
    ) -> None:
        session = self.sessions[session_id]
        self.sessions[session_id] = SessionRecord(
            id=session.id,
            presenter_name=session.presenter_name,
            title=session.title,
            join_code=session.join_code,
            status=status,
            time_limit=session.time_limit,
            created_at=session.created_at,
            ended_at=ended_at or session.ended_at,
        )

    def list_recent_sessions(self, limit: int) -> list[SessionRecord]:
        ordered = sorted(
            self.sessions.values(), key=lambda session: session.created_at, reverse=True
        )
        return ordered[:limit]

    def list_presenter_sessions(
        self, presenter_name: str, since: datetime | None = None
    ) -> list[SessionRecord]:
        matching = [
            session
            for session in self.sessions.values()
            if session.presenter_name == presenter_name
            and (since is None or session.created_at >= since)
        ]
        return sorted(matching, key=lambda session: session.created_at, reverse=True)


@dataclass
class InMemoryParticipantRepository(ParticipantRepository):
    """In-memory participant repository for tests."""

    participants: dict[UUID, ParticipantRecord] = field(default_factory=dict)

    def create_participant(
        self, session_id: UUID, name: str, joined_at: datetime
    ) -> ParticipantRecord:
        participant = ParticipantRecord(
            id=uuid4(), session_id=session_id, name=name, joined_at=joined_at
        )
        self.participants[participant.id] = participant
        return participant

    def get_participant(self, participant_id: UUID) -> ParticipantRecord | None:
        return self.participants.get(participant_id)

    def list_participants(self, session_id: UUID) -> list[ParticipantRecord]:
        return [
            participant
            for participant in self.participants.values()
            if participant.session_id == session_id
        ]


@dataclass
class InMemoryTranscriptRepository(TranscriptRepository):
    """In-memory transcript repository for tests."""

    fragments: list[TranscriptFragment] = field(default_factory=list)

    def create_fragment(
        self, session_id: UUID, text: str, created_at: datetime
    ) -> TranscriptFragment:
        fragment = TranscriptFragment(
            id=uuid4(), session_id=session_id, text=text, created_at=created_at
        )
        self.fragments.append(fragment)
        return fragment

    def list_fragments(self, session_id: UUID) -> list[TranscriptFragment]:
        return [fragment for fragment in self.fragments if fragment.session_id == session_id]


@dataclass
class InMemoryQuizRepository(QuizRepository):
    """In-memory quiz repository for tests."""

    quizzes: list[QuizRecord] = field(default_factory=list)

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
        quiz = QuizRecord(
            id=uuid4(),
            session_id=session_id,
            source_text=source_text,
            question=question,
            options=dict(options),
            correct_answer=correct_answer,
            time_limit=time_limit,
            created_at=created_at,
        )
        self.quizzes.append(quiz)
        return quiz

    def get_quiz(self, quiz_id: UUID) -> QuizRecord | None:
        for quiz in self.quizzes:
            if quiz.id == quiz_id:
                return quiz
        return None

    def list_quizzes(self, session_id: UUID) -> list[QuizRecord]:
        return [quiz for quiz in self.quizzes if quiz.session_id == session_id]


@dataclass
class InMemoryAnswerRepository(AnswerRepository):
    """In-memory answer repository enforcing one answer per quiz and participant."""

    answers: list[AnswerRecord] = field(default_factory=list)
    known_quizzes: InMemoryQuizRepository | None = None

    def create_answer(  # noqa: PLR0913
        self,
        quiz_id: UUID,
        participant_id: UUID,
        selected_option: str,
        answered_at: datetime,
        on_time: bool,
    ) -> AnswerRecord:
        if self.get_answer(quiz_id, participant_id) is not None:
            raise DuplicateAnswerError("Answer already submitted for this quiz")
        if self.known_quizzes is not None and self.known_quizzes.get_quiz(quiz_id) is None:
            raise NotFoundError("Quiz or participant not found")
        answer = AnswerRecord(
            id=uuid4(),
            quiz_id=quiz_id,
            participant_id=participant_id,
            selected_option=selected_option,
            answered_at=answered_at,
            on_time=on_time,
        )
        self.answers.append(answer)
        return answer

    def get_answer(self, quiz_id: UUID, participant_id: UUID) -> AnswerRecord | None:
        for answer in self.answers:
            if answer.quiz_id == quiz_id and answer.participant_id == participant_id:
                return answer
        return None

    def list_answers(self, quiz_ids: list[UUID]) -> list[AnswerRecord]:
        wanted = set(quiz_ids)
        return [answer for answer in self.answers if answer.quiz_id in wanted]


def build_store() -> SessionStore:
    quizzes = InMemoryQuizRepository()
    return SessionStore(
        sessions=InMemorySessionRepository(),
        participants=InMemoryParticipantRepository(),
        transcripts=InMemoryTranscriptRepository(),
        quizzes=quizzes,
        answers=InMemoryAnswerRepository(known_quizzes=quizzes),
    )


@dataclass
class FakeEnrichmentClient(EnrichmentClient):
    """Fake language model that replays queued responses."""

    json_responses: dict[str, list[object]] = field(default_factory=dict)
    text_responses: list[object] = field(default_factory=list)
    json_calls: list[tuple[str, str]] = field(default_factory=list)
    text_calls: list[str] = field(default_factory=list)

    def queue_json(self, schema_name: str, response: object) -> None:
        self.json_responses.setdefault(schema_name, []).append(response)

    def queue_question(self, question: str, correct_answer: str = "B") -> None:
        """Queue a detection hit followed by generated options."""
        self.queue_json("question_detection", {"has_question": True, "question": question})
        self.queue_json(
            "quiz_options", {**SAMPLE_OPTIONS, "correct_answer": correct_answer}
        )

    async def generate_json(
        self,
        *,
        prompt: str,
        schema: dict[str, object],
        schema_name: str,
        temperature: float,
    ) -> dict[str, object]:
        self.json_calls.append((schema_name, prompt))
        queue = self.json_responses.get(schema_name) or []
        if not queue:
            if schema_name == "question_detection":
                return {"has_question": False, "question": None}
            raise RuntimeError(f"No response queued for {schema_name}")
        response = queue.pop(0)
        if isinstance(response, Exception):
            raise response
        return response  # type: ignore[return-value]

    async def generate_text(self, *, prompt: str, temperature: float) -> str:
        self.text_calls.append(prompt)
        if not self.text_responses:
            raise RuntimeError("No text response queued")
        response = self.text_responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return str(response)


@dataclass
class FakeConnection:
    """Connection that records pushed messages."""

    messages: list[dict[str, object]] = field(default_factory=list)
    fail: bool = False

    async def send_json(self, data: dict[str, object]) -> None:
        if self.fail:
            raise RuntimeError("connection closed")
        self.messages.append(data)

    def of_type(self, event: str) -> list[dict[str, object]]:
        return [message for message in self.messages if message["type"] == event]

    def last(self, event: str) -> dict[str, object]:
        found = self.of_type(event)
        assert found, f"no {event} message in {[m['type'] for m in self.messages]}"
        return found[-1]


@dataclass
class FakeClock:
    """Controllable clock returning timezone-aware datetimes."""

    now: datetime = field(
        default_factory=lambda: datetime(2025, 3, 3, 9, 0, tzinfo=UTC)
    )

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@dataclass
class ManualScheduler(Scheduler):
    """Scheduler that fires callbacks only when the test advances time."""

    clock: FakeClock
    pending: list[tuple[datetime, TimeoutCallback]] = field(default_factory=list)
    closed: bool = False

    def call_later(self, delay: float, callback: TimeoutCallback) -> None:
        self.pending.append((self.clock.now + timedelta(seconds=delay), callback))

    async def advance(self, seconds: float) -> int:
        """Move the clock forward, running due callbacks in deadline order."""
        target = self.clock.now + timedelta(seconds=seconds)
        fired = 0
        while True:
            due = sorted(
                (entry for entry in self.pending if entry[0] <= target),
                key=lambda entry: entry[0],
            )
            if not due:
                break
            entry = due[0]
            self.pending.remove(entry)
            self.clock.now = max(self.clock.now, entry[0])
            await entry[1]()
            fired += 1
        self.clock.now = target
        return fired

    async def close(self) -> None:
        self.pending.clear()
        self.closed = True


@dataclass
class Harness:
    """A coordinator wired to in-memory fakes."""

    store: SessionStore
    client: FakeEnrichmentClient
    clock: FakeClock
    scheduler: ManualScheduler
    enricher: ContentEnricher
    analytics: AnalyticsService
    coordinator: SessionCoordinator


def build_harness(**overrides: object) -> Harness:
    store = build_store()
    client = FakeEnrichmentClient()
    clock = FakeClock()
    scheduler = ManualScheduler(clock)
    enricher = ContentEnricher(client=client, timeout_seconds=1.0)
    analytics = AnalyticsService(store=store, enricher=enricher, clock=clock)
    coordinator = SessionCoordinator(
        store=store,
        timers=QuizTimerRegistry(),
        channels=SessionChannels(),
        enricher=enricher,
        analytics=analytics,
        scheduler=scheduler,
        clock=clock,
        **overrides,  # type: ignore[arg-type]
    )
    return Harness(
        store=store,
        client=client,
        clock=clock,
        scheduler=scheduler,
        enricher=enricher,
        analytics=analytics,
        coordinator=coordinator,
    )


@pytest.fixture
def harness() -> Harness:
    return build_harness()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key=(
            "eyJhbGciOiJIUzI1NiJ9.eyJyb2xlIjoic2VydmljZSJ9.signature"
        ),
        admin_token="admin-token",
        openai_api_key="openai-key",
    )


@pytest.fixture
def container(settings: Settings, harness: Harness) -> AppContainer:
    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        store=harness.store,
        enricher=harness.enricher,
        coordinator=harness.coordinator,
        analytics_service=harness.analytics,
        admin_service=AdminService(harness.store),
        close_resources=close_resources,
    )
