"""Quiz countdown tracking and deferred timeout scheduling."""

import asyncio
import logging
import math
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol
from uuid import UUID

logger = logging.getLogger(__name__)

TimeoutCallback = Callable[[], Awaitable[None]]


@dataclass(frozen=True)
class QuizTimerEntry:
    """The single live quiz of a session and its countdown."""

    quiz_id: UUID
    started_at: datetime
    duration: int

    def seconds_remaining(self, now: datetime) -> float:
        elapsed = (now - self.started_at).total_seconds()
        return max(0.0, self.duration - elapsed)


@dataclass(frozen=True)
class TimerSnapshot:
    """Countdown state handed to late joiners."""

    quiz_id: UUID
    time_remaining: int
    started_at: datetime
    time_limit: int

    def to_payload(self) -> dict[str, object]:
        return {
            "quizId": str(self.quiz_id),
            "timeRemaining": self.time_remaining,
            "startTime": epoch_ms(self.started_at),
            "timeLimit": self.time_limit,
        }


@dataclass
class _SessionLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class QuizTimerRegistry:
    """Maps each session to its live quiz, with one lock per session.

    Entries are replaced or removed, never merged. Callers doing a
    read-then-write sequence hold ``lock(session_id)`` around it so that
    operations on the same session are serialized while other sessions
    proceed independently. A session's lock exists only while someone holds
    or awaits it.
    """

    def __init__(self) -> None:
        self._entries: dict[UUID, QuizTimerEntry] = {}
        self._locks: dict[UUID, _SessionLock] = {}

    @asynccontextmanager
    async def lock(self, session_id: UUID) -> AsyncIterator[None]:
        """Hold the lock guarding a session's entry."""
        slot = self._locks.get(session_id)
        if slot is None:
            slot = self._locks[session_id] = _SessionLock()
        slot.holders += 1
        try:
            async with slot.lock:
                yield
        finally:
            slot.holders -= 1
            if slot.holders == 0:
                del self._locks[session_id]

    def lock_count(self) -> int:
        return len(self._locks)

    def current(self, session_id: UUID) -> QuizTimerEntry | None:
        return self._entries.get(session_id)

    def arm(self, session_id: UUID, entry: QuizTimerEntry) -> QuizTimerEntry | None:
        """Make ``entry`` the live quiz and return the one it superseded."""
        previous = self._entries.get(session_id)
        self._entries[session_id] = entry
        if previous is not None and previous.quiz_id != entry.quiz_id:
            logger.info(
                "Quiz superseded",
                extra={
                    "session_id": str(session_id),
                    "quiz_id": str(previous.quiz_id),
                },
            )
        return previous

    def is_live(self, session_id: UUID, quiz_id: UUID) -> bool:
        entry = self._entries.get(session_id)
        return entry is not None and entry.quiz_id == quiz_id

    def release(self, session_id: UUID, quiz_id: UUID) -> QuizTimerEntry | None:
        """Remove the entry only if it still references ``quiz_id``."""
        if not self.is_live(session_id, quiz_id):
            return None
        return self._entries.pop(session_id)

    def discard(self, session_id: UUID) -> QuizTimerEntry | None:
        """Remove a session's entry unconditionally."""
        return self._entries.pop(session_id, None)

    def snapshot(self, session_id: UUID, now: datetime) -> TimerSnapshot | None:
        """Return the live countdown derived from the entry, not reset."""
        entry = self._entries.get(session_id)
        if entry is None:
            return None
        return TimerSnapshot(
            quiz_id=entry.quiz_id,
            time_remaining=math.ceil(entry.seconds_remaining(now)),
            started_at=entry.started_at,
            time_limit=entry.duration,
        )

    def __len__(self) -> int:
        return len(self._entries)


class Scheduler(Protocol):
    """Runs a coroutine callback once after a delay."""

    def call_later(self, delay: float, callback: TimeoutCallback) -> None:
        """Schedule ``callback`` to run after ``delay`` seconds."""

    async def close(self) -> None:
        """Drop callbacks that have not fired yet."""


class AsyncioScheduler(Scheduler):
    """Scheduler backed by tasks on the running event loop."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()

    def call_later(self, delay: float, callback: TimeoutCallback) -> None:
        task = asyncio.create_task(self._run_later(delay, callback))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    @staticmethod
    async def _run_later(delay: float, callback: TimeoutCallback) -> None:
        await asyncio.sleep(delay)
        try:
            await callback()
        except Exception:
            logger.exception("Deferred quiz callback failed")


def epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


