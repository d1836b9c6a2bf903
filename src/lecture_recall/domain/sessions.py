"""Domain models for live sessions and their participants."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

STATUS_WAITING = "waiting"
STATUS_ACTIVE = "active"
STATUS_ENDED = "ended"


@dataclass(frozen=True)
class SessionRecord:
    """Represents a persisted lecture session."""

    id: UUID
    presenter_name: str
    title: str
    join_code: str
    status: str
    time_limit: int
    created_at: datetime
    ended_at: datetime | None = None

    @property
    def is_ended(self) -> bool:
        return self.status == STATUS_ENDED


@dataclass(frozen=True)
class ParticipantRecord:
    """Anonymous participant identified only by its id token."""

    id: UUID
    session_id: UUID
    name: str
    joined_at: datetime


@dataclass(frozen=True)
class TranscriptFragment:
    """Finalized chunk of presenter speech."""

    id: UUID
    session_id: UUID
    text: str
    created_at: datetime
