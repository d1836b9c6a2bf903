"""Supabase repository for lecture sessions."""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from postgrest.exceptions import APIError
from supabase import Client

from lecture_recall.domain.errors import JoinCodeTakenError, StorageError
from lecture_recall.domain.sessions import STATUS_ENDED, SessionRecord
from lecture_recall.services.store import SessionRepository

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"

_SESSION_COLUMNS = (
    "id, presenter_name, title, join_code, status, time_limit, created_at, ended_at"
)


@dataclass
class SupabaseSessionRepository(SessionRepository):
    """Supabase implementation for sessions.

    Join codes are unique among non-ended sessions through a partial unique
    index, so a concurrent claim of the same code surfaces as
    JoinCodeTakenError.
    """

    client: Client

    def create_session(  # noqa: PLR0913
        self,
        presenter_name: str,
        title: str,
        join_code: str,
        time_limit: int,
        created_at: datetime,
    ) -> SessionRecord:
        """Create a waiting session row and return it."""
        try:
            response = (
                self.client.table("sessions")
                .insert(
                    {
                        "presenter_name": presenter_name,
                        "title": title,
                        "join_code": join_code,
                        "time_limit": time_limit,
                        "created_at": created_at.isoformat(),
                    }
                )
                .execute()
            )
        except APIError as exc:
            if exc.code == UNIQUE_VIOLATION:
                raise JoinCodeTakenError(f"Join code {join_code} is in use") from exc
            logger.exception("Failed to create session", extra={"join_code": join_code})
            raise StorageError("Failed to create session") from exc
        if not response.data:
            raise StorageError("Failed to create session")
        return _parse_session(response.data[0])

    def get_session(self, session_id: UUID) -> SessionRecord | None:
        response = (
            self.client.table("sessions")
            .select(_SESSION_COLUMNS)
            .eq("id", str(session_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_session(response.data[0])

    def get_open_session_by_join_code(self, join_code: str) -> SessionRecord | None:
        """Return the session using a join code unless it has ended."""
        response = (
            self.client.table("sessions")
            .select(_SESSION_COLUMNS)
            .eq("join_code", join_code)
            .neq("status", STATUS_ENDED)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_session(response.data[0])

    def update_status(
        self, session_id: UUID, status: str, ended_at: datetime | None = None
    ) -> None:
        """Update a session's status and optional end timestamp."""
        payload: dict[str, object] = {"status": status}
        if ended_at is not None:
            payload["ended_at"] = ended_at.isoformat()
        try:
            response = (
                self.client.table("sessions")
                .update(payload)
                .eq("id", str(session_id))
                .execute()
            )
        except APIError as exc:
            logger.exception(
                "Failed to update session status",
                extra={"session_id": str(session_id), "status": status},
            )
            raise StorageError("Failed to update session status") from exc
        if not response.data:
            raise StorageError("Failed to update session status")

    def list_recent_sessions(self, limit: int) -> list[SessionRecord]:
        response = (
            self.client.table("sessions")
            .select(_SESSION_COLUMNS)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [_parse_session(row) for row in response.data or []]

    def list_presenter_sessions(
        self, presenter_name: str, since: datetime | None = None
    ) -> list[SessionRecord]:
        """Return one presenter's sessions, newest first."""
        query = (
            self.client.table("sessions")
            .select(_SESSION_COLUMNS)
            .eq("presenter_name", presenter_name)
        )
        if since is not None:
            query = query.gte("created_at", since.isoformat())
        response = query.order("created_at", desc=True).execute()
        return [_parse_session(row) for row in response.data or []]


def _parse_session(row: dict[str, object]) -> SessionRecord:
    ended_at = row.get("ended_at")
    return SessionRecord(
        id=UUID(str(row["id"])),
        presenter_name=str(row["presenter_name"]),
        title=str(row["title"]),
        join_code=str(row["join_code"]),
        status=str(row["status"]),
        time_limit=int(row["time_limit"]),
        created_at=datetime.fromisoformat(str(row["created_at"])),
        ended_at=datetime.fromisoformat(str(ended_at)) if ended_at else None,
    )
