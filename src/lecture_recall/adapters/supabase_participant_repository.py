"""Supabase repository for session participants."""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from postgrest.exceptions import APIError
from supabase import Client

from lecture_recall.domain.errors import StorageError
from lecture_recall.domain.sessions import ParticipantRecord
from lecture_recall.services.store import ParticipantRepository

logger = logging.getLogger(__name__)


@dataclass
class SupabaseParticipantRepository(ParticipantRepository):
    """Supabase implementation for participants."""

    client: Client

    def create_participant(
        self, session_id: UUID, name: str, joined_at: datetime
    ) -> ParticipantRecord:
        """Create a participant row and return it."""
        try:
            response = (
                self.client.table("participants")
                .insert(
                    {
                        "session_id": str(session_id),
                        "name": name,
                        "joined_at": joined_at.isoformat(),
                    }
                )
                .execute()
            )
        except APIError as exc:
            logger.exception(
                "Failed to create participant", extra={"session_id": str(session_id)}
            )
            raise StorageError("Failed to create participant") from exc
        if not response.data:
            raise StorageError("Failed to create participant")
        return _parse_participant(response.data[0])

    def get_participant(self, participant_id: UUID) -> ParticipantRecord | None:
        response = (
            self.client.table("participants")
            .select("id, session_id, name, joined_at")
            .eq("id", str(participant_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_participant(response.data[0])

    def list_participants(self, session_id: UUID) -> list[ParticipantRecord]:
        response = (
            self.client.table("participants")
            .select("id, session_id, name, joined_at")
            .eq("session_id", str(session_id))
            .order("joined_at", desc=False)
            .execute()
        )
        return [_parse_participant(row) for row in response.data or []]


def _parse_participant(row: dict[str, object]) -> ParticipantRecord:
    return ParticipantRecord(
        id=UUID(str(row["id"])),
        session_id=UUID(str(row["session_id"])),
        name=str(row["name"]),
        joined_at=datetime.fromisoformat(str(row["joined_at"])),
    )
