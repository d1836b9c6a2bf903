"""Supabase repository for transcript fragments."""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from postgrest.exceptions import APIError
from supabase import Client

from lecture_recall.domain.errors import StorageError
from lecture_recall.domain.sessions import TranscriptFragment
from lecture_recall.services.store import TranscriptRepository

logger = logging.getLogger(__name__)


@dataclass
class SupabaseTranscriptRepository(TranscriptRepository):
    """Append-only transcript storage."""

    client: Client

    def create_fragment(
        self, session_id: UUID, text: str, created_at: datetime
    ) -> TranscriptFragment:
        try:
            response = (
                self.client.table("transcript_fragments")
                .insert(
                    {
                        "session_id": str(session_id),
                        "text": text,
                        "created_at": created_at.isoformat(),
                    }
                )
                .execute()
            )
        except APIError as exc:
            logger.exception(
                "Failed to store transcript fragment",
                extra={"session_id": str(session_id)},
            )
            raise StorageError("Failed to store transcript fragment") from exc
        if not response.data:
            raise StorageError("Failed to store transcript fragment")
        return _parse_fragment(response.data[0])

    def list_fragments(self, session_id: UUID) -> list[TranscriptFragment]:
        """Return fragments in arrival order."""
        response = (
            self.client.table("transcript_fragments")
            .select("id, session_id, text, created_at")
            .eq("session_id", str(session_id))
            .order("seq", desc=False)
            .execute()
        )
        return [_parse_fragment(row) for row in response.data or []]


def _parse_fragment(row: dict[str, object]) -> TranscriptFragment:
    return TranscriptFragment(
        id=UUID(str(row["id"])),
        session_id=UUID(str(row["session_id"])),
        text=str(row["text"]),
        created_at=datetime.fromisoformat(str(row["created_at"])),
    )
