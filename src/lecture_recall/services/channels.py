"""Session-scoped publish/subscribe channels for live connections."""

import logging
from dataclasses import dataclass
from typing import Any, Protocol
from uuid import UUID

logger = logging.getLogger(__name__)

ROLE_PRESENTER = "presenter"
ROLE_PARTICIPANT = "participant"

PRESENTER_MEMBER_ID = "presenter"


class Connection(Protocol):
    """Anything that can push a JSON message to a client."""

    async def send_json(self, data: Any) -> None:
        """Send a JSON-serializable payload."""


@dataclass
class _Member:
    member_id: str
    role: str
    connection: Connection


class SessionChannels:
    """Keeps one channel per session; join and leave are explicit."""

    def __init__(self) -> None:
        self._channels: dict[UUID, dict[str, _Member]] = {}

    def subscribe(
        self, session_id: UUID, member_id: str, role: str, connection: Connection
    ) -> None:
        """Add a connection to a session channel, replacing the same member."""
        members = self._channels.setdefault(session_id, {})
        members[member_id] = _Member(member_id, role, connection)

    def unsubscribe(self, session_id: UUID, member_id: str) -> None:
        members = self._channels.get(session_id)
        if not members:
            return
        members.pop(member_id, None)
        if not members:
            self._channels.pop(session_id, None)

    def is_connected(self, session_id: UUID, member_id: str) -> bool:
        return member_id in self._channels.get(session_id, {})

    def member_ids(self, session_id: UUID, role: str | None = None) -> list[str]:
        members = self._channels.get(session_id, {})
        return [
            member.member_id
            for member in members.values()
            if role is None or member.role == role
        ]

    async def publish(
        self,
        session_id: UUID,
        event: str,
        payload: dict[str, object] | None = None,
        *,
        role: str | None = None,
        exclude: str | None = None,
    ) -> int:
        """Send an event to every member (optionally of one role).

        Returns the number of members the event reached. Members whose
        connection fails are dropped from the channel.
        """
        message = _envelope(event, payload)
        delivered = 0
        for member in list(self._channels.get(session_id, {}).values()):
            if role is not None and member.role != role:
                continue
            if member.member_id == exclude:
                continue
            if await self._deliver(session_id, member, message):
                delivered += 1
        return delivered

    async def send(
        self,
        session_id: UUID,
        member_id: str,
        event: str,
        payload: dict[str, object] | None = None,
    ) -> bool:
        """Send an event to a single member of a session channel."""
        member = self._channels.get(session_id, {}).get(member_id)
        if member is None:
            return False
        return await self._deliver(session_id, member, _envelope(event, payload))

    async def _deliver(
        self, session_id: UUID, member: _Member, message: dict[str, object]
    ) -> bool:
        try:
            await member.connection.send_json(message)
        except Exception:
            logger.warning(
                "Dropping unreachable connection",
                extra={"session_id": str(session_id), "member_id": member.member_id},
            )
            members = self._channels.get(session_id, {})
            if members.get(member.member_id) is member:
                self.unsubscribe(session_id, member.member_id)
            return False
        return True


def _envelope(event: str, payload: dict[str, object] | None) -> dict[str, object]:
    return {"type": event, **(payload or {})}
