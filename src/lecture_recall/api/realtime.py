"""WebSocket endpoint for presenters and participants."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING
from uuid import UUID

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from lecture_recall.api.messages import (
    ClientMessage,
    CreateSessionMessage,
    EndQuizMessage,
    EndSessionMessage,
    JoinSessionMessage,
    PresenterMessage,
    StartRecordingMessage,
    StopRecordingMessage,
    SubmitAnswerMessage,
    TranscriptChunkMessage,
    parse_client_message,
)
from lecture_recall.domain.errors import (
    ForbiddenError,
    InvalidRequestError,
    LectureRecallError,
)
from lecture_recall.services.channels import (
    PRESENTER_MEMBER_ID,
    ROLE_PARTICIPANT,
    ROLE_PRESENTER,
)

if TYPE_CHECKING:
    from lecture_recall.containers import AppContainer
    from lecture_recall.services.coordinator import SessionCoordinator

logger = logging.getLogger(__name__)

router = APIRouter()


@dataclass
class SocketIdentity:
    """What a connection became after its first create or join."""

    session_id: UUID | None = None
    member_id: str | None = None
    role: str | None = None

    def bind(self, session_id: UUID, member_id: str, role: str) -> None:
        self.session_id = session_id
        self.member_id = member_id
        self.role = role

    def require_unbound(self) -> None:
        if self.session_id is not None:
            raise InvalidRequestError("Connection already belongs to a session")

    def require_presenter(self, session_id: UUID) -> None:
        if self.role != ROLE_PRESENTER or self.session_id != session_id:
            raise ForbiddenError("Only the presenter of this session can do that")

    def require_participant(self, participant_id: UUID | None) -> UUID:
        if self.role != ROLE_PARTICIPANT or self.member_id is None:
            raise ForbiddenError("Join a session before answering")
        own_id = UUID(self.member_id)
        if participant_id is not None and participant_id != own_id:
            raise ForbiddenError("Answers can only be submitted for yourself")
        return own_id


@router.websocket("/ws")
async def session_socket(websocket: WebSocket) -> None:
    """Handle one client connection for its whole lifetime."""
    container: AppContainer = websocket.app.state.container
    coordinator = container.coordinator
    identity = SocketIdentity()
    await websocket.accept()
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = parse_client_message(raw)
                await _dispatch(coordinator, websocket, identity, message)
            except LectureRecallError as exc:
                await websocket.send_json(
                    {"type": "error", "code": exc.code, "message": str(exc)}
                )
            except WebSocketDisconnect:
                raise
            except Exception:
                logger.exception(
                    "Unhandled realtime error",
                    extra={"session_id": str(identity.session_id)},
                )
                await websocket.send_json(
                    {
                        "type": "error",
                        "code": "internal_error",
                        "message": "Internal server error",
                    }
                )
    except WebSocketDisconnect:
        logger.info(
            "WebSocket disconnected",
            extra={"session_id": str(identity.session_id), "role": identity.role},
        )
    finally:
        if identity.session_id is not None and identity.member_id is not None:
            await coordinator.disconnect(identity.session_id, identity.member_id)


async def _dispatch(
    coordinator: SessionCoordinator,
    websocket: WebSocket,
    identity: SocketIdentity,
    message: ClientMessage,
) -> None:
    if isinstance(message, CreateSessionMessage):
        identity.require_unbound()
        session = await coordinator.create_session(
            message.presenter_name,
            message.title,
            time_limit=message.time_limit,
            connection=websocket,
        )
        identity.bind(session.id, PRESENTER_MEMBER_ID, ROLE_PRESENTER)
    elif isinstance(message, JoinSessionMessage):
        identity.require_unbound()
        result = await coordinator.join_session(
            message.join_code, message.participant_name, connection=websocket
        )
        identity.bind(result.session.id, str(result.participant.id), ROLE_PARTICIPANT)
    elif isinstance(message, SubmitAnswerMessage):
        participant_id = identity.require_participant(message.participant_id)
        await coordinator.submit_answer(message.quiz_id, participant_id, message.answer)
    elif isinstance(message, PresenterMessage):
        identity.require_presenter(message.session_id)
        await _dispatch_presenter(coordinator, message)


async def _dispatch_presenter(
    coordinator: SessionCoordinator, message: PresenterMessage
) -> None:
    if isinstance(message, StartRecordingMessage):
        await coordinator.start_recording(message.session_id)
    elif isinstance(message, StopRecordingMessage):
        await coordinator.stop_recording(message.session_id)
    elif isinstance(message, TranscriptChunkMessage):
        await coordinator.ingest_transcript_fragment(message.session_id, message.text)
    elif isinstance(message, EndQuizMessage):
        await coordinator.end_quiz_manually(message.session_id, message.quiz_id)
    elif isinstance(message, EndSessionMessage):
        await coordinator.end_session(message.session_id)
