"""Pydantic models for inbound WebSocket messages."""

from typing import Annotated, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from lecture_recall.domain.errors import InvalidRequestError


class ClientMessageBase(BaseModel):
    """Client messages use camelCase keys and may carry extra fields."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


class CreateSessionMessage(ClientMessageBase):
    type: Literal["create-session"]
    presenter_name: str
    title: str
    time_limit: int | None = None


class StartRecordingMessage(ClientMessageBase):
    type: Literal["start-recording"]
    session_id: UUID


class StopRecordingMessage(ClientMessageBase):
    type: Literal["stop-recording"]
    session_id: UUID


class TranscriptChunkMessage(ClientMessageBase):
    type: Literal["transcript-chunk"]
    session_id: UUID
    text: str


class EndQuizMessage(ClientMessageBase):
    type: Literal["end-quiz"]
    session_id: UUID
    quiz_id: UUID


class EndSessionMessage(ClientMessageBase):
    type: Literal["end-session"]
    session_id: UUID


class JoinSessionMessage(ClientMessageBase):
    type: Literal["join-session"]
    join_code: str
    participant_name: str


class SubmitAnswerMessage(ClientMessageBase):
    type: Literal["submit-answer"]
    quiz_id: UUID
    answer: str
    participant_id: UUID | None = None


PresenterMessage = (
    StartRecordingMessage
    | StopRecordingMessage
    | TranscriptChunkMessage
    | EndQuizMessage
    | EndSessionMessage
)

ClientMessage = Annotated[
    CreateSessionMessage
    | StartRecordingMessage
    | StopRecordingMessage
    | TranscriptChunkMessage
    | EndQuizMessage
    | EndSessionMessage
    | JoinSessionMessage
    | SubmitAnswerMessage,
    Field(discriminator="type"),
]

_CLIENT_MESSAGE_ADAPTER: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)


def parse_client_message(raw: str) -> ClientMessage:
    """Parse a raw text frame into a typed message."""
    try:
        return _CLIENT_MESSAGE_ADAPTER.validate_json(raw)
    except ValidationError as exc:
        raise InvalidRequestError(_describe(exc)) from exc


def _describe(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid message"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "invalid value")
    return f"Invalid message: {location}: {message}" if location else message
