"""Read-only HTTP endpoints for sessions and their reports."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, Request

from lecture_recall.domain.errors import EnrichmentUnavailableError, NotFoundError

if TYPE_CHECKING:
    from lecture_recall.containers import AppContainer
    from lecture_recall.domain.sessions import SessionRecord

router = APIRouter(prefix="/sessions", tags=["sessions"])
presenters_router = APIRouter(prefix="/presenters", tags=["presenters"])


@router.get("/{session_id}")
async def session_detail(session_id: UUID, request: Request) -> dict[str, object]:
    """Return session metadata; the join code is hidden once ended."""
    container: AppContainer = request.app.state.container
    return _serialize_session(container.coordinator.get_session(session_id))


@router.get("/{session_id}/details")
async def session_details(session_id: UUID, request: Request) -> dict[str, object]:
    """Return session metadata with question, student and answer counts."""
    container: AppContainer = request.app.state.container
    details = await container.analytics_service.session_details(session_id)
    return details.to_payload()


@router.get("/{session_id}/quizzes")
async def session_quizzes(session_id: UUID, request: Request) -> dict[str, object]:
    """Return the session's quizzes without their answer keys."""
    container: AppContainer = request.app.state.container
    return {"quizzes": container.coordinator.list_quiz_views(session_id)}


@router.get("/{session_id}/report")
async def session_report(
    session_id: UUID, request: Request, include_summary: bool = False
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    report = await container.analytics_service.session_report(
        session_id, include_summary=include_summary
    )
    return report.to_payload()


@router.get("/{session_id}/participants/{participant_id}/report")
async def participant_report(
    session_id: UUID,
    participant_id: UUID,
    request: Request,
    include_review: bool = False,
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    report = await container.analytics_service.participant_report(
        session_id, participant_id, include_review=include_review
    )
    return report.to_payload()


@router.get("/{session_id}/summary")
async def lecture_summary(session_id: UUID, request: Request) -> dict[str, object]:
    """Summarize the lecture transcript on demand."""
    container: AppContainer = request.app.state.container
    container.coordinator.get_session(session_id)
    analytics = container.analytics_service
    if not analytics.has_transcript(session_id):
        raise NotFoundError("No transcript recorded for this session")
    summary = await analytics.lecture_summary(session_id)
    if summary is None:
        raise EnrichmentUnavailableError("Lecture summary is unavailable")
    return {"sessionId": str(session_id), "summary": summary}


@presenters_router.get("/{presenter_name}/statistics")
async def presenter_statistics(
    presenter_name: str, request: Request, time_range: str = "all"
) -> dict[str, object]:
    """Return totals across a presenter's sessions (all, week, month or year)."""
    container: AppContainer = request.app.state.container
    statistics = container.analytics_service.presenter_statistics(
        presenter_name, time_range=time_range
    )
    return statistics.to_payload()


def _serialize_session(session: SessionRecord) -> dict[str, object]:
    return {
        "sessionId": str(session.id),
        "title": session.title,
        "presenterName": session.presenter_name,
        "status": session.status,
        "timeLimit": session.time_limit,
        "joinCode": None if session.is_ended else session.join_code,
        "createdAt": session.created_at.isoformat(),
        "endedAt": session.ended_at.isoformat() if session.ended_at else None,
    }
