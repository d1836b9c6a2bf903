"""Admin API endpoints with simple token auth."""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

if TYPE_CHECKING:
    from lecture_recall.containers import AppContainer

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_admin_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str = Depends(_get_admin_token),
) -> None:
    """Ensure requests include a valid admin token."""
    if not x_admin_token or not secrets.compare_digest(
        x_admin_token.encode(), admin_token.encode()
    ):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.get("/sessions", dependencies=[Depends(require_admin)])
async def list_sessions(request: Request, limit: int = 20) -> dict[str, object]:
    """Return recent lecture sessions."""
    container: AppContainer = request.app.state.container
    return {"sessions": container.admin_service.list_sessions(limit)}


@router.get("/sessions/{session_id}/export", dependencies=[Depends(require_admin)])
async def export_session(session_id: UUID, request: Request) -> dict[str, object]:
    """Return a full dump of one session, answer keys included."""
    container: AppContainer = request.app.state.container
    return container.admin_service.export_session(session_id)
