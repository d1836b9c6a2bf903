"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from lecture_recall.api.admin import router as admin_router
from lecture_recall.api.queries import presenters_router
from lecture_recall.api.queries import router as queries_router
from lecture_recall.api.realtime import router as realtime_router
from lecture_recall.app_logging import configure_logging
from lecture_recall.config import parse_allowed_origins
from lecture_recall.containers import AppContainer
from lecture_recall.domain.errors import (
    ConflictError,
    EnrichmentUnavailableError,
    ForbiddenError,
    InvalidRequestError,
    LectureRecallError,
    NotFoundError,
    StorageError,
)

_STATUS_BY_ERROR: dict[type[LectureRecallError], int] = {
    InvalidRequestError: 400,
    ForbiddenError: 403,
    NotFoundError: 404,
    ConflictError: 409,
    StorageError: 503,
    EnrichmentUnavailableError: 503,
}


def status_for_error(exc: LectureRecallError) -> int:
    """Return the HTTP status for a domain error, walking its base classes."""
    for error_type in type(exc).__mro__:
        if error_type in _STATUS_BY_ERROR:
            return _STATUS_BY_ERROR[error_type]
    return 500


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        try:
            await app.state.container.coordinator.shutdown()
        except Exception:
            logger.exception("Failed to stop background work cleanly")
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    origins = parse_allowed_origins(container.settings.cors_allowed_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.exception_handler(LectureRecallError)
    async def handle_domain_error(
        request: Request, exc: LectureRecallError
    ) -> JSONResponse:
        status_code = status_for_error(exc)
        if status_code >= 500:
            logger.warning(
                "Request failed",
                extra={"path": request.url.path, "code": exc.code},
            )
        return JSONResponse(
            status_code=status_code,
            content={"detail": str(exc), "code": exc.code},
        )

    app.include_router(realtime_router)
    app.include_router(queries_router)
    app.include_router(presenters_router)
    app.include_router(admin_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    return app
