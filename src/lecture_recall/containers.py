"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from lecture_recall.adapters.gemini_enrichment_client import (
    HttpxGeminiEnrichmentClient,
)
from lecture_recall.adapters.openai_enrichment_client import OpenAIEnrichmentClient
from lecture_recall.adapters.supabase_answer_repository import (
    SupabaseAnswerRepository,
)
from lecture_recall.adapters.supabase_participant_repository import (
    SupabaseParticipantRepository,
)
from lecture_recall.adapters.supabase_quiz_repository import SupabaseQuizRepository
from lecture_recall.adapters.supabase_session_repository import (
    SupabaseSessionRepository,
)
from lecture_recall.adapters.supabase_transcript_repository import (
    SupabaseTranscriptRepository,
)
from lecture_recall.config import Settings
from lecture_recall.services.admin import AdminService
from lecture_recall.services.analytics import AnalyticsService
from lecture_recall.services.channels import SessionChannels
from lecture_recall.services.coordinator import SessionCoordinator
from lecture_recall.services.enrichment import ContentEnricher
from lecture_recall.services.store import SessionStore
from lecture_recall.services.timers import AsyncioScheduler, QuizTimerRegistry

PROVIDER_OPENAI = "openai"
PROVIDER_GEMINI = "gemini"


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    store: SessionStore
    enricher: ContentEnricher
    coordinator: SessionCoordinator
    analytics_service: AnalyticsService
    admin_service: AdminService
    close_resources: Callable[[], Awaitable[None]]


def build_enrichment_client(
    settings: Settings,
) -> OpenAIEnrichmentClient | HttpxGeminiEnrichmentClient:
    """Create the enrichment client for the configured provider."""
    provider = settings.enrichment_provider.strip().lower()
    if provider == PROVIDER_OPENAI:
        if not settings.openai_api_key:
            raise ValueError("OPENAI_API_KEY is required for the openai provider")
        return OpenAIEnrichmentClient.create(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            reasoning_effort=settings.openai_reasoning_effort,
            store=settings.openai_store,
        )
    if provider == PROVIDER_GEMINI:
        if not settings.gemini_api_key:
            raise ValueError("GEMINI_API_KEY is required for the gemini provider")
        return HttpxGeminiEnrichmentClient.create(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            base_url=settings.gemini_base_url,
        )
    raise ValueError(f"Unknown enrichment provider: {settings.enrichment_provider}")


def build_coordinator(
    settings: Settings,
    store: SessionStore,
    enricher: ContentEnricher,
    analytics_service: AnalyticsService,
) -> SessionCoordinator:
    """Create a coordinator with its in-memory registry and channels."""
    return SessionCoordinator(
        store=store,
        timers=QuizTimerRegistry(),
        channels=SessionChannels(),
        enricher=enricher,
        analytics=analytics_service,
        scheduler=AsyncioScheduler(),
        default_time_limit=settings.default_time_limit,
        min_time_limit=settings.min_time_limit,
        max_time_limit=settings.max_time_limit,
        join_code_length=settings.join_code_length,
        end_session_on_presenter_disconnect=(
            settings.end_session_on_presenter_disconnect
        ),
        include_reviews_on_end=settings.include_reviews_on_end,
    )


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    store = SessionStore(
        sessions=SupabaseSessionRepository(supabase_client),
        participants=SupabaseParticipantRepository(supabase_client),
        transcripts=SupabaseTranscriptRepository(supabase_client),
        quizzes=SupabaseQuizRepository(supabase_client),
        answers=SupabaseAnswerRepository(supabase_client),
    )
    enrichment_client = build_enrichment_client(resolved_settings)
    enricher = ContentEnricher(
        client=enrichment_client,
        timeout_seconds=resolved_settings.enrichment_timeout_seconds,
    )
    analytics_service = AnalyticsService(store=store, enricher=enricher)
    coordinator = build_coordinator(
        resolved_settings, store, enricher, analytics_service
    )

    async def close_resources() -> None:
        await enrichment_client.close()

    return AppContainer(
        settings=resolved_settings,
        store=store,
        enricher=enricher,
        coordinator=coordinator,
        analytics_service=analytics_service,
        admin_service=AdminService(store),
        close_resources=close_resources,
    )
