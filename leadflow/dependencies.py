"""Process-wide service instances built from settings."""

import asyncio
from functools import lru_cache
from typing import Callable, List, Optional

from leadflow.config import settings
from leadflow.database import SessionLocal
from leadflow.logging_config import get_logger
from leadflow.services.conversation_engine import ConversationEngine
from leadflow.services.delayed_queue import DelayedActionProcessor
from leadflow.services.embedding_service import EmbeddingService
from leadflow.services.faq_backend import FaqBackendClient
from leadflow.services.faq_matcher import FaqMatcher
from leadflow.services.faq_repository import FaqRepository
from leadflow.services.llm import OpenAIProvider
from leadflow.services.whatsapp_service import EvolutionClient, build_signed_media_url

logger = get_logger("dependencies")


def run_in_background(job: Callable[[], None]) -> None:
    """Run a blocking job off the event loop; inline when no loop is running."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        job()
        return
    loop.run_in_executor(None, job)


def save_entry_embedding(entry_id: int, vector: List[float]) -> None:
    db = SessionLocal()
    try:
        if FaqRepository().save_embedding(db, entry_id, vector):
            db.commit()
            logger.info("FAQ embedding stored", extra={"context": {"entry_id": entry_id}})
        else:
            logger.warning("FAQ entry not found for embedding", extra={"context": {"entry_id": entry_id}})
    finally:
        db.close()


def resolve_audio_url(payload: str) -> Optional[str]:
    if payload.startswith(("http://", "https://")):
        return payload
    return build_signed_media_url(payload)


@lru_cache
def get_sender() -> EvolutionClient:
    return EvolutionClient(
        settings.evolution_api_url,
        settings.evolution_api_key,
        settings.evolution_instance,
        timeout_seconds=settings.gateway_timeout_seconds,
    )


@lru_cache
def get_embedding_service() -> EmbeddingService:
    provider = None
    if settings.openai_api_key:
        provider = OpenAIProvider(
            api_key=settings.openai_api_key,
            default_model=settings.openai_model,
            embedding_model=settings.openai_embedding_model,
        )
    else:
        logger.warning("OPENAI_API_KEY not configured, FAQ matching disabled")
    return EmbeddingService(provider, rewrite_enabled=settings.question_rewrite_enabled)


@lru_cache
def get_matcher() -> FaqMatcher:
    return FaqMatcher(
        embeddings=get_embedding_service(),
        backend=FaqBackendClient(settings.faq_backend_url, timeout_seconds=settings.faq_backend_timeout_seconds),
        match_threshold=settings.faq_match_threshold,
        duplicate_threshold=settings.faq_duplicate_threshold,
        defer=run_in_background,
        embedding_writer=save_entry_embedding,
    )


@lru_cache
def get_engine() -> ConversationEngine:
    return ConversationEngine(
        settings=settings,
        session_factory=SessionLocal,
        sender=get_sender(),
        matcher=get_matcher(),
    )


@lru_cache
def get_queue_processor() -> DelayedActionProcessor:
    return DelayedActionProcessor(
        get_sender(),
        audio_url_resolver=resolve_audio_url,
        batch_size=settings.delayed_queue_batch_size,
    )
