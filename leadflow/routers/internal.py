"""Endpoints for the FAQ backend, the upload backend and operators."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from leadflow.config import APP_NAME, settings
from leadflow.database import get_db
from leadflow.dependencies import get_embedding_service, get_queue_processor, get_sender
from leadflow.logging_config import get_logger
from leadflow.schemas.internal import (
    DebugEnv,
    DebugResponse,
    DrainResponse,
    EmbeddingRefreshRequest,
    GatewayConnection,
    OkResponse,
    SendTextRequest,
)
from leadflow.services.delayed_queue import DelayedActionProcessor
from leadflow.services.embedding_service import EmbeddingService
from leadflow.services.faq_repository import FaqRepository
from leadflow.services.lead_service import find_lead, update_lead_state
from leadflow.services.state_machine import DocStage, SetDocStage
from leadflow.services.whatsapp_service import EvolutionClient, to_number, verify_signed_media_path

logger = get_logger("internal")

router = APIRouter(tags=["internal"])


def require_internal_secret(x_internal_secret: Optional[str] = Header(default=None, alias="X-Internal-Secret")) -> None:
    expected = settings.internal_secret
    if expected and x_internal_secret != expected:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid internal secret")


@router.post("/api/internal/send-text", response_model=OkResponse, dependencies=[Depends(require_internal_secret)])
def send_text(body: SendTextRequest, sender: EvolutionClient = Depends(get_sender)):
    number = to_number(body.number)
    text = (body.text or "").strip()
    if not number or not text:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="number and text are required")
    if not sender.send_text(body.instance, number, text):
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Message not delivered")
    logger.info("Internal message sent", extra={"context": {"number": number}})
    return OkResponse()


@router.post(
    "/api/internal/faq-entries/{entry_id}/embedding",
    response_model=OkResponse,
    dependencies=[Depends(require_internal_secret)],
)
def refresh_embedding(
    entry_id: int,
    body: EmbeddingRefreshRequest,
    db: Session = Depends(get_db),
    embeddings: EmbeddingService = Depends(get_embedding_service),
):
    text = (body.text or "").strip()
    if not text:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="text is required")
    repository = FaqRepository()
    if repository.get(db, entry_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="FAQ entry not found")
    if not embeddings.available:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Embeddings unavailable")

    vector = embeddings.embed(text)
    if not vector:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Embedding failed")
    repository.save_embedding(db, entry_id, vector)
    db.commit()
    logger.info("FAQ embedding refreshed", extra={"context": {"entry_id": entry_id}})
    return OkResponse()


@router.post(
    "/api/internal/leads/{contact}/docs-received",
    response_model=OkResponse,
    dependencies=[Depends(require_internal_secret)],
)
def mark_docs_received(contact: str, db: Session = Depends(get_db)):
    lead = find_lead(db, contact)
    if lead is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lead not found")
    update_lead_state(db, lead, SetDocStage(DocStage.DOCS_RECEIVED))
    db.commit()
    return OkResponse()


@router.post(
    "/api/internal/delayed-actions/drain",
    response_model=DrainResponse,
    dependencies=[Depends(require_internal_secret)],
)
def drain_delayed_actions(
    db: Session = Depends(get_db),
    processor: DelayedActionProcessor = Depends(get_queue_processor),
):
    return DrainResponse(processed=processor.drain_due(db))


@router.get("/api/debug", response_model=DebugResponse, dependencies=[Depends(require_internal_secret)])
def debug(sender: EvolutionClient = Depends(get_sender)):
    """Which credentials are configured and what the gateway says about the instance. Never echoes keys."""
    evolution = None
    if sender.configured:
        state = sender.connection_state()
        if state.ok:
            evolution = GatewayConnection(ok=True, state=state.value)
        else:
            evolution = GatewayConnection(ok=False, error=state.error)
            logger.warning("Gateway connection check failed", extra={"context": {"error_code": state.error_code}})
    return DebugResponse(
        app=APP_NAME,
        time=datetime.now(timezone.utc),
        env=DebugEnv(
            has_openai_key=bool(settings.openai_api_key),
            has_evolution_url=bool(sender.base_url),
            has_evolution_key=bool(sender.api_key),
            evolution_instance=sender.default_instance,
        ),
        evolution=evolution,
    )


@router.get("/media/{media_path:path}")
async def serve_media(media_path: str, expires: int, sig: str):
    """Serve locally stored media via signed URLs."""
    normalized_path = (media_path or "").strip().lstrip("/")
    if not normalized_path:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing media path")
    if not verify_signed_media_path(normalized_path, expires, sig):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or expired signature")

    base_dir = Path(settings.media_storage_dir).resolve()
    target_path = (base_dir / normalized_path).resolve()
    if base_dir not in target_path.parents:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid media path")
    if not target_path.is_file():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Media not found")

    return FileResponse(target_path)
