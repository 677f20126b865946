from fastapi import APIRouter, BackgroundTasks, Depends, Request
from pydantic import ValidationError

from leadflow.dependencies import get_engine
from leadflow.logging_config import get_logger
from leadflow.schemas.webhook import EvolutionWebhook, extract_inbound_messages
from leadflow.services.conversation_engine import ConversationEngine

logger = get_logger("webhook")

router = APIRouter(tags=["webhook"])


@router.post("/webhook/evolution")
async def evolution_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    engine: ConversationEngine = Depends(get_engine),
):
    """Acknowledge at once; messages are processed after the response is sent."""
    try:
        raw = await request.json()
        payload = EvolutionWebhook.model_validate(raw)
    except (ValueError, ValidationError) as e:
        logger.warning(f"Invalid webhook payload ignored: {e}")
        return {"ok": True}

    for event in extract_inbound_messages(payload):
        if event.from_operator:
            background_tasks.add_task(engine.handle_operator_message, event)
        else:
            background_tasks.add_task(engine.handle, event)
    return {"ok": True}
