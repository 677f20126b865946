from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from leadflow.logging_config import get_logger
from leadflow.models import Lead
from leadflow.services.state_machine import ConversationStage, DocStage, StateCommand, apply_commands
from leadflow.services.whatsapp_service import to_number

logger = get_logger("lead_service")


def normalize_contact_key(address: Optional[str]) -> Optional[str]:
    """Canonical contact key: "351927398547@s.whatsapp.net" -> "351927398547"."""
    return to_number(address) or None


def find_lead(db: Session, address: Optional[str]) -> Optional[Lead]:
    """Most recent lead for the contact; older duplicates are ignored."""
    contact_key = normalize_contact_key(address)
    if not contact_key:
        return None
    return (
        db.query(Lead)
        .filter(Lead.contact_key == contact_key)
        .order_by(Lead.created_at.desc(), Lead.id.desc())
        .first()
    )


def create_lead(
    db: Session,
    *,
    address: str,
    name: Optional[str],
    origin_instance: Optional[str],
    stage: ConversationStage,
) -> Lead:
    now = datetime.now(timezone.utc)
    lead = Lead(
        contact_key=normalize_contact_key(address),
        name=name,
        origin_instance=origin_instance,
        stage=stage.value,
        doc_stage=DocStage.AWAITING_DOCS.value,
        wants_human=False,
        created_at=now,
        updated_at=now,
    )
    db.add(lead)
    db.flush()
    logger.info(
        "Lead created",
        extra={"context": {"lead_id": lead.id, "contact_key": lead.contact_key, "stage": lead.stage}},
    )
    return lead


def update_lead_state(db: Session, lead: Lead, *commands: StateCommand) -> dict:
    """Apply state commands and flush. Returns the changed fields."""
    changes = apply_commands(lead, *commands)
    if changes:
        db.flush()
        logger.info(
            "Lead state updated",
            extra={
                "context": {
                    "lead_id": lead.id,
                    "changes": {field: [old, new] for field, (old, new) in changes.items()},
                }
            },
        )
    return changes
