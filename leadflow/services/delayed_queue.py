"""Durable, poll-driven queue of per-contact delayed actions.

Rows are written in one batch when a sequence starts and deleted once
processed. Delivery is at-least-once and best effort: a row is deleted even
when its dispatch fails, so a broken row can never block the queue.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List, Optional

from sqlalchemy.orm import Session

from leadflow.logging_config import get_logger
from leadflow.models import DelayedAction
from leadflow.services.lead_service import find_lead, update_lead_state
from leadflow.services.state_machine import ConversationStage, SetHandoffFlag, SetStage, current_stage

logger = get_logger("delayed_queue")

KIND_TEXT = "text"
KIND_AUDIO = "audio"
KIND_RELEASE_HANDOFF = "release_handoff"

SEQUENCE_WELCOME = "welcome"
SEQUENCE_HANDOFF_RELEASE = "handoff_release"


@dataclass(frozen=True)
class DelayedStep:
    offset_seconds: float
    kind: str = KIND_TEXT
    payload: Optional[str] = None


def _ensure_timezone(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def schedule(
    db: Session,
    *,
    contact_key: str,
    instance: Optional[str],
    sequence: str,
    steps: Iterable[DelayedStep],
    now: Optional[datetime] = None,
) -> List[DelayedAction]:
    """Replace the contact's rows of this sequence with one row per step (due = now + offset)."""
    now = _ensure_timezone(now or datetime.now(timezone.utc))
    cancel(db, contact_key=contact_key, sequence=sequence)

    rows = []
    for number, step in enumerate(steps, start=1):
        row = DelayedAction(
            contact_key=contact_key,
            instance=instance,
            sequence=sequence,
            step=number,
            kind=step.kind,
            payload=step.payload,
            due_at=now + timedelta(seconds=step.offset_seconds),
            created_at=now,
        )
        db.add(row)
        rows.append(row)
    db.flush()
    logger.info(
        "Delayed actions scheduled",
        extra={"context": {"contact_key": contact_key, "sequence": sequence, "steps": len(rows)}},
    )
    return rows


def cancel(db: Session, *, contact_key: str, sequence: Optional[str] = None) -> int:
    query = db.query(DelayedAction).filter(DelayedAction.contact_key == contact_key)
    if sequence:
        query = query.filter(DelayedAction.sequence == sequence)
    deleted = query.delete(synchronize_session=False)
    if deleted:
        logger.info(
            "Delayed actions cancelled",
            extra={"context": {"contact_key": contact_key, "sequence": sequence, "deleted": deleted}},
        )
    return deleted


def fetch_due(db: Session, *, now: datetime, limit: int) -> List[DelayedAction]:
    return (
        db.query(DelayedAction)
        .filter(DelayedAction.due_at <= _ensure_timezone(now))
        .order_by(DelayedAction.due_at.asc(), DelayedAction.id.asc())
        .limit(limit)
        .all()
    )


class DelayedActionProcessor:
    """Drains due rows: dispatch to the gateway, then delete."""

    def __init__(
        self,
        sender,
        *,
        audio_url_resolver: Callable[[str], Optional[str]],
        batch_size: int = 20,
        presence_ms: int = 2000,
    ):
        self.sender = sender
        self.audio_url_resolver = audio_url_resolver
        self.batch_size = batch_size
        self.presence_ms = presence_ms

    def drain_due(self, db: Session, *, now: Optional[datetime] = None, limit: Optional[int] = None) -> int:
        now = _ensure_timezone(now or datetime.now(timezone.utc))
        rows = fetch_due(db, now=now, limit=limit or self.batch_size)
        processed = 0
        for row in rows:
            context = {
                "row_id": row.id,
                "contact_key": row.contact_key,
                "sequence": row.sequence,
                "step": row.step,
                "kind": row.kind,
            }
            try:
                ok = self._dispatch(db, row)
                if not ok:
                    logger.warning("Delayed action dispatch failed", extra={"context": context})
            except Exception as e:
                logger.error(f"Delayed action dispatch error: {e}", extra={"context": context})
                db.rollback()
            db.delete(row)
            db.commit()
            processed += 1

        if processed:
            logger.info("Delayed queue drained", extra={"context": {"processed": processed}})
        return processed

    def _dispatch(self, db: Session, row: DelayedAction) -> bool:
        lead = find_lead(db, row.contact_key)
        if not lead:
            logger.info("Delayed action for unknown contact skipped", extra={"context": {"contact_key": row.contact_key}})
            return True

        if row.kind == KIND_RELEASE_HANDOFF:
            if current_stage(lead) != ConversationStage.WITH_HUMAN:
                return True
            update_lead_state(db, lead, SetStage(ConversationStage.AWAITING_CHOICE), SetHandoffFlag(False))
            logger.info("Human handoff auto-released", extra={"context": {"lead_id": lead.id}})
            return True

        if row.kind == KIND_AUDIO:
            audio_url = self.audio_url_resolver(row.payload or "")
            if not audio_url:
                logger.warning("Audio step without a resolvable URL", extra={"context": {"payload": row.payload}})
                return False
            self.sender.send_presence(row.instance, row.contact_key, "recording", self.presence_ms)
            return self.sender.send_audio(row.instance, row.contact_key, audio_url)

        self.sender.send_presence(row.instance, row.contact_key, "composing", self.presence_ms)
        return self.sender.send_text(row.instance, row.contact_key, row.payload or "")
