from dataclasses import dataclass, field
from typing import List, Optional

import httpx

from leadflow.logging_config import get_logger
from leadflow.services.result import Result

logger = get_logger("faq_backend")


@dataclass
class FaqReply:
    manager_name: str
    text: str


@dataclass
class FaqAnswer:
    entry_id: int
    question: str
    replies: List[FaqReply] = field(default_factory=list)


@dataclass
class CreatedPending:
    entry_id: Optional[int]
    text: str


def _entry_id(value) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("FAQ backend returned a non-numeric id", extra={"context": {"id": str(value)[:50]}})
        return None


class FaqBackendClient:
    """Client for the FAQ backend that owns questions and manager answers."""

    def __init__(self, base_url: str, timeout_seconds: float = 10.0):
        self.base_url = (base_url or "").rstrip("/")
        self.timeout_seconds = timeout_seconds

    def get_entry(self, entry_id: int) -> Result[FaqAnswer]:
        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.get(f"{self.base_url}/api/faq/perguntas/{entry_id}")
        except httpx.HTTPError as e:
            logger.error(f"FAQ backend unreachable: {e}", extra={"context": {"entry_id": entry_id}})
            return Result.failure(str(e), "faq_backend_error")

        if response.status_code == 404:
            return Result.failure(f"FAQ entry {entry_id} not found", "not_found")
        if response.status_code != 200:
            logger.error(f"FAQ backend error: {response.status_code} - {response.text[:200]}")
            return Result.failure(f"status {response.status_code}", "faq_backend_error")

        try:
            data = response.json() or {}
        except ValueError:
            return Result.failure("FAQ backend returned invalid JSON", "invalid_payload")

        question = (data.get("pergunta") or {}).get("texto") or ""
        replies = [
            FaqReply(
                manager_name=(item.get("gestora_nome") or "Gestora").strip(),
                text=(item.get("texto") or "").strip(),
            )
            for item in data.get("respostas") or []
            if (item.get("texto") or "").strip()
        ]
        if not question.strip() or not replies:
            return Result.failure(f"FAQ entry {entry_id} has no answers", "no_answers")
        return Result.success(FaqAnswer(entry_id=entry_id, question=question.strip(), replies=replies))

    def increment_usage(self, entry_id: int) -> bool:
        try:
            with httpx.Client(timeout=min(self.timeout_seconds, 5.0)) as client:
                response = client.post(f"{self.base_url}/api/faq/perguntas/{entry_id}/incrementar-frequencia", json={})
            return 200 <= response.status_code < 300
        except httpx.HTTPError as e:
            logger.warning(f"FAQ usage counter not updated: {e}", extra={"context": {"entry_id": entry_id}})
            return False

    def create_pending(self, contact_number: str, lead_id: Optional[int], text: str) -> Result[CreatedPending]:
        payload = {
            "contacto_whatsapp": contact_number,
            "lead_id": lead_id,
            "texto": text.strip(),
            "origem": "evo",
        }
        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.post(f"{self.base_url}/api/faq/duvidas-pendentes", json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Pending question not created: {e}", extra={"context": {"lead_id": lead_id}})
            return Result.failure(str(e), "faq_backend_error")

        if not 200 <= response.status_code < 300:
            logger.error(f"Pending question not created: {response.status_code} - {response.text[:200]}")
            return Result.failure(f"status {response.status_code}", "faq_backend_error")

        try:
            data = response.json() or {}
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        return Result.success(
            CreatedPending(
                entry_id=_entry_id(data.get("id")),
                text=str(data.get("texto") or text).strip(),
            )
        )
