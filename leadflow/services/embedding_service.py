import json
from typing import Any, List, Optional

from leadflow.logging_config import get_logger
from leadflow.services.llm.base import LLMProvider

logger = get_logger("embedding_service")

REWRITE_SYSTEM_PROMPT = (
    "Reescreve a pergunta do utilizador sobre crédito habitação como uma única pergunta clara, "
    "em português de Portugal. Remove saudações, agradecimentos, nomes e ruído, mas mantém "
    "exatamente o mesmo significado. Responde apenas com a pergunta reescrita."
)


def canonicalize(text: Optional[str]) -> str:
    """Collapse whitespace runs and trim."""
    return " ".join((text or "").split())


def parse_embedding(raw: Any) -> Optional[List[float]]:
    """Decode a stored embedding. Anything unusable is treated as no embedding."""
    if raw is None:
        return None
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", "ignore")
    if isinstance(raw, str):
        if len(raw.strip()) < 3:
            return None
        try:
            raw = json.loads(raw)
        except ValueError:
            return None
    if not isinstance(raw, list) or not raw:
        return None
    try:
        return [float(x) for x in raw]
    except (TypeError, ValueError):
        return None


def serialize_embedding(vector: List[float]) -> str:
    return json.dumps([float(x) for x in vector])


class EmbeddingService:
    """Canonical question text and its embedding, on top of an LLM provider.

    Both operations are best effort: a missing provider or a provider failure
    yields None / the verbatim text, never an exception.
    """

    def __init__(self, provider: Optional[LLMProvider], *, rewrite_enabled: bool = True):
        self.provider = provider
        self.rewrite_enabled = rewrite_enabled

    @property
    def available(self) -> bool:
        return self.provider is not None

    def embed(self, text: Optional[str]) -> Optional[List[float]]:
        text = canonicalize(text)
        if not self.provider or not text:
            return None
        try:
            vector = self.provider.embed(text)
        except Exception as e:
            logger.warning(f"Embedding failed: {e}", extra={"context": {"text": text[:80]}})
            return None
        return vector or None

    def normalize_question(self, text: Optional[str]) -> str:
        canonical = canonicalize(text)
        if not canonical or not self.provider or not self.rewrite_enabled:
            return canonical
        try:
            response = self.provider.generate(
                [
                    {"role": "system", "content": REWRITE_SYSTEM_PROMPT},
                    {"role": "user", "content": canonical},
                ],
                temperature=0.0,
                max_tokens=200,
            )
        except Exception as e:
            logger.warning(f"Question rewrite failed, using original text: {e}")
            return canonical
        rewritten = canonicalize(response.content).strip('"“”')
        return rewritten or canonical
