from typing import List, Optional

import httpx

from leadflow.logging_config import get_logger
from leadflow.services.llm.base import LLMProvider, LLMResponse

logger = get_logger("llm.openai")

EMBEDDING_INPUT_LIMIT = 8000


class OpenAIProvider(LLMProvider):
    """OpenAI HTTP API provider."""

    def __init__(
        self,
        api_key: str,
        default_model: str = "gpt-4o-mini",
        embedding_model: str = "text-embedding-3-small",
        timeout_seconds: float = 30.0,
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.embedding_model = embedding_model
        self.timeout_seconds = timeout_seconds
        self.base_url = "https://api.openai.com/v1/chat/completions"
        self.embeddings_url = "https://api.openai.com/v1/embeddings"

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: int = 300,
    ) -> LLMResponse:
        """Generate response from OpenAI."""
        model = model or self.default_model

        with httpx.Client(timeout=self.timeout_seconds) as client:
            payload = {
                "model": model,
                "messages": messages,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
            logger.debug(f"OpenAI request: model={model}, messages_count={len(messages)}")

            response = client.post(self.base_url, headers=self._headers(), json=payload)

            if response.status_code != 200:
                logger.error(f"OpenAI error: {response.text}")
                raise Exception(f"OpenAI API error: {response.status_code} - {response.text}")

            data = response.json()

            content = ""
            if data.get("choices") and len(data["choices"]) > 0:
                message = data["choices"][0].get("message", {})
                content = message.get("content") or ""
            logger.debug(f"OpenAI content: {content[:100] if content else 'EMPTY'}")

            return LLMResponse(
                content=content,
                model=data.get("model", model),
                usage=data.get("usage"),
            )

    def embed(self, text: str, model: Optional[str] = None) -> List[float]:
        """Embed text with the OpenAI embeddings endpoint."""
        model = model or self.embedding_model
        with httpx.Client(timeout=self.timeout_seconds) as client:
            response = client.post(
                self.embeddings_url,
                headers=self._headers(),
                json={"model": model, "input": text[:EMBEDDING_INPUT_LIMIT]},
            )

        if response.status_code != 200:
            logger.error(f"OpenAI embeddings error: {response.text}")
            raise Exception(f"OpenAI embeddings error: {response.status_code} - {response.text}")

        data = response.json()
        items = data.get("data") or []
        vector = items[0].get("embedding") if items else None
        if not isinstance(vector, list):
            raise Exception("OpenAI embeddings response without vector")
        return vector
