from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class LLMResponse:
    content: str
    model: str
    usage: Optional[dict] = None


class LLMProvider(ABC):
    """Text-in / text-or-vector-out model capability."""

    @abstractmethod
    def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: int = 300,
    ) -> LLMResponse:
        """Generate a completion for a chat transcript."""

    @abstractmethod
    def embed(self, text: str, model: Optional[str] = None) -> List[float]:
        """Return the embedding vector of a text."""
