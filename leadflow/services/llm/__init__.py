from leadflow.services.llm.base import LLMProvider, LLMResponse
from leadflow.services.llm.openai_provider import OpenAIProvider

__all__ = ["LLMProvider", "LLMResponse", "OpenAIProvider"]
