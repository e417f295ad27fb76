"""AI providers."""

from pm_agent.domain.ai.providers.base import ChatMessage, CompletionProvider
from pm_agent.domain.ai.providers.gemini import GeminiProvider
from pm_agent.domain.ai.providers.openai import OpenAIProvider

__all__ = ["ChatMessage", "CompletionProvider", "GeminiProvider", "OpenAIProvider"]
