import asyncio
from typing import Any, Sequence

from pm_agent.domain.ai.errors import BackendCallError
from pm_agent.domain.ai.providers.base import ChatMessage
from pm_agent.domain.ai.providers.common import post_json


class OpenAIProvider:
    """Chat-completions backend for OpenAI and OpenAI-compatible hosts (Groq)."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str,
        timeout_sec: float = 30,
        name: str = "openai",
    ) -> None:
        if not api_key:
            raise ValueError(f"{name}_api_key_missing")
        if not base_url:
            raise ValueError(f"{name}_base_url_missing")

        self.name = name
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout_sec = timeout_sec

    async def complete(self, messages: Sequence[ChatMessage]) -> str:
        payload = {
            "model": self.model,
            "messages": [{"role": msg.role, "content": msg.content} for msg in messages],
            "temperature": 0.3,
        }
        decoded = await asyncio.to_thread(
            post_json,
            f"{self.base_url}/chat/completions",
            payload,
            label=self.name,
            timeout_sec=self.timeout_sec,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        return self._extract_text(decoded, label=self.name)

    @staticmethod
    def _extract_text(response_json: dict[str, Any], *, label: str = "openai") -> str:
        choices = response_json.get("choices")
        if not isinstance(choices, list) or not choices:
            raise BackendCallError(f"{label}_choices_missing")

        first = choices[0]
        message = first.get("message", {}) if isinstance(first, dict) else {}
        content = message.get("content")

        if isinstance(content, str) and content.strip():
            return content

        if isinstance(content, list):
            texts: list[str] = []
            for part in content:
                if isinstance(part, dict):
                    text = part.get("text")
                    if isinstance(text, str) and text.strip():
                        texts.append(text)
            if texts:
                return "".join(texts)

        raise BackendCallError(f"{label}_content_missing")
