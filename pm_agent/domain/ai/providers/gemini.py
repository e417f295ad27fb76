import asyncio
from typing import Any, Sequence
from urllib import parse

from pm_agent.domain.ai.errors import BackendCallError
from pm_agent.domain.ai.providers.base import ChatMessage
from pm_agent.domain.ai.providers.common import post_json


class GeminiProvider:
    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        timeout_sec: float = 30,
    ) -> None:
        if not api_key:
            raise ValueError("gemini_api_key_missing")
        self.name = "gemini"
        self.api_key = api_key
        self.model = model
        self.timeout_sec = timeout_sec

    async def complete(self, messages: Sequence[ChatMessage]) -> str:
        endpoint = (
            "https://generativelanguage.googleapis.com/v1beta/models/"
            f"{parse.quote(self.model)}:generateContent?key={parse.quote(self.api_key)}"
        )
        decoded = await asyncio.to_thread(
            post_json,
            endpoint,
            self._build_payload(messages),
            label=self.name,
            timeout_sec=self.timeout_sec,
        )
        return self._extract_text(decoded)

    @staticmethod
    def _build_payload(messages: Sequence[ChatMessage]) -> dict[str, Any]:
        # Gemini has no system role in contents; system text goes to systemInstruction.
        system_texts = [msg.content for msg in messages if msg.role == "system"]
        contents = [
            {
                "role": "model" if msg.role == "assistant" else "user",
                "parts": [{"text": msg.content}],
            }
            for msg in messages
            if msg.role != "system"
        ]
        payload: dict[str, Any] = {
            "contents": contents,
            "generationConfig": {"temperature": 0.3},
        }
        if system_texts:
            payload["systemInstruction"] = {"parts": [{"text": "\n\n".join(system_texts)}]}
        return payload

    @staticmethod
    def _extract_text(response_json: dict[str, Any]) -> str:
        candidates = response_json.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            raise BackendCallError("gemini_candidates_missing")

        first = candidates[0]
        content = first.get("content", {}) if isinstance(first, dict) else {}
        parts = content.get("parts", [])
        if not isinstance(parts, list):
            raise BackendCallError("gemini_parts_missing")

        texts = [
            part["text"]
            for part in parts
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        ]
        text = "".join(texts)
        if text.strip():
            return text

        raise BackendCallError("gemini_text_missing")
