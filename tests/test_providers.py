import unittest
from unittest import mock

from pm_agent.domain.ai.errors import BackendCallError
from pm_agent.domain.ai.providers.base import ChatMessage
from pm_agent.domain.ai.providers.gemini import GeminiProvider
from pm_agent.domain.ai.providers.openai import OpenAIProvider


MESSAGES = [
    ChatMessage(role="system", content="be brief"),
    ChatMessage(role="user", content="hi"),
    ChatMessage(role="assistant", content="hello"),
    ChatMessage(role="user", content="status?"),
]


class OpenAIProviderTests(unittest.IsolatedAsyncioTestCase):
    def test_missing_credential_raises_value_error(self) -> None:
        with self.assertRaises(ValueError) as ctx:
            OpenAIProvider(api_key="", model="m", base_url="https://api.groq.com/openai/v1", name="groq")
        self.assertEqual(str(ctx.exception), "groq_api_key_missing")

    async def test_complete_posts_chat_completion(self) -> None:
        provider = OpenAIProvider(api_key="sk", model="gpt-4o-mini", base_url="https://api.openai.com/v1/")
        response = {"choices": [{"message": {"content": "all good"}}]}

        with mock.patch("pm_agent.domain.ai.providers.openai.post_json", return_value=response) as post:
            text = await provider.complete(MESSAGES)

        self.assertEqual(text, "all good")
        endpoint, payload = post.call_args.args
        self.assertEqual(endpoint, "https://api.openai.com/v1/chat/completions")
        self.assertEqual(payload["model"], "gpt-4o-mini")
        self.assertEqual([m["role"] for m in payload["messages"]], ["system", "user", "assistant", "user"])
        self.assertEqual(post.call_args.kwargs["headers"], {"Authorization": "Bearer sk"})

    def test_extract_text_joins_content_parts(self) -> None:
        response = {"choices": [{"message": {"content": [{"text": "a"}, {"type": "x"}, {"text": "b"}]}}]}

        self.assertEqual(OpenAIProvider._extract_text(response), "ab")

    def test_extract_text_rejects_empty_choices(self) -> None:
        with self.assertRaises(BackendCallError):
            OpenAIProvider._extract_text({"choices": []})
        with self.assertRaises(BackendCallError):
            OpenAIProvider._extract_text({"choices": [{"message": {"content": "  "}}]})


class GeminiProviderTests(unittest.IsolatedAsyncioTestCase):
    def test_payload_maps_roles(self) -> None:
        payload = GeminiProvider._build_payload(MESSAGES)

        self.assertEqual(payload["systemInstruction"], {"parts": [{"text": "be brief"}]})
        self.assertEqual([c["role"] for c in payload["contents"]], ["user", "model", "user"])
        self.assertEqual(payload["contents"][-1]["parts"], [{"text": "status?"}])

    async def test_complete_reads_candidate_text(self) -> None:
        provider = GeminiProvider(api_key="g-key", model="gemini-2.0-flash")
        response = {"candidates": [{"content": {"parts": [{"text": "{\"a\":"}, {"text": " 1}"}]}}]}

        with mock.patch("pm_agent.domain.ai.providers.gemini.post_json", return_value=response) as post:
            text = await provider.complete(MESSAGES)

        self.assertEqual(text, '{"a": 1}')
        self.assertIn("models/gemini-2.0-flash:generateContent?key=g-key", post.call_args.args[0])

    def test_extract_text_rejects_missing_candidates(self) -> None:
        with self.assertRaises(BackendCallError):
            GeminiProvider._extract_text({})
        with self.assertRaises(BackendCallError):
            GeminiProvider._extract_text({"candidates": [{"content": {"parts": []}}]})


if __name__ == "__main__":
    unittest.main()
