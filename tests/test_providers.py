"""
Tests for the LLM provider bindings with mocked SDK clients.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import openai
import pytest
from google.genai import errors, types

from app.exceptions import UpstreamProviderError
from app.models.api import ChatRole
from app.models.domain import ChatMessage
from app.services.anthropic_provider import AnthropicProvider
from app.services.gemini_provider import GeminiProvider, _extract_text
from app.services.openai_provider import OpenAICompatibleProvider

HISTORY = [
    ChatMessage(role=ChatRole.USER, content="What is 2+2?"),
    ChatMessage(role=ChatRole.ASSISTANT, content="4"),
]


def openai_client(content: str | None = "Hello", error: Exception | None = None) -> MagicMock:
    client = MagicMock()
    if error is not None:
        client.chat.completions.create = AsyncMock(side_effect=error)
    else:
        choice = SimpleNamespace(message=SimpleNamespace(content=content))
        client.chat.completions.create = AsyncMock(return_value=SimpleNamespace(choices=[choice]))
    client.close = AsyncMock()
    return client


class TestOpenAICompatibleProvider:
    """Tests for the Chat Completions binding."""

    async def test_complete_sends_history_then_prompt(self):
        client = openai_client("8")
        provider = OpenAICompatibleProvider(
            name="OpenAI", api_key="sk", model="gpt-4o-mini", max_tokens=500, client=client
        )

        assert await provider.complete("And 4+4?", HISTORY) == "8"

        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["max_tokens"] == 500
        assert kwargs["messages"] == [
            {"role": "user", "content": "What is 2+2?"},
            {"role": "assistant", "content": "4"},
            {"role": "user", "content": "And 4+4?"},
        ]

    async def test_empty_content(self):
        provider = OpenAICompatibleProvider(
            name="DeepSeek", api_key="sk", model="deepseek-chat", client=openai_client(None)
        )
        assert await provider.complete("Hi", []) == "No response"

    async def test_no_choices(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=SimpleNamespace(choices=[]))
        provider = OpenAICompatibleProvider(name="xAI", api_key="k", model="grok", client=client)
        assert await provider.complete("Hi", []) == "No response"

    async def test_sdk_error_wrapped(self):
        provider = OpenAICompatibleProvider(
            name="Perplexity",
            api_key="pk",
            model="sonar",
            client=openai_client(error=openai.OpenAIError("quota exceeded")),
        )

        with pytest.raises(UpstreamProviderError) as exc_info:
            await provider.complete("Hi", [])

        assert exc_info.value.provider == "Perplexity"
        assert exc_info.value.message == "quota exceeded"

    async def test_missing_key(self):
        client = openai_client()
        provider = OpenAICompatibleProvider(name="DeepSeek", api_key="", model="m", client=client)

        assert not provider.is_configured
        with pytest.raises(UpstreamProviderError, match="DeepSeek API key not configured"):
            await provider.complete("Hi", [])
        client.chat.completions.create.assert_not_called()

    async def test_close(self):
        client = openai_client()
        provider = OpenAICompatibleProvider(name="OpenAI", api_key="sk", model="m", client=client)
        await provider.close()
        client.close.assert_awaited_once()


class TestAnthropicProvider:
    """Tests for the Messages API binding."""

    def _client(self, blocks=None, error: Exception | None = None) -> MagicMock:
        client = MagicMock()
        if error is not None:
            client.messages.create = AsyncMock(side_effect=error)
        else:
            client.messages.create = AsyncMock(return_value=SimpleNamespace(content=blocks))
        client.close = AsyncMock()
        return client

    async def test_joins_text_blocks(self):
        client = self._client(
            [
                SimpleNamespace(type="text", text="Hello "),
                SimpleNamespace(type="tool_use", name="x"),
                SimpleNamespace(type="text", text="world"),
            ]
        )
        provider = AnthropicProvider(api_key="ak", model="claude", client=client)

        assert await provider.complete("Hi", HISTORY) == "Hello world"
        messages = client.messages.create.call_args.kwargs["messages"]
        assert messages[-1] == {"role": "user", "content": "Hi"}
        assert len(messages) == 3

    async def test_empty_reply(self):
        provider = AnthropicProvider(api_key="ak", model="claude", client=self._client([]))
        assert await provider.complete("Hi", []) == "No response"

    async def test_sdk_error_wrapped(self):
        provider = AnthropicProvider(
            api_key="ak",
            model="claude",
            client=self._client(error=anthropic.AnthropicError("overloaded")),
        )

        with pytest.raises(UpstreamProviderError) as exc_info:
            await provider.complete("Hi", [])
        assert exc_info.value.provider == "Anthropic"

    async def test_missing_key(self):
        provider = AnthropicProvider(api_key="", model="claude", client=self._client([]))
        with pytest.raises(UpstreamProviderError, match="Anthropic API key not configured"):
            await provider.complete("Hi", [])


def gemini_response(*texts: str, thought: str | None = None) -> types.GenerateContentResponse:
    parts = [types.Part(text=t) for t in texts]
    if thought is not None:
        parts.insert(0, types.Part(text=thought, thought=True))
    return types.GenerateContentResponse(
        candidates=[types.Candidate(content=types.Content(role="model", parts=parts))]
    )


class TestGeminiProvider:
    """Tests for the generate_content binding."""

    def _client(self, response=None, error: Exception | None = None) -> MagicMock:
        client = MagicMock()
        if error is not None:
            client.aio.models.generate_content = AsyncMock(side_effect=error)
        else:
            client.aio.models.generate_content = AsyncMock(return_value=response)
        client.aio.aclose = AsyncMock()
        return client

    def _provider(self, client: MagicMock) -> GeminiProvider:
        return GeminiProvider(
            api_key="gk", model="gemini-2.0-flash", max_tokens=256, client=client
        )

    async def test_request_shape_and_reply(self):
        client = self._client(gemini_response("Hi ", "there"))
        provider = self._provider(client)

        assert await provider.complete("Hello", HISTORY) == "Hi there"

        kwargs = client.aio.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-2.0-flash"
        assert [c.role for c in kwargs["contents"]] == ["user", "model", "user"]
        assert kwargs["contents"][-1].parts[0].text == "Hello"
        assert kwargs["config"].max_output_tokens == 256

        await provider.close()
        client.aio.aclose.assert_awaited_once()

    async def test_thought_parts_skipped(self):
        provider = self._provider(self._client(gemini_response("Answer", thought="Hmm")))
        assert await provider.complete("Hello", []) == "Answer"

    async def test_api_error_wrapped(self):
        error = errors.ClientError(
            429, {"error": {"code": 429, "message": "quota", "status": "RESOURCE_EXHAUSTED"}}
        )
        provider = self._provider(self._client(error=error))

        with pytest.raises(UpstreamProviderError, match="Gemini API returned 429"):
            await provider.complete("Hello", [])

    async def test_transport_error_wrapped(self):
        provider = self._provider(self._client(error=httpx.ConnectError("unreachable")))

        with pytest.raises(UpstreamProviderError, match="unreachable"):
            await provider.complete("Hello", [])

    async def test_missing_key(self):
        client = self._client(gemini_response("unused"))
        provider = GeminiProvider(api_key="", model="gemini", client=client)

        assert not provider.is_configured
        with pytest.raises(UpstreamProviderError, match="Gemini API key not configured"):
            await provider.complete("Hello", [])
        client.aio.models.generate_content.assert_not_called()

    @pytest.mark.parametrize(
        "response",
        [
            types.GenerateContentResponse(),
            types.GenerateContentResponse(candidates=[]),
            types.GenerateContentResponse(candidates=[types.Candidate()]),
            gemini_response(""),
            gemini_response(thought="only thinking"),
        ],
    )
    def test_extract_text_fallback(self, response):
        assert _extract_text(response) == "No response"
