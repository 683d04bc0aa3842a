"""
OpenAI-compatible Chat Provider.

Serves ChatGPT directly and DeepSeek, Perplexity and Grok through their
OpenAI-compatible endpoints (same SDK, different base_url).
"""

import openai
from structlog import get_logger

from app.exceptions import UpstreamProviderError
from app.models.domain import ChatMessage
from app.services.llm_provider import EMPTY_RESPONSE

logger = get_logger(__name__)


class OpenAICompatibleProvider:
    """
    Chat Completions binding.

    Implements the ChatProvider protocol.
    """

    def __init__(
        self,
        name: str,
        api_key: str,
        model: str,
        max_tokens: int = 500,
        base_url: str | None = None,
        client: openai.AsyncOpenAI | None = None,
    ) -> None:
        """
        Initialize provider.

        Args:
            name: Display name used in error messages (e.g. "DeepSeek")
            api_key: Upstream API key (empty = not configured)
            model: Upstream model name
            max_tokens: Completion token cap
            base_url: Endpoint override for OpenAI-compatible vendors
            client: Preconstructed client (tests)
        """
        self.name = name
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.base_url = base_url
        self._client = client

    @property
    def client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            self._client = openai.AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)
        return self._client

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def complete(self, prompt: str, history: list[ChatMessage]) -> str:
        if not self.api_key:
            raise UpstreamProviderError(self.name, f"{self.name} API key not configured")

        messages = [{"role": m.role.value, "content": m.content} for m in history]
        messages.append({"role": "user", "content": prompt})

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=self.max_tokens,
            )
        except openai.OpenAIError as exc:
            logger.warning(
                "openai_compatible_completion_failed",
                provider=self.name,
                model=self.model,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise UpstreamProviderError(self.name, str(exc)) from exc

        if not response.choices:
            return EMPTY_RESPONSE
        content = response.choices[0].message.content
        return content or EMPTY_RESPONSE

    async def close(self) -> None:
        """Close the SDK client."""
        if self._client is not None:
            await self._client.close()
