"""
Anthropic Chat Provider (Claude).
"""

import anthropic
from structlog import get_logger

from app.exceptions import UpstreamProviderError
from app.models.domain import ChatMessage
from app.services.llm_provider import EMPTY_RESPONSE

logger = get_logger(__name__)


class AnthropicProvider:
    """
    Messages API binding.

    Implements the ChatProvider protocol.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        max_tokens: int = 500,
        client: anthropic.AsyncAnthropic | None = None,
        name: str = "Anthropic",
    ) -> None:
        self.name = name
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self._client = client

    @property
    def client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key)
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
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=messages,
            )
        except anthropic.AnthropicError as exc:
            logger.warning(
                "anthropic_completion_failed",
                model=self.model,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise UpstreamProviderError(self.name, str(exc)) from exc

        # Only text blocks carry display content
        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        return text or EMPTY_RESPONSE

    async def close(self) -> None:
        """Close the SDK client."""
        if self._client is not None:
            await self._client.close()
