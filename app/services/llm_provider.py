"""
Chat Provider Protocol - Provider-agnostic interface for upstream LLMs.

NO DICTIONARIES - Conversation context is passed as typed ChatMessage values.
"""

from typing import Protocol

from app.models.domain import ChatMessage

# Returned when an upstream answers with no text
EMPTY_RESPONSE = "No response"


class ChatProvider(Protocol):
    """
    Chat completion provider protocol.

    Any LLM binding (OpenAI, Anthropic, Gemini, ...) must implement this interface.
    Bindings raise on failure; the provider gateway turns failures into content.
    """

    name: str

    @property
    def is_configured(self) -> bool:
        """Whether the binding has credentials to call its upstream."""
        ...

    async def complete(self, prompt: str, history: list[ChatMessage]) -> str:
        """
        Produce one completion.

        Args:
            prompt: The user's new message
            history: Earlier messages of the conversation, oldest first

        Returns:
            Completion text (EMPTY_RESPONSE if the upstream returned none)

        Raises:
            UpstreamProviderError: If the upstream call fails or is not configured
        """
        ...

    async def close(self) -> None:
        """Release pooled connections."""
        ...
