"""
Google Gemini Chat Provider (google-genai SDK).
"""

import httpx
from google import genai
from google.genai import errors, types
from structlog import get_logger

from app.exceptions import UpstreamProviderError
from app.models.api import ChatRole
from app.models.domain import ChatMessage
from app.services.llm_provider import EMPTY_RESPONSE

logger = get_logger(__name__)


class GeminiProvider:
    """
    generate_content binding.

    Implements the ChatProvider protocol.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        max_tokens: int = 500,
        client: genai.Client | None = None,
        name: str = "Gemini",
    ) -> None:
        self.name = name
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self._client = client

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def complete(self, prompt: str, history: list[ChatMessage]) -> str:
        if not self.api_key:
            raise UpstreamProviderError(self.name, f"{self.name} API key not configured")

        # Gemini names the assistant role "model"
        contents = [
            types.Content(
                role="model" if m.role == ChatRole.ASSISTANT else "user",
                parts=[types.Part(text=m.content)],
            )
            for m in history
        ]
        contents.append(types.Content(role="user", parts=[types.Part(text=prompt)]))

        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=contents,
                config=types.GenerateContentConfig(max_output_tokens=self.max_tokens),
            )
        except errors.APIError as exc:
            logger.warning(
                "gemini_completion_failed",
                model=self.model,
                status=exc.code,
                error=exc.message,
            )
            raise UpstreamProviderError(self.name, f"Gemini API returned {exc.code}") from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "gemini_completion_error",
                model=self.model,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise UpstreamProviderError(self.name, str(exc) or type(exc).__name__) from exc

        return _extract_text(response)

    async def close(self) -> None:
        """Close the SDK's async transport."""
        if self._client is not None:
            await self._client.aio.aclose()


def _extract_text(response: types.GenerateContentResponse) -> str:
    """Concatenate the answer text of the first candidate, skipping thought parts."""
    candidates = response.candidates or []
    if not candidates or candidates[0].content is None:
        return EMPTY_RESPONSE
    parts = candidates[0].content.parts or []
    text = "".join(part.text for part in parts if part.text and not part.thought)
    return text or EMPTY_RESPONSE
