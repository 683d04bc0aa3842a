"""
Provider Gateway - Uniform, never-throwing access to upstream LLMs.

Models are routed through a static registry of ChatProvider bindings. Every
failure mode (unknown model, upstream error, timeout) comes back as display
text so one bad provider never aborts a fan-out.
"""

import asyncio
import time

from structlog import get_logger

from app.config import Settings
from app.exceptions import UpstreamProviderError
from app.models.api import ModelId
from app.models.domain import ChatMessage, ProviderReply
from app.observability.metrics import metrics
from app.observability.tracing import trace_operation
from app.services.anthropic_provider import AnthropicProvider
from app.services.gemini_provider import GeminiProvider
from app.services.llm_provider import ChatProvider
from app.services.openai_provider import OpenAICompatibleProvider

logger = get_logger(__name__)

ERROR_PREFIX = "Error: "


def is_error_reply(text: str) -> bool:
    """Whether a reply is a rendered failure rather than model output."""
    return text.startswith(ERROR_PREFIX)


def _format_seconds(seconds: float) -> str:
    return str(int(seconds)) if float(seconds).is_integer() else str(seconds)


class ProviderGateway:
    """Routes chat completions to registered provider bindings."""

    def __init__(self, providers: dict[str, ChatProvider], timeout_seconds: float = 60.0) -> None:
        """
        Initialize gateway.

        Args:
            providers: Model id -> binding registry
            timeout_seconds: Per-call upper bound on upstream latency
        """
        self.providers = dict(providers)
        self.timeout_seconds = timeout_seconds

    @property
    def models(self) -> list[str]:
        """Registered model ids."""
        return list(self.providers)

    def is_configured(self, model: str) -> bool:
        """Whether a model is registered and its binding has credentials."""
        provider = self.providers.get(model)
        return provider is not None and provider.is_configured

    async def complete(
        self, model: str, prompt: str, history: list[ChatMessage] | None = None
    ) -> str:
        """
        Get one completion. Never raises.

        Returns:
            Model output, or "Error: <cause>" / "Model <id> not implemented yet"
        """
        provider = self.providers.get(model)
        if provider is None:
            metrics.record_provider_call(model, "unknown_model", 0.0)
            logger.warning("provider_not_registered", model=model)
            return f"Model {model} not implemented yet"

        start = time.perf_counter()
        outcome = "success"
        with trace_operation("provider_call", model=model) as span:
            try:
                text = await asyncio.wait_for(
                    provider.complete(prompt, history or []),
                    timeout=self.timeout_seconds,
                )
            except asyncio.TimeoutError:
                outcome = "timeout"
                text = (
                    f"{ERROR_PREFIX}{model} timed out after "
                    f"{_format_seconds(self.timeout_seconds)}s"
                )
            except UpstreamProviderError as exc:
                outcome = "error"
                text = f"{ERROR_PREFIX}{exc.message}"
            except Exception as exc:
                # Unexpected binding failure, rendered like an upstream error
                outcome = "error"
                text = f"{ERROR_PREFIX}{str(exc) or type(exc).__name__}"
                logger.exception("provider_call_crashed", model=model)
            span.set_attribute("outcome", outcome)

        duration = time.perf_counter() - start
        metrics.record_provider_call(model, outcome, duration)
        if outcome == "success":
            logger.info(
                "provider_call_completed",
                model=model,
                duration_ms=int(duration * 1000),
            )
        else:
            logger.warning(
                "provider_call_failed",
                model=model,
                outcome=outcome,
                reply=text,
                duration_ms=int(duration * 1000),
            )
        return text

    async def fan_out(
        self,
        models: list[str],
        prompt: str,
        histories: dict[str, list[ChatMessage]] | None = None,
    ) -> list[ProviderReply]:
        """
        Dispatch one prompt to several models concurrently and wait for all.

        Replies are returned in request order.
        """
        histories = histories or {}
        texts = await asyncio.gather(
            *(self.complete(model, prompt, histories.get(model, [])) for model in models)
        )
        return [ProviderReply(model=m, response=t) for m, t in zip(models, texts, strict=True)]

    async def close(self) -> None:
        """Close every binding's HTTP client."""
        for provider in self.providers.values():
            await provider.close()


def build_default_gateway(settings: Settings) -> ProviderGateway:
    """Build the gateway with one binding per catalog model."""
    max_tokens = settings.provider_max_tokens
    providers: dict[str, ChatProvider] = {
        ModelId.CHATGPT.value: OpenAICompatibleProvider(
            name="OpenAI",
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            max_tokens=max_tokens,
        ),
        ModelId.DEEPSEEK.value: OpenAICompatibleProvider(
            name="DeepSeek",
            api_key=settings.deepseek_api_key,
            model=settings.deepseek_model,
            max_tokens=max_tokens,
            base_url=settings.deepseek_base_url,
        ),
        ModelId.GEMINI.value: GeminiProvider(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            max_tokens=max_tokens,
        ),
        ModelId.CLAUDE.value: AnthropicProvider(
            api_key=settings.anthropic_api_key,
            model=settings.anthropic_model,
            max_tokens=max_tokens,
        ),
        ModelId.PERPLEXITY.value: OpenAICompatibleProvider(
            name="Perplexity",
            api_key=settings.perplexity_api_key,
            model=settings.perplexity_model,
            max_tokens=max_tokens,
            base_url=settings.perplexity_base_url,
        ),
        ModelId.GROK.value: OpenAICompatibleProvider(
            name="xAI",
            api_key=settings.xai_api_key,
            model=settings.xai_model,
            max_tokens=max_tokens,
            base_url=settings.xai_base_url,
        ),
    }
    return ProviderGateway(providers, timeout_seconds=settings.provider_timeout_seconds)
