"""LLM provider using LiteLLM against OpenAI-compatible endpoints."""

import time
from dataclasses import dataclass, field
from typing import Any

import litellm
import structlog

from whatsdesk.core.config import settings
from whatsdesk.core.exceptions import LLMError
from whatsdesk.models import AgentConfig, AgentProvider

logger = structlog.get_logger()


@dataclass(frozen=True)
class ProviderSpec:
    """Endpoint and model catalog of a completion provider."""

    base_url: str
    models: tuple[str, ...]
    extra_headers: dict[str, str] = field(default_factory=dict)


def provider_catalog() -> dict[AgentProvider, ProviderSpec]:
    return {
        AgentProvider.OPENROUTER: ProviderSpec(
            base_url=settings.openrouter_base_url,
            models=(
                "anthropic/claude-3.5-sonnet",
                "openai/gpt-4o",
                "openai/gpt-4o-mini",
                "anthropic/claude-3-haiku",
                "meta-llama/llama-3.1-405b-instruct",
                "google/gemini-pro-1.5",
            ),
            extra_headers={
                "HTTP-Referer": settings.openrouter_referer,
                "X-Title": settings.openrouter_title,
            },
        ),
        AgentProvider.OPENAI: ProviderSpec(
            base_url=settings.openai_base_url,
            models=("gpt-4o", "gpt-4o-mini", "gpt-4-turbo", "gpt-3.5-turbo"),
        ),
    }


@dataclass
class LLMResponse:
    """Response from LLM completion."""

    content: str
    model: str
    tokens_input: int = 0
    tokens_output: int = 0
    total_tokens: int = 0
    finish_reason: str = "stop"
    latency_ms: float = 0.0
    cost_usd: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)


class LLMProvider:
    """Sends exactly one chat completion request per call.

    No retries and no fallback models here: a failed call surfaces as
    LLMError and the caller decides what to answer.
    """

    def __init__(self, catalog: dict[AgentProvider, ProviderSpec] | None = None) -> None:
        self.catalog = catalog or provider_catalog()

    def spec_for(self, provider: AgentProvider) -> ProviderSpec:
        try:
            return self.catalog[AgentProvider(provider)]
        except (KeyError, ValueError):
            raise LLMError(f"Unsupported provider: {provider}", provider=str(provider))

    def is_supported_model(self, provider: AgentProvider, model: str) -> bool:
        return model in self.spec_for(provider).models

    async def complete(
        self,
        agent: AgentConfig,
        messages: list[dict[str, str]],
        system_prompt: str | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion with the agent's provider and parameters.

        Args:
            agent: Agent configuration (provider, model, key, parameters)
            messages: List of message dicts with 'role' and 'content'
            system_prompt: Optional system prompt to prepend
            max_tokens: Override the agent's max_tokens

        Returns:
            LLMResponse with generated content and metadata

        Raises:
            LLMError: On transport errors, non-2xx answers or a response
                without message content
        """
        spec = self.spec_for(agent.provider)

        full_messages = []
        if system_prompt:
            full_messages.append({"role": "system", "content": system_prompt})
        full_messages.extend(messages)

        start_time = time.perf_counter()

        try:
            response = await litellm.acompletion(
                # "openai/" routes to POST {api_base}/chat/completions with a bearer key
                model=f"openai/{agent.model}",
                api_base=spec.base_url,
                api_key=agent.api_key,
                messages=full_messages,
                temperature=agent.temperature,
                max_tokens=max_tokens or agent.max_tokens,
                extra_headers=spec.extra_headers or None,
                max_retries=0,
            )
        except Exception as e:
            logger.warning(
                "LLM completion failed",
                provider=agent.provider.value,
                model=agent.model,
                error=str(e),
            )
            raise LLMError(f"Completion request failed: {e}", provider=agent.provider.value) from e

        latency_ms = (time.perf_counter() - start_time) * 1000

        try:
            choice = response.choices[0]
            content = choice.message.content
        except (AttributeError, IndexError, TypeError) as e:
            raise LLMError(f"Malformed completion response: {e}", provider=agent.provider.value) from e
        if not isinstance(content, str) or not content.strip():
            raise LLMError("Completion response has no content", provider=agent.provider.value)

        usage = getattr(response, "usage", None)
        tokens_input = getattr(usage, "prompt_tokens", 0) or 0
        tokens_output = getattr(usage, "completion_tokens", 0) or 0
        total_tokens = getattr(usage, "total_tokens", 0) or tokens_input + tokens_output

        cost = self._estimate_cost(response)

        logger.info(
            "LLM completion successful",
            model=agent.model,
            tokens_in=tokens_input,
            tokens_out=tokens_output,
            latency_ms=round(latency_ms, 2),
            cost_usd=round(cost, 6),
        )

        return LLMResponse(
            content=content,
            model=agent.model,
            tokens_input=tokens_input,
            tokens_output=tokens_output,
            total_tokens=total_tokens,
            finish_reason=getattr(choice, "finish_reason", None) or "stop",
            latency_ms=latency_ms,
            cost_usd=cost,
            metadata={"raw_response_id": getattr(response, "id", None)},
        )

    @staticmethod
    def _estimate_cost(response: Any) -> float:
        # Calculate cost using LiteLLM's cost tracking
        try:
            return float(litellm.completion_cost(completion_response=response))
        except Exception:
            return 0.0

    async def verify_credentials(self, agent: AgentConfig) -> bool:
        """Send a tiny request to check that the key and model work."""
        try:
            await self.complete(agent, [{"role": "user", "content": "Hello"}], max_tokens=10)
            return True
        except LLMError:
            return False
