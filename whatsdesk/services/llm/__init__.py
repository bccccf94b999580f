"""LLM service - OpenAI-compatible completions through LiteLLM."""

from whatsdesk.services.llm.provider import LLMProvider, LLMResponse, ProviderSpec, provider_catalog

__all__ = ["LLMProvider", "LLMResponse", "ProviderSpec", "provider_catalog"]
