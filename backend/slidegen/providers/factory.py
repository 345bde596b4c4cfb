from slidegen.config import settings
from slidegen.providers.anthropic_provider import AnthropicProvider
from slidegen.providers.base import BaseLLMProvider
from slidegen.providers.mock_provider import MockProvider
from slidegen.providers.openai_provider import OpenAIProvider


def get_provider(name: str | None = None) -> BaseLLMProvider:
    candidate = (name or settings.default_llm_provider).lower()

    if candidate == "openai" and settings.openai_api_key:
        return OpenAIProvider(settings.openai_api_key)
    if candidate == "anthropic" and settings.anthropic_api_key:
        return AnthropicProvider(settings.anthropic_api_key)
    if candidate == "minimax" and settings.minimax_api_key:
        return AnthropicProvider(
            settings.minimax_api_key,
            model=settings.minimax_model,
            fallback_model=settings.minimax_fallback_model,
            base_url=settings.minimax_base_url,
            name="minimax",
        )

    return MockProvider()


def get_secondary_providers(primary: BaseLLMProvider) -> list[BaseLLMProvider]:
    """Configured secondary providers with credentials, excluding the primary."""
    providers: list[BaseLLMProvider] = []
    for name in settings.secondary_providers:
        provider = get_provider(name)
        if provider.name == primary.name or isinstance(provider, MockProvider):
            continue
        providers.append(provider)
    return providers
