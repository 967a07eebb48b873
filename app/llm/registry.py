"""
Provider registry - maps provider_type to its provider class.

To add a vendor: implement BaseLLMProvider._complete, then add one entry here.
"""
from typing import Dict, Type

from app.core.exceptions import ProviderError
from app.llm.base import BaseLLMProvider
from app.llm.http_providers import AnthropicProvider, OllamaProvider
from app.llm.openai_provider import OpenAIProvider
from app.models.llm_provider_config import LlmProviderConfig, ProviderType

PROVIDER_REGISTRY: Dict[str, Type[BaseLLMProvider]] = {
    ProviderType.OPENAI.value: OpenAIProvider,
    ProviderType.ANTHROPIC.value: AnthropicProvider,
    ProviderType.OLLAMA.value: OllamaProvider,
}


def build_provider(config: LlmProviderConfig) -> BaseLLMProvider:
    """Instantiate the provider for a config row."""
    provider_class = PROVIDER_REGISTRY.get(config.provider_type)
    if provider_class is None:
        raise ProviderError(f"Unknown provider type: {config.provider_type}", provider=config.name)
    return provider_class(config)
