"""
LLM provider layer used by the AI extractor.
"""
from app.llm.base import BaseLLMProvider, LLMResponse, estimate_cost_cents
from app.llm.http_providers import AnthropicProvider, OllamaProvider
from app.llm.openai_provider import OpenAIProvider
from app.llm.prompts import ExtractedJobData, JobExtractionPrompt
from app.llm.registry import PROVIDER_REGISTRY, build_provider

__all__ = [
    "BaseLLMProvider",
    "LLMResponse",
    "estimate_cost_cents",
    "AnthropicProvider",
    "OllamaProvider",
    "OpenAIProvider",
    "ExtractedJobData",
    "JobExtractionPrompt",
    "PROVIDER_REGISTRY",
    "build_provider",
]
