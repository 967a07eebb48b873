"""
LLM provider base class and cost table.

A provider wraps one vendor API behind `complete(system, prompt)` and
normalizes every failure into the provider error family:

  ProviderTimeout      - the call exceeded the configured timeout
  ProviderRateLimited  - HTTP 429 / vendor rate-limit error
  ProviderError        - anything else (transport, 5xx, auth, empty reply)

The AI extractor treats all three the same way: move on to the next provider.
"""
import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from app.core.config import settings
from app.core.exceptions import ProviderTimeout
from app.models.llm_provider_config import LlmProviderConfig

# Cents per 1K tokens: (input, output). Unknown models cost 0.
PROVIDER_COSTS: Dict[str, Dict[str, tuple]] = {
    "openai": {
        "gpt-4o-mini": (0.015, 0.06),
        "gpt-4o": (0.25, 1.0),
        "gpt-4.1-mini": (0.04, 0.16),
    },
    "anthropic": {
        "claude-3-haiku": (0.025, 0.125),
        "claude-3-5-haiku": (0.08, 0.4),
        "claude-3-5-sonnet": (0.3, 1.5),
        "claude-sonnet-4": (0.3, 1.5),
    },
    "ollama": {},
}


def estimate_cost_cents(
    provider_type: str,
    model: str,
    input_tokens: Optional[int],
    output_tokens: Optional[int],
) -> float:
    """Estimated cost of one call in cents, matching the longest known model prefix."""
    table = PROVIDER_COSTS.get(provider_type, {})
    rates = None
    for name in sorted(table, key=len, reverse=True):
        if model.startswith(name):
            rates = table[name]
            break
    if rates is None:
        return 0.0
    input_rate, output_rate = rates
    return round(
        (input_tokens or 0) / 1000 * input_rate + (output_tokens or 0) / 1000 * output_rate,
        6,
    )


@dataclass
class LLMResponse:
    content: str
    model: str
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    latency_ms: Optional[int] = None
    raw: Optional[Dict[str, Any]] = None

    @property
    def total_tokens(self) -> Optional[int]:
        if self.input_tokens is None and self.output_tokens is None:
            return None
        return (self.input_tokens or 0) + (self.output_tokens or 0)


class BaseLLMProvider(ABC):
    """Base class for all LLM providers. One instance per config row."""

    provider_type: str = "base"

    def __init__(self, config: LlmProviderConfig):
        self.config = config

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def model(self) -> str:
        return self.config.llm_model

    @property
    def timeout(self) -> float:
        return float(self.config.timeout_seconds or settings.llm_default_timeout_seconds)

    async def complete(self, system: str, prompt: str) -> LLMResponse:
        """Run one completion under the provider's own timeout."""
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(self._complete(system, prompt), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise ProviderTimeout(
                f"{self.name} timed out after {self.timeout:.0f}s", provider=self.name
            ) from exc
        response.latency_ms = int((time.monotonic() - start) * 1000)
        return response

    def estimate_cost(self, response: LLMResponse) -> float:
        return estimate_cost_cents(
            self.provider_type, response.model or self.model, response.input_tokens, response.output_tokens
        )

    @abstractmethod
    async def _complete(self, system: str, prompt: str) -> LLMResponse:
        """Vendor call. Must raise the provider error family on failure."""
