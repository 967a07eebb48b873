"""
Providers spoken to over plain HTTP with httpx: Anthropic Messages API and
a local Ollama server.
"""
from typing import Any, Dict, Optional

import httpx

from app.core.config import settings
from app.core.exceptions import ProviderError, ProviderRateLimited, ProviderTimeout
from app.core.logging import get_logger
from app.llm.base import BaseLLMProvider, LLMResponse

logger = get_logger(__name__)


class HTTPLLMProvider(BaseLLMProvider):
    """Shared POST + error mapping for JSON-over-HTTP vendors."""

    def __init__(self, config, client: Optional[httpx.AsyncClient] = None):
        super().__init__(config)
        self._client = client

    async def _post(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> Dict[str, Any]:
        try:
            if self._client is not None:
                response = await self._client.post(url, json=payload, headers=headers, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            raise ProviderTimeout(f"{self.name}: request timed out", provider=self.name) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"{self.name}: {exc}", provider=self.name) from exc

        if response.status_code == 429:
            raise ProviderRateLimited(f"{self.name}: rate limited", provider=self.name)
        if not response.is_success:
            logger.error(
                "llm_http_error",
                provider=self.name,
                http_status=response.status_code,
                body=response.text[:200],
            )
            raise ProviderError(f"{self.name}: HTTP {response.status_code}", provider=self.name)
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(f"{self.name}: non-JSON response", provider=self.name) from exc


class AnthropicProvider(HTTPLLMProvider):
    provider_type = "anthropic"

    API_URL = "https://api.anthropic.com/v1/messages"
    API_VERSION = "2023-06-01"

    async def _complete(self, system: str, prompt: str) -> LLMResponse:
        api_key = (self.config.settings or {}).get("api_key") or settings.anthropic_api_key
        if not api_key:
            raise ProviderError("ANTHROPIC_API_KEY is not configured", provider=self.name)

        data = await self._post(
            self.config.api_endpoint or self.API_URL,
            {
                "model": self.model,
                "max_tokens": self.config.max_tokens,
                "temperature": self.config.temperature,
                "system": system,
                "messages": [{"role": "user", "content": prompt}],
            },
            {
                "x-api-key": api_key,
                "anthropic-version": self.API_VERSION,
                "content-type": "application/json",
            },
        )
        text = "".join(
            block.get("text", "") for block in data.get("content", []) if block.get("type") == "text"
        )
        if not text:
            raise ProviderError(f"{self.name}: empty completion", provider=self.name)
        usage = data.get("usage") or {}
        return LLMResponse(
            content=text,
            model=data.get("model") or self.model,
            input_tokens=usage.get("input_tokens"),
            output_tokens=usage.get("output_tokens"),
            raw={"stop_reason": data.get("stop_reason")},
        )


class OllamaProvider(HTTPLLMProvider):
    provider_type = "ollama"

    async def _complete(self, system: str, prompt: str) -> LLMResponse:
        base_url = (self.config.api_endpoint or settings.ollama_base_url).rstrip("/")
        data = await self._post(
            f"{base_url}/api/chat",
            {
                "model": self.model,
                "stream": False,
                "format": "json",
                "options": {
                    "temperature": self.config.temperature,
                    "num_predict": self.config.max_tokens,
                },
                "messages": [
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
            },
            {"content-type": "application/json"},
        )
        text = (data.get("message") or {}).get("content") or ""
        if not text:
            raise ProviderError(f"{self.name}: empty completion", provider=self.name)
        return LLMResponse(
            content=text,
            model=data.get("model") or self.model,
            input_tokens=data.get("prompt_eval_count"),
            output_tokens=data.get("eval_count"),
        )
