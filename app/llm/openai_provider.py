"""
OpenAI provider (chat completions, JSON response format).
"""
from typing import Optional

import openai
from openai import AsyncOpenAI

from app.core.config import settings
from app.core.exceptions import ProviderError, ProviderRateLimited, ProviderTimeout
from app.core.logging import get_logger
from app.llm.base import BaseLLMProvider, LLMResponse

logger = get_logger(__name__)


class OpenAIProvider(BaseLLMProvider):
    provider_type = "openai"

    def __init__(self, config, client: Optional[AsyncOpenAI] = None):
        super().__init__(config)
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        """Lazily create the async client (lightweight)."""
        if self._client is None:
            api_key = (self.config.settings or {}).get("api_key") or settings.openai_api_key
            if not api_key:
                raise ProviderError("OPENAI_API_KEY is not configured", provider=self.name)
            self._client = AsyncOpenAI(
                api_key=api_key,
                base_url=self.config.api_endpoint or None,
                timeout=self.timeout,
                max_retries=0,  # fallback to the next provider instead
            )
        return self._client

    async def _complete(self, system: str, prompt: str) -> LLMResponse:
        client = self._get_client()
        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                response_format={"type": "json_object"},
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
            )
        except openai.APITimeoutError as exc:
            logger.warning("openai_timeout", provider=self.name)
            raise ProviderTimeout(str(exc), provider=self.name) from exc
        except openai.RateLimitError as exc:
            logger.warning("openai_rate_limit", provider=self.name)
            raise ProviderRateLimited(str(exc), provider=self.name) from exc
        except openai.APIError as exc:
            logger.error("openai_api_error", provider=self.name, error=str(exc))
            raise ProviderError(str(exc), provider=self.name) from exc

        if not response.choices:
            raise ProviderError("OpenAI returned no choices", provider=self.name)

        usage = response.usage
        return LLMResponse(
            content=response.choices[0].message.content or "",
            model=response.model or self.model,
            input_tokens=usage.prompt_tokens if usage else None,
            output_tokens=usage.completion_tokens if usage else None,
        )
