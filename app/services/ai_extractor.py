"""
AI extractor - the LLM step of the fallback chain.

Walks the enabled LlmProviderConfig rows by ascending priority. Each
provider call is one `ai_extraction` event and one LlmApiLog row. A
timeout, rate limit, transport error or invalid answer moves straight on
to the next provider; it is never retried against the same one.

The first result at or above the acceptance threshold wins. Weaker
results are kept, and the best of them is returned if no provider clears
the bar. Only when no provider produced anything usable does the walk
raise AllProvidersExhausted.
"""
from typing import Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    AllProvidersExhausted,
    ProviderError,
    ProviderRateLimited,
    ProviderTimeout,
)
from app.core.logging import get_logger
from app.llm.base import BaseLLMProvider, LLMResponse
from app.llm.prompts import JobExtractionPrompt
from app.llm.registry import build_provider
from app.models.llm_api_log import LlmApiLog, LlmCallStatus
from app.models.llm_provider_config import LlmProviderConfig
from app.models.scraping_attempt import ScrapingAttempt
from app.models.scraping_event import EventStatus, EventType
from app.repositories.provider_repository import ProviderConfigRepository
from app.scrapers.base import ExtractionResult
from app.scrapers.text import strip_html
from app.services.content_cache import CachedContent
from app.services.event_recorder import EventRecorder

logger = get_logger(__name__)

ProviderFactory = Callable[[LlmProviderConfig], BaseLLMProvider]


def _call_status(error: ProviderError) -> LlmCallStatus:
    if isinstance(error, ProviderTimeout):
        return LlmCallStatus.TIMEOUT
    if isinstance(error, ProviderRateLimited):
        return LlmCallStatus.RATE_LIMITED
    return LlmCallStatus.ERROR


class AIExtractor:
    """LLM fallback extractor over the configured provider chain."""

    name = "ai"

    def __init__(
        self,
        threshold: Optional[float] = None,
        provider_factory: ProviderFactory = build_provider,
    ):
        self.threshold = settings.extraction_acceptance_threshold if threshold is None else threshold
        self.provider_factory = provider_factory
        self.config_repo = ProviderConfigRepository()

    async def extract(
        self,
        db: AsyncSession,
        attempt: ScrapingAttempt,
        recorder: EventRecorder,
        content: CachedContent,
    ) -> ExtractionResult:
        """Best provider result, or AllProvidersExhausted."""
        configs = await self.config_repo.list_enabled(db)
        if not configs:
            await recorder.ensure_attempt_active()
            await recorder.record_skipped(EventType.AI_EXTRACTION, "No enabled LLM providers")
            await db.commit()
            raise AllProvidersExhausted("No enabled LLM providers configured")

        prompt = JobExtractionPrompt(attempt.url, content.cleaned_html or strip_html(content.html))
        best: Optional[ExtractionResult] = None
        failures: List[str] = []

        for config in configs:
            result = await self._try_provider(db, attempt, recorder, config, prompt)
            if result is None:
                failures.append(config.name)
                continue
            if result.confidence >= self.threshold:
                return result
            if best is None or result.confidence > best.confidence:
                best = result

        if best is not None:
            logger.info(
                "ai_best_below_threshold",
                provider=best.provider,
                confidence=best.confidence,
                threshold=self.threshold,
            )
            return best

        raise AllProvidersExhausted(
            f"All {len(configs)} LLM providers failed: {', '.join(failures)}"
        )

    async def _try_provider(
        self,
        db: AsyncSession,
        attempt: ScrapingAttempt,
        recorder: EventRecorder,
        config: LlmProviderConfig,
        prompt: JobExtractionPrompt,
    ) -> Optional[ExtractionResult]:
        """One provider call. Returns None when the provider failed."""
        await recorder.ensure_attempt_active()
        event = await recorder.record_start(
            EventType.AI_EXTRACTION,
            {
                "provider": config.name,
                "provider_type": config.provider_type,
                "model": config.llm_model,
                "priority": config.priority,
                "input_chars": prompt.input_chars,
            },
        )
        await db.commit()

        response: Optional[LLMResponse] = None
        provider: Optional[BaseLLMProvider] = None
        try:
            provider = self.provider_factory(config)
            response = await provider.complete(prompt.system, prompt.user)
            extracted = JobExtractionPrompt.parse(response.content, provider=config.name)
        except ProviderError as exc:
            error = exc
        except Exception as exc:
            # Vendor SDK surprises are still just one failed provider
            logger.exception("ai_provider_unexpected_error", provider=config.name)
            error = ProviderError(f"{type(exc).__name__}: {exc}", provider=config.name)
        else:
            error = None

        if error is not None:
            await recorder.record_end(
                event,
                EventStatus.FAILED,
                output_payload={"latency_ms": response.latency_ms if response else None},
                error=error,
            )
            self._log_call(db, attempt, config, provider, response, _call_status(error), error=error)
            await db.commit()
            logger.warning(
                "ai_provider_failed",
                provider=config.name,
                error_type=error.error_type,
                error=str(error)[:200],
            )
            return None

        confidence = extracted.score()
        result = ExtractionResult(
            extractor=f"ai:{config.name}",
            kind="ai",
            data=extracted.to_listing_data(),
            confidence=confidence,
            provider=config.name,
            model=response.model,
            duration_ms=response.latency_ms,
        )
        accepted = confidence >= self.threshold
        await recorder.record_end(
            event,
            EventStatus.SUCCESS,
            output_payload={
                **result.summary(),
                "accepted": accepted,
                "threshold": self.threshold,
                "latency_ms": response.latency_ms,
                "total_tokens": response.total_tokens,
            },
        )
        self._log_call(db, attempt, config, provider, response, LlmCallStatus.SUCCESS, confidence=confidence)
        await db.commit()
        logger.info(
            "ai_provider_succeeded",
            provider=config.name,
            confidence=confidence,
            accepted=accepted,
            latency_ms=response.latency_ms,
        )
        return result

    @staticmethod
    def _log_call(
        db: AsyncSession,
        attempt: ScrapingAttempt,
        config: LlmProviderConfig,
        provider: Optional[BaseLLMProvider],
        response: Optional[LLMResponse],
        status: LlmCallStatus,
        error: Optional[ProviderError] = None,
        confidence: Optional[float] = None,
    ) -> LlmApiLog:
        cost = provider.estimate_cost(response) if provider and response else None
        log = LlmApiLog(
            scraping_attempt_id=attempt.id,
            provider=config.name,
            model=(response.model if response else None) or config.llm_model,
            operation_type="job_extraction",
            input_tokens=response.input_tokens if response else None,
            output_tokens=response.output_tokens if response else None,
            total_tokens=response.total_tokens if response else None,
            latency_ms=response.latency_ms if response else None,
            estimated_cost_cents=cost,
            status=status.value,
            error_type=error.error_type if error else None,
            error_message=str(error)[:2000] if error else None,
            confidence_score=confidence,
        )
        db.add(log)
        return log
