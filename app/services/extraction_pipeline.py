"""
Extraction pipeline - runs one cycle of one scraping attempt.

This is the CORE BUSINESS LOGIC of the extractor:
1. (optional) check robots.txt
2. Get the page through the content cache            pending|retrying -> fetching -> extracting
3. Run the structured extractors for the detected board, API first
4. Fall back to the AI extractor (at most once per cycle)
5. Complete with the first result that clears the acceptance threshold,
   or with the best weak result flagged as low confidence
6. Otherwise hand the failure to the lifecycle: retry with backoff or dead-letter

WHY this is a service and not inline in the Celery task:
- The task is an entry point; it should be thin.
- The whole flow is testable with an in-memory database, a mock HTTP
  transport and fake providers.
"""
import time
from typing import Callable, List, Optional, Tuple
from uuid import UUID

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    AllProvidersExhausted,
    EventClosed,
    ExtractionExhausted,
    FetchError,
    InvalidTransition,
    PermissionDenied,
    PipelineError,
    StrategyError,
)
from app.core.logging import bind_attempt_context, get_logger
from app.models.scraping_attempt import AttemptStatus, ExtractionMethod, ScrapingAttempt
from app.models.scraping_event import EventStatus, EventType
from app.repositories.attempt_repository import AttemptRepository
from app.repositories.job_listing_repository import JobListingRepository
from app.scrapers.base import BaseExtractor, ExtractionResult
from app.scrapers.detector import BoardInfo, detect_board, resolve_embedded_board
from app.scrapers.fetcher import HtmlFetcher
from app.scrapers.registry import get_extractors
from app.services.ai_extractor import AIExtractor
from app.services.attempt_lifecycle import AttemptLifecycle, AttemptOutcome
from app.services.content_cache import CachedContent, ContentCache
from app.services.event_recorder import EventRecorder
from app.services.html_diagnostics import HtmlDiagnosticRecorder

logger = get_logger(__name__)

ExtractorFactory = Callable[[BoardInfo], List[BaseExtractor]]


def _better(current: Optional[ExtractionResult], candidate: ExtractionResult) -> ExtractionResult:
    if current is None or candidate.confidence > current.confidence:
        return candidate
    return current


class ExtractionPipeline:
    """Runs attempts. Collaborators are injectable for tests."""

    def __init__(
        self,
        content_cache: Optional[ContentCache] = None,
        extractor_factory: Optional[ExtractorFactory] = None,
        ai_extractor: Optional[AIExtractor] = None,
        diagnostics: Optional[HtmlDiagnosticRecorder] = None,
        threshold: Optional[float] = None,
        max_retries: Optional[int] = None,
        check_robots: Optional[bool] = None,
        fetcher_factory: Callable[[], HtmlFetcher] = HtmlFetcher,
        api_client: Optional[httpx.AsyncClient] = None,
    ):
        self.threshold = settings.extraction_acceptance_threshold if threshold is None else threshold
        self.max_retries = settings.extraction_max_retries if max_retries is None else max_retries
        self.check_robots = settings.scrape_check_robots_txt if check_robots is None else check_robots
        self.fetcher_factory = fetcher_factory
        self.content_cache = content_cache or ContentCache(fetcher_factory=fetcher_factory)
        self.extractor_factory = extractor_factory or (
            lambda board_info: get_extractors(board_info, client=api_client)
        )
        self.ai_extractor = ai_extractor or AIExtractor(threshold=self.threshold)
        self.diagnostics = diagnostics or HtmlDiagnosticRecorder()
        self.attempt_repo = AttemptRepository()
        self.listing_repo = JobListingRepository()

    async def run(self, db: AsyncSession, attempt_id: UUID) -> AttemptOutcome:
        """
        Run one cycle of an attempt.

        Terminal attempts and attempts another worker is already fetching
        or extracting are left alone. Returns where the attempt ended up;
        `outcome.should_retry` tells the caller to schedule the next cycle.
        """
        attempt = await self.attempt_repo.get_for_update(db, attempt_id)
        if attempt is None:
            logger.warning("attempt_not_found", attempt_id=str(attempt_id))
            return AttemptOutcome(attempt_id=attempt_id, status="not_found")

        with bind_attempt_context(attempt_id=attempt.id, job_listing_id=attempt.job_listing_id):
            if attempt.status_enum not in (AttemptStatus.PENDING, AttemptStatus.RETRYING):
                logger.info("attempt_not_runnable", status=attempt.status)
                return AttemptOutcome(attempt_id=attempt.id, status=attempt.status)

            recorder = EventRecorder(db, attempt)
            lifecycle = AttemptLifecycle(db, attempt, recorder=recorder, max_retries=self.max_retries)
            try:
                return await self._run_cycle(db, attempt, recorder, lifecycle)
            except (InvalidTransition, EventClosed) as exc:
                # Someone else (reaper, operator) moved the attempt; their write wins
                await db.rollback()
                await db.refresh(attempt)
                logger.warning("attempt_superseded", status=attempt.status, reason=str(exc))
                return AttemptOutcome(attempt_id=attempt.id, status=attempt.status)

    async def _run_cycle(
        self,
        db: AsyncSession,
        attempt: ScrapingAttempt,
        recorder: EventRecorder,
        lifecycle: AttemptLifecycle,
    ) -> AttemptOutcome:
        if attempt.status_enum == AttemptStatus.RETRYING and attempt.retry_count > self.max_retries:
            return await lifecycle.promote_to_dead_letter(
                f"Retry budget exhausted ({attempt.retry_count}/{self.max_retries})"
            )

        logger.info("attempt_cycle_started", url=attempt.url, retry_count=attempt.retry_count)

        if self.check_robots:
            try:
                await self._check_permission(recorder, attempt)
            except PermissionDenied as exc:
                await db.commit()
                return await lifecycle.fail(exc, EventType.PERMISSION_CHECK.value)
            await db.commit()

        # ── Fetch ────────────────────────────────────────────
        fetch_event = await lifecycle.start_fetch({"url": attempt.url})
        try:
            content = await self.content_cache.get_or_fetch(db, attempt.url)
        except FetchError as exc:
            return await lifecycle.fetch_failed(fetch_event, exc)
        await lifecycle.finish_fetch(fetch_event, content)

        # ── Extract ──────────────────────────────────────────
        result, method, error = await self._extract(db, attempt, recorder, content)
        if result is not None:
            listing = await self.listing_repo.get_by_id(db, attempt.job_listing_id)
            return await lifecycle.complete(result, method, listing)
        if isinstance(error, AllProvidersExhausted):
            step = EventType.AI_EXTRACTION.value
        else:
            step = EventType.STRUCTURED_EXTRACTION.value
        return await lifecycle.handle_cycle_failure(error, step)

    async def _check_permission(self, recorder: EventRecorder, attempt: ScrapingAttempt) -> None:
        async with recorder.record(EventType.PERMISSION_CHECK, {"url": attempt.url}) as step:
            async with self.fetcher_factory() as fetcher:
                allowed = await fetcher.is_allowed_by_robots(attempt.url)
            step.output["allowed"] = allowed
            if not allowed:
                raise PermissionDenied(f"robots.txt disallows {attempt.url}")

    async def _extract(
        self,
        db: AsyncSession,
        attempt: ScrapingAttempt,
        recorder: EventRecorder,
        content: CachedContent,
    ) -> Tuple[Optional[ExtractionResult], Optional[ExtractionMethod], Optional[PipelineError]]:
        """
        Walk the fallback chain. Returns (result, method, None) on success or
        (None, None, error) when nothing usable came out.
        """
        detected = detect_board(attempt.url)
        board_info = resolve_embedded_board(detected, content.html)
        if board_info is not detected:
            logger.info("embedded_board_resolved", company_slug=board_info.company_slug)
        best: Optional[ExtractionResult] = None
        last_error: Optional[PipelineError] = None

        for extractor in self.extractor_factory(board_info):
            result = await self._run_structured(db, attempt, recorder, extractor, board_info, content)
            if isinstance(result, PipelineError):
                last_error = result
                continue
            if result.confidence >= self.threshold:
                return result, ExtractionMethod.STRUCTURED, None
            best = _better(best, result)

        try:
            ai_result = await self.ai_extractor.extract(db, attempt, recorder, content)
        except AllProvidersExhausted as exc:
            last_error = exc
        else:
            if ai_result.confidence >= self.threshold:
                return ai_result, ExtractionMethod.AI, None
            best = _better(best, ai_result)

        if best is not None:
            logger.info(
                "attempt_weak_result_kept",
                extractor=best.extractor,
                confidence=best.confidence,
                threshold=self.threshold,
            )
            return best, ExtractionMethod.FALLBACK, None

        return None, None, last_error or ExtractionExhausted("Every extraction strategy failed")

    async def _run_structured(
        self,
        db: AsyncSession,
        attempt: ScrapingAttempt,
        recorder: EventRecorder,
        extractor: BaseExtractor,
        board_info: BoardInfo,
        content: CachedContent,
    ):
        """One structured pass: event, diagnostics for HTML passes, result or error."""
        await recorder.ensure_attempt_active()
        event = await recorder.record_start(
            EventType.STRUCTURED_EXTRACTION,
            {
                "extractor": extractor.name,
                "kind": extractor.kind,
                "board": board_info.board.value,
                "company_slug": board_info.company_slug,
            },
        )
        await db.commit()

        started = time.monotonic()
        try:
            result = await extractor.extract(attempt.url, content.html)
        except StrategyError as exc:
            error: Optional[PipelineError] = exc
            result = None
        except Exception as exc:
            logger.exception("extractor_unexpected_error", extractor=extractor.name)
            error = StrategyError(f"{extractor.name}: {type(exc).__name__}: {exc}")
            result = None
        else:
            error = None
        duration_ms = int((time.monotonic() - started) * 1000)

        if extractor.kind == "html":
            await self.diagnostics.record(
                db,
                attempt,
                extractor_name=extractor.name,
                board_type=board_info.board.value,
                html=content.html,
                cleaned_html=content.cleaned_html,
                result=result,
                error=error,
                duration_ms=duration_ms,
            )

        if error is not None:
            await recorder.record_end(event, EventStatus.FAILED, error=error)
            await db.commit()
            logger.info("structured_pass_failed", extractor=extractor.name, error=str(error)[:200])
            return error

        accepted = result.confidence >= self.threshold
        await recorder.record_end(
            event,
            EventStatus.SUCCESS,
            output_payload={**result.summary(), "accepted": accepted, "threshold": self.threshold},
        )
        await db.commit()
        logger.info(
            "structured_pass_finished",
            extractor=extractor.name,
            confidence=result.confidence,
            accepted=accepted,
        )
        return result
