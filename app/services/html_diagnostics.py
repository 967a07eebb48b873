"""
HTML diagnostic recorder - one HtmlScrapingLog per HTML-based extraction pass.

Failed passes are recorded too: a selector set that stopped matching is
exactly what these logs are for.
"""
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import PipelineError, StrategyError
from app.core.logging import get_logger
from app.models.html_scraping_log import TRACKED_FIELDS, HtmlScrapingLog
from app.models.scraping_attempt import ScrapingAttempt
from app.scrapers.base import ExtractionResult, FieldResult

logger = get_logger(__name__)


def _tracked(field_results: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    tracked = {}
    for name in TRACKED_FIELDS:
        if name not in field_results:
            continue
        result = field_results[name]
        tracked[name] = result.as_dict() if isinstance(result, FieldResult) else dict(result)
    return tracked


class HtmlDiagnosticRecorder:
    def __init__(self, success_rate: Optional[float] = None):
        self.success_rate = success_rate or settings.diagnostic_success_rate

    async def record(
        self,
        db: AsyncSession,
        attempt: ScrapingAttempt,
        extractor_name: str,
        board_type: Optional[str],
        html: Optional[str],
        cleaned_html: Optional[str] = None,
        result: Optional[ExtractionResult] = None,
        error: Optional[BaseException] = None,
        duration_ms: Optional[int] = None,
    ) -> HtmlScrapingLog:
        """Write the diagnostics of one pass (successful `result` or failing `error`)."""
        if result is not None:
            field_results = _tracked(result.field_results)
            selectors_tried = dict(result.selectors_tried)
            duration_ms = result.duration_ms if result.duration_ms is not None else duration_ms
        elif isinstance(error, StrategyError):
            field_results = _tracked(error.field_results)
            selectors_tried = dict(error.selectors_tried)
        else:
            field_results, selectors_tried = {}, {}

        log = HtmlScrapingLog(
            scraping_attempt_id=attempt.id,
            job_listing_id=attempt.job_listing_id,
            url=attempt.url,
            domain=attempt.domain,
            board_type=board_type,
            extractor_name=extractor_name,
            html_size=len(html) if html is not None else None,
            cleaned_html_size=len(cleaned_html) if cleaned_html is not None else None,
            duration_ms=duration_ms,
            field_results=field_results,
            selectors_tried=selectors_tried,
        )
        if error is not None:
            log.error_type = error.error_type if isinstance(error, PipelineError) else type(error).__name__
            log.error_message = str(error)[:2000]
        log.compute_metrics(self.success_rate)

        db.add(log)
        await db.flush()

        logger.info(
            "html_pass_recorded",
            extractor=extractor_name,
            domain=attempt.domain,
            status=log.status,
            fields_extracted=log.fields_extracted,
            fields_attempted=log.fields_attempted,
        )
        return log
