"""
Attempt lifecycle - the only code that changes ScrapingAttempt.status.

Each public method is one unit of work: lock/refresh the attempt row, apply
the transition, record the event that describes it, commit. A transition
that is no longer legal (the reaper or an operator got there first) raises
InvalidTransition before anything is written.

    pending  -> fetching -> extracting -> completed
                   |            |
                   +----> retrying <---+          (budget left)
                   |            |
                   +-> failed -> dead_letter      (budget spent)
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import OperationalFailure, PipelineError
from app.core.logging import get_logger
from app.models.base import utcnow
from app.models.job_listing import JobListing
from app.models.scraping_attempt import AttemptStatus, ExtractionMethod, ScrapingAttempt
from app.models.scraping_event import EventStatus, EventType, ScrapingEvent
from app.repositories.attempt_repository import AttemptRepository
from app.repositories.event_repository import EventRepository
from app.scrapers.base import ExtractionResult
from app.services.content_cache import CachedContent
from app.services.event_recorder import EventRecorder

logger = get_logger(__name__)

MANUAL_FAILURE = "ManuallyMarkedFailed"


def backoff_seconds(retry_count: int, base: int, cap: int) -> int:
    """Exponential backoff: base * 2^(retry_count - 1), capped."""
    return int(min(cap, base * 2 ** max(0, retry_count - 1)))


@dataclass
class AttemptOutcome:
    """Where an attempt stands after one pipeline cycle."""

    attempt_id: UUID
    status: str
    retry_in_seconds: Optional[int] = None
    error_type: Optional[str] = None

    @property
    def should_retry(self) -> bool:
        return self.status == AttemptStatus.RETRYING.value


class AttemptLifecycle:
    """State machine operations for one attempt."""

    def __init__(
        self,
        db: AsyncSession,
        attempt: ScrapingAttempt,
        recorder: Optional[EventRecorder] = None,
        max_retries: Optional[int] = None,
        backoff_base: Optional[int] = None,
        backoff_max: Optional[int] = None,
    ):
        self.db = db
        self.attempt = attempt
        self.recorder = recorder or EventRecorder(db, attempt)
        self.attempt_repo = AttemptRepository()
        self.event_repo = EventRepository()
        self.max_retries = settings.extraction_max_retries if max_retries is None else max_retries
        self.backoff_base = backoff_base or settings.retry_backoff_base_seconds
        self.backoff_max = backoff_max or settings.retry_backoff_max_seconds

    # ─── Helpers ──────────────────────────────────────────────

    async def _lock(self) -> ScrapingAttempt:
        """Re-read the attempt under a row lock so transitions see the latest status."""
        fresh = await self.attempt_repo.get_for_update(self.db, self.attempt.id)
        if fresh is not None:
            self.attempt = fresh
            self.recorder.attempt = fresh
        return self.attempt

    def _transition(self, target: AttemptStatus) -> None:
        previous = self.attempt.status
        self.attempt.transition_to(target)
        logger.info(
            "attempt_transition",
            attempt_id=str(self.attempt.id),
            from_status=previous,
            to_status=target.value,
        )

    def _elapsed_seconds(self, now: datetime) -> Optional[float]:
        if self.attempt.created_at is None:
            return None
        return round((now - self.attempt.created_at).total_seconds(), 3)

    def _outcome(self, error: Optional[PipelineError] = None) -> AttemptOutcome:
        retry_in = None
        if self.attempt.status == AttemptStatus.RETRYING.value and self.attempt.next_retry_at:
            retry_in = max(0, int((self.attempt.next_retry_at - utcnow()).total_seconds()))
        return AttemptOutcome(
            attempt_id=self.attempt.id,
            status=self.attempt.status,
            retry_in_seconds=retry_in,
            error_type=error.error_type if error else self.attempt.error_type,
        )

    def _set_error(self, error: PipelineError, step: Optional[str]) -> None:
        self.attempt.error_type = error.error_type
        self.attempt.error_message = str(error)[:2000] or error.error_type
        self.attempt.failed_step = step
        if getattr(error, "http_status", None):
            self.attempt.http_status = error.http_status

    # ─── Fetch phase ──────────────────────────────────────────

    async def start_fetch(self, input_payload: Optional[Dict[str, Any]] = None) -> ScrapingEvent:
        """pending|retrying -> fetching, opening the html_fetch event."""
        await self._lock()
        self._transition(AttemptStatus.FETCHING)
        event = await self.recorder.record_start(
            EventType.HTML_FETCH,
            input_payload or {"url": self.attempt.url},
            metadata={"retry_count": self.attempt.retry_count},
        )
        await self.db.commit()
        return event

    async def finish_fetch(self, event: ScrapingEvent, content: CachedContent) -> None:
        """fetching -> extracting, closing the html_fetch event as success."""
        await self._lock()
        self._transition(AttemptStatus.EXTRACTING)
        self.attempt.http_status = content.http_status
        self.attempt.scraped_job_listing_data_id = content.record.id
        await self.recorder.record_end(
            event,
            EventStatus.SUCCESS,
            output_payload={
                "http_status": content.http_status,
                "from_cache": content.from_cache,
                "content_hash": content.content_hash,
                "html_size": len(content.html),
                "cleaned_size": len(content.cleaned_html),
            },
        )
        await self.db.commit()

    async def fetch_failed(self, event: ScrapingEvent, error: PipelineError) -> AttemptOutcome:
        """Close the html_fetch event as failed, then apply the exhaustion policy."""
        await self.recorder.record_end(
            event,
            EventStatus.FAILED,
            output_payload={"http_status": getattr(error, "http_status", None)},
            error=error,
        )
        return await self.handle_cycle_failure(error, EventType.HTML_FETCH.value)

    # ─── Outcomes ─────────────────────────────────────────────

    async def complete(
        self,
        result: ExtractionResult,
        method: ExtractionMethod,
        listing: Optional[JobListing] = None,
    ) -> AttemptOutcome:
        """
        extracting -> completed. Writes the completion event and copies the
        extracted fields onto the job listing in the same commit.
        """
        await self._lock()
        self._transition(AttemptStatus.COMPLETED)

        now = utcnow()
        low_confidence = method == ExtractionMethod.FALLBACK
        self.attempt.extraction_method = method.value
        self.attempt.provider = result.provider if result.kind == "ai" else None
        self.attempt.confidence_score = result.confidence
        self.attempt.low_confidence = low_confidence
        self.attempt.completed_at = now
        self.attempt.next_retry_at = None
        self.attempt.duration_seconds = self._elapsed_seconds(now)
        self.attempt.response_metadata = {
            "extractor": result.extractor,
            "kind": result.kind,
            "model": result.model,
            "extracted_fields": result.extracted_fields,
            "missing_fields": result.missing_fields,
            "limited": result.limited,
        }

        updated_fields = []
        if listing is not None:
            updated_fields = listing.apply_extraction(result.data)
            listing.extraction_confidence = result.confidence
            listing.low_confidence = low_confidence
            listing.last_extracted_at = now

        await self.recorder.record_completion(
            {**result.summary(), "method": method.value, "low_confidence": low_confidence},
            metadata={"updated_fields": updated_fields},
        )
        await self.db.commit()

        logger.info(
            "attempt_completed",
            attempt_id=str(self.attempt.id),
            method=method.value,
            extractor=result.extractor,
            provider=self.attempt.provider,
            confidence=result.confidence,
            low_confidence=low_confidence,
        )
        return self._outcome()

    async def handle_cycle_failure(self, error: PipelineError, step: Optional[str]) -> AttemptOutcome:
        """
        A cycle failed. Retry with backoff while budget remains; otherwise
        fail and dead-letter. Non-retryable errors just fail.
        """
        if not error.retryable:
            return await self.fail(error, step, dead_letter=False)
        if self.attempt.retry_count < self.max_retries:
            return await self.schedule_retry(error, step)
        return await self.fail(error, step, dead_letter=True)

    async def schedule_retry(self, error: PipelineError, step: Optional[str]) -> AttemptOutcome:
        """fetching|extracting -> retrying with exponential backoff."""
        await self._lock()
        self._transition(AttemptStatus.RETRYING)

        self.attempt.retry_count += 1
        delay = backoff_seconds(self.attempt.retry_count, self.backoff_base, self.backoff_max)
        self.attempt.next_retry_at = utcnow() + timedelta(seconds=delay)
        self._set_error(error, step)

        await self.recorder.record_failure(
            error,
            step,
            metadata={
                "next_status": AttemptStatus.RETRYING.value,
                "retry_count": self.attempt.retry_count,
                "max_retries": self.max_retries,
                "retry_in_seconds": delay,
            },
        )
        await self.db.commit()

        logger.warning(
            "attempt_retry_scheduled",
            attempt_id=str(self.attempt.id),
            error_type=error.error_type,
            retry_count=self.attempt.retry_count,
            retry_in_seconds=delay,
        )
        return self._outcome(error)

    async def fail(
        self,
        error: PipelineError,
        step: Optional[str],
        dead_letter: bool = False,
    ) -> AttemptOutcome:
        """-> failed, and straight on to dead_letter when `dead_letter` is set."""
        await self._lock()
        self._transition(AttemptStatus.FAILED)
        if dead_letter:
            self._transition(AttemptStatus.DEAD_LETTER)

        self._set_error(error, step)
        self.attempt.next_retry_at = None
        self.attempt.duration_seconds = self._elapsed_seconds(utcnow())

        await self.recorder.record_failure(
            error,
            step,
            metadata={
                "next_status": self.attempt.status,
                "retry_count": self.attempt.retry_count,
                "max_retries": self.max_retries,
            },
        )
        await self.db.commit()

        logger.error(
            "attempt_failed",
            attempt_id=str(self.attempt.id),
            status=self.attempt.status,
            error_type=error.error_type,
            failed_step=step,
            retry_count=self.attempt.retry_count,
        )
        return self._outcome(error)

    async def promote_to_dead_letter(self, reason: str) -> AttemptOutcome:
        """failed|retrying -> dead_letter without another cycle."""
        await self._lock()
        self._transition(AttemptStatus.DEAD_LETTER)
        self.attempt.next_retry_at = None
        await self.recorder.record_failure(
            OperationalFailure(reason, error_type="RetryBudgetExhausted"),
            self.attempt.failed_step,
            metadata={
                "next_status": AttemptStatus.DEAD_LETTER.value,
                "retry_count": self.attempt.retry_count,
                "max_retries": self.max_retries,
            },
        )
        await self.db.commit()
        logger.error(
            "attempt_dead_lettered",
            attempt_id=str(self.attempt.id),
            reason=reason,
            retry_count=self.attempt.retry_count,
        )
        return self._outcome()

    # ─── Administrative ───────────────────────────────────────

    async def mark_failed(
        self,
        error_type: str = MANUAL_FAILURE,
        message: Optional[str] = None,
    ) -> bool:
        """
        Force a non-terminal attempt to `failed`.

        Open events are closed as failed with `error_type`. Returns False
        (and writes nothing) when the attempt is already terminal, which is
        the normal outcome of a reaper/worker race.
        """
        await self._lock()
        if self.attempt.is_terminal:
            logger.info(
                "mark_failed_noop",
                attempt_id=str(self.attempt.id),
                status=self.attempt.status,
            )
            return False

        open_events = await self.event_repo.list_open(self.db, self.attempt.id)
        step = open_events[-1].event_type if open_events else self.attempt.status
        message = message or f"Attempt manually marked as failed at '{step}'"

        await self.recorder.force_fail_open(error_type, message)
        error = OperationalFailure(message, error_type=error_type)

        self._transition(AttemptStatus.FAILED)
        self._set_error(error, step)
        self.attempt.next_retry_at = None
        self.attempt.duration_seconds = self._elapsed_seconds(utcnow())
        await self.recorder.record_failure(
            error,
            step,
            metadata={"next_status": AttemptStatus.FAILED.value, "forced": True},
        )
        await self.db.commit()

        logger.warning(
            "attempt_marked_failed",
            attempt_id=str(self.attempt.id),
            error_type=error_type,
            failed_step=step,
            closed_events=len(open_events),
        )
        return True
