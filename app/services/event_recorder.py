"""
Event recorder - appends ScrapingEvent rows for one attempt.

step_order is one past the highest step already stored for the attempt,
so a retry cycle (new worker, new recorder) continues the sequence and an
operator writing through a second recorder never collides with the worker.

The recorder only adds and flushes. Committing is left to the caller so a
status change and the event that records it land in the same transaction.
"""
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, AsyncIterator, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import EventClosed, PipelineError
from app.core.logging import get_logger
from app.models.base import utcnow
from app.models.scraping_attempt import ScrapingAttempt
from app.models.scraping_event import EventStatus, EventType, ScrapingEvent
from app.repositories.attempt_repository import AttemptRepository
from app.repositories.event_repository import EventRepository

logger = get_logger(__name__)

TRUNCATION_MARKER = "... [TRUNCATED]"


def sanitize_payload(value: Any, max_chars: int, max_items: int) -> Any:
    """Make a payload JSON-safe and bounded in size."""
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        if len(value) > max_chars:
            return value[:max_chars] + TRUNCATION_MARKER
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {
            str(k): sanitize_payload(v, max_chars, max_items)
            for k, v in list(value.items())[:max_items]
        }
    if isinstance(value, (list, tuple, set, frozenset)):
        return [sanitize_payload(v, max_chars, max_items) for v in list(value)[:max_items]]
    return sanitize_payload(str(value), max_chars, max_items)


def _error_fields(error: Optional[BaseException]) -> Dict[str, Optional[str]]:
    if error is None:
        return {"error_type": None, "error_message": None}
    if isinstance(error, PipelineError):
        error_type = error.error_type
    else:
        error_type = type(error).__name__
    return {"error_type": error_type, "error_message": str(error)[:2000] or error_type}


@dataclass
class EventHandle:
    """What the body of `EventRecorder.record()` can fill in."""

    event: ScrapingEvent
    output: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)
    status: EventStatus = EventStatus.SUCCESS


class EventRecorder:
    """Writes the ordered step log of one attempt."""

    def __init__(
        self,
        db: AsyncSession,
        attempt: ScrapingAttempt,
        max_chars: Optional[int] = None,
        max_items: Optional[int] = None,
    ):
        self.db = db
        self.attempt = attempt
        self.repo = EventRepository()
        self.attempt_repo = AttemptRepository()
        self.max_chars = max_chars or settings.event_payload_max_chars
        self.max_items = max_items or settings.event_payload_max_items

    def _clean(self, payload: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if payload is None:
            return None
        return sanitize_payload(payload, self.max_chars, self.max_items)

    async def next_step_order(self) -> int:
        # Re-read every time: mark_failed writes through its own recorder
        return await self.repo.max_step_order(self.db, self.attempt.id) + 1

    async def ensure_attempt_active(self) -> None:
        """
        Lock the attempt row and refuse to open another step once the
        attempt is terminal. The lock is held until the caller commits the
        step it opens, so a concurrent mark_failed lands after it.
        """
        fresh = await self.attempt_repo.get_for_update(self.db, self.attempt.id)
        if fresh is not None:
            self.attempt = fresh
        if self.attempt.is_terminal:
            raise EventClosed(f"Attempt is already {self.attempt.status}")

    # ─── Core contract ────────────────────────────────────────

    async def record_start(
        self,
        event_type: EventType,
        input_payload: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ScrapingEvent:
        """Append a `started` event and return it as the handle for record_end."""
        event = ScrapingEvent(
            scraping_attempt_id=self.attempt.id,
            event_type=EventType(event_type).value,
            status=EventStatus.STARTED.value,
            step_order=await self.next_step_order(),
            started_at=utcnow(),
            input_payload=self._clean(input_payload),
            extra_data=self._clean(metadata),
        )
        self.db.add(event)
        await self.db.flush()
        return event

    async def record_end(
        self,
        event: ScrapingEvent,
        status: EventStatus,
        output_payload: Optional[Dict[str, Any]] = None,
        error: Optional[BaseException] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ScrapingEvent:
        """Close a started event. Closed events are immutable."""
        status = EventStatus(status)
        if status == EventStatus.STARTED:
            raise ValueError("record_end needs a final status")
        # Another writer (mark_failed) may have closed it since we started
        await self.db.refresh(event, attribute_names=["status"])
        if not event.is_open:
            raise EventClosed(
                f"Event #{event.step_order} ({event.event_type}) is already {event.status}"
            )

        now = utcnow()
        event.status = status.value
        event.completed_at = now
        event.duration_ms = max(0, int((now - event.started_at).total_seconds() * 1000))
        event.output_payload = self._clean(output_payload)
        fields = _error_fields(error)
        event.error_type = fields["error_type"]
        event.error_message = fields["error_message"]
        if metadata:
            event.extra_data = self._clean({**(event.extra_data or {}), **metadata})
        await self.db.flush()
        return event

    @asynccontextmanager
    async def record(
        self,
        event_type: EventType,
        input_payload: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[EventHandle]:
        """
        Wrap a step in a started/ended event.

            async with recorder.record(EventType.HTML_FETCH, {"url": url}) as step:
                ...
                step.output["http_status"] = 200

        The event ends as `step.status` (success by default); an exception
        ends it as failed with the exception's class name, then propagates.
        """
        event = await self.record_start(event_type, input_payload, metadata)
        handle = EventHandle(event=event)
        try:
            yield handle
        except Exception as exc:
            await self.record_end(
                event,
                EventStatus.FAILED,
                output_payload=handle.output or None,
                error=exc,
                metadata=handle.metadata or None,
            )
            raise
        await self.record_end(
            event,
            handle.status,
            output_payload=handle.output or None,
            metadata=handle.metadata or None,
        )

    # ─── Convenience ──────────────────────────────────────────

    async def record_instant(
        self,
        event_type: EventType,
        status: EventStatus,
        input_payload: Optional[Dict[str, Any]] = None,
        output_payload: Optional[Dict[str, Any]] = None,
        error: Optional[BaseException] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ScrapingEvent:
        event = await self.record_start(event_type, input_payload, metadata)
        return await self.record_end(event, status, output_payload, error)

    async def record_skipped(
        self,
        event_type: EventType,
        reason: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ScrapingEvent:
        return await self.record_instant(
            event_type,
            EventStatus.SKIPPED,
            output_payload={"reason": reason},
            metadata=metadata,
        )

    async def record_completion(
        self,
        output_payload: Dict[str, Any],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ScrapingEvent:
        return await self.record_instant(
            EventType.COMPLETION,
            EventStatus.SUCCESS,
            output_payload=output_payload,
            metadata=metadata,
        )

    async def record_failure(
        self,
        error: BaseException,
        step: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ScrapingEvent:
        return await self.record_instant(
            EventType.FAILURE,
            EventStatus.FAILED,
            input_payload={"failed_step": step} if step else None,
            error=error,
            metadata=metadata,
        )

    async def force_fail_open(self, error_type: str, message: str) -> int:
        """
        Administrative override: close every `started` event as failed.

        Returns the number of events closed.
        """
        open_events = await self.repo.list_open(self.db, self.attempt.id)
        now = utcnow()
        for event in open_events:
            event.status = EventStatus.FAILED.value
            event.completed_at = now
            event.duration_ms = max(0, int((now - event.started_at).total_seconds() * 1000))
            event.error_type = error_type
            event.error_message = message
        if open_events:
            await self.db.flush()
            logger.info(
                "events_force_failed",
                attempt_id=str(self.attempt.id),
                count=len(open_events),
                error_type=error_type,
            )
        return len(open_events)
