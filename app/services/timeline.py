"""
Timeline reconstruction - read-side projection over an attempt's events.

build_timeline() is pure: it takes event rows (already ordered or not) and
never touches the database, so it can be tested with plain objects.
"""
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AttemptNotFoundException
from app.models.scraping_event import EventStatus, ScrapingEvent
from app.repositories.attempt_repository import AttemptRepository
from app.repositories.event_repository import EventRepository


def _step(event: ScrapingEvent) -> Dict[str, Any]:
    return {
        "id": event.id,
        "step_order": event.step_order,
        "event_type": event.event_type,
        "status": event.status,
        "started_at": event.started_at,
        "completed_at": event.completed_at,
        "duration_ms": event.duration_ms,
        "error_type": event.error_type,
        "error_message": event.error_message,
        "input_payload": event.input_payload,
        "output_payload": event.output_payload,
        "metadata": event.extra_data,
    }


def build_timeline(events: Iterable[ScrapingEvent]) -> Dict[str, Any]:
    """
    Steps in step order plus summary figures.

    Missing durations count as zero. `slowest_step` ignores steps with no
    duration; `first_failure` is the lowest-ordered failed step.
    """
    steps: List[Dict[str, Any]] = [_step(e) for e in sorted(events, key=lambda e: e.step_order)]

    counts = {status.value: 0 for status in EventStatus}
    for step in steps:
        counts[step["status"]] = counts.get(step["status"], 0) + 1

    timed = [s for s in steps if s["duration_ms"] is not None]
    slowest: Optional[Dict[str, Any]] = max(timed, key=lambda s: s["duration_ms"]) if timed else None
    first_failure = next((s for s in steps if s["status"] == EventStatus.FAILED.value), None)

    return {
        "steps": steps,
        "total_duration_ms": sum(s["duration_ms"] or 0 for s in steps),
        "successful": counts[EventStatus.SUCCESS.value],
        "failed": counts[EventStatus.FAILED.value],
        "skipped": counts[EventStatus.SKIPPED.value],
        "in_progress": counts[EventStatus.STARTED.value],
        "slowest_step": slowest,
        "first_failure": first_failure,
    }


async def attempt_timeline(db: AsyncSession, attempt_id: UUID) -> Dict[str, Any]:
    """Load an attempt's events and project them into a timeline."""
    attempt = await AttemptRepository().get_by_id(db, attempt_id)
    if not attempt:
        raise AttemptNotFoundException()

    events = await EventRepository().list_for_attempt(db, attempt_id)
    timeline = build_timeline(events)
    timeline.update(
        attempt_id=attempt.id,
        status=attempt.status,
        retry_count=attempt.retry_count,
    )
    return timeline
