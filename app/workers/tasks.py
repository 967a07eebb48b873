"""
Celery tasks for background processing.

ARCHITECTURE RULE: Same as routes, tasks are thin entry points.
They do exactly 3 things:
  1. Create a DB session (since we're outside FastAPI's request cycle)
  2. Call a service method
  3. Return the result

Retry cycles are scheduled by the attempt lifecycle, not by Celery's own
retry machinery: when a cycle ends in `retrying` the task re-enqueues
itself with the backoff the lifecycle computed.
"""
import asyncio
from uuid import UUID

from app.workers.celery_app import celery_app
from app.core.database import async_session_maker
from app.core.logging import get_logger

logger = get_logger(__name__)


def run_async(coro):
    """
    Helper to run async code in sync Celery tasks.

    Celery workers are synchronous. Our services are async (because
    SQLAlchemy async requires it). This bridge creates an event loop,
    runs the coroutine, and cleans up.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@celery_app.task(bind=True, acks_late=True)
def run_scraping_attempt(self, attempt_id: str):
    """
    Run one pipeline cycle for an attempt.

    Pipeline: fetch (cached) -> structured extractors -> AI providers -> complete | retry | dead-letter
    """
    outcome = run_async(_run_scraping_attempt(attempt_id))
    if outcome["should_retry"]:
        run_scraping_attempt.apply_async(
            args=[attempt_id],
            countdown=outcome["retry_in_seconds"] or 0,
        )
        logger.info(
            "attempt_cycle_requeued",
            attempt_id=attempt_id,
            countdown=outcome["retry_in_seconds"],
        )
    return outcome


async def _run_scraping_attempt(attempt_id: str) -> dict:
    """Async implementation - delegates to ExtractionPipeline."""
    from app.services.extraction_pipeline import ExtractionPipeline

    pipeline = ExtractionPipeline()

    async with async_session_maker() as db:
        outcome = await pipeline.run(db, UUID(attempt_id))
        return {
            "attempt_id": attempt_id,
            "status": outcome.status,
            "should_retry": outcome.should_retry,
            "retry_in_seconds": outcome.retry_in_seconds,
            "error_type": outcome.error_type,
        }


@celery_app.task
def mark_attempt_failed(attempt_id: str, error_type: str = "ManuallyMarkedFailed", message: str = None):
    """
    Administrative forced failure.

    A no-op (returns marked=False) when the attempt is already terminal.
    """
    return run_async(_mark_attempt_failed(attempt_id, error_type, message))


async def _mark_attempt_failed(attempt_id: str, error_type: str, message: str = None) -> dict:
    marked = await mark_failed_in_own_session(UUID(attempt_id), error_type, message)
    return {"attempt_id": attempt_id, "marked": marked}


async def mark_failed_in_own_session(attempt_id: UUID, error_type: str, message: str = None) -> bool:
    """The administrative mark-failed command, one session per attempt. The reaper uses it too."""
    from app.services.scraping_service import ScrapingService

    async with async_session_maker() as db:
        return await ScrapingService().mark_failed(db, attempt_id, error_type, message)
