"""
Scraping service - the operational surface of the extraction pipeline.

Callable from any boundary (HTTP route, Celery task, seed script):
  enqueue_extraction  - start an attempt for a job listing
  mark_failed         - administrative forced failure (no-op when terminal)
  retry_attempt       - new attempt for a failed one
  get_attempt         - attempt detail

Attempts are dispatched to the worker AFTER the commit, so the task never
looks up a row that is not there yet.
"""
from datetime import timedelta
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    AttemptNotFoundException,
    AttemptNotRetryableException,
    JobListingNotFoundException,
)
from app.core.logging import get_logger
from app.models.base import utcnow
from app.models.scraping_attempt import AttemptStatus, ScrapingAttempt, extract_domain
from app.repositories.attempt_repository import AttemptRepository
from app.repositories.job_listing_repository import JobListingRepository
from app.services.attempt_lifecycle import MANUAL_FAILURE, AttemptLifecycle

logger = get_logger(__name__)

Dispatcher = Callable[[UUID], None]


def celery_dispatcher(attempt_id: UUID) -> None:
    """Queue one pipeline cycle on the Celery worker."""
    from app.workers.tasks import run_scraping_attempt

    run_scraping_attempt.delay(str(attempt_id))


class ScrapingService:
    """Creates, fails and retries scraping attempts."""

    def __init__(self, dispatcher: Optional[Dispatcher] = None):
        self.attempt_repo = AttemptRepository()
        self.listing_repo = JobListingRepository()
        self.dispatch = dispatcher or celery_dispatcher

    async def enqueue_extraction(
        self,
        db: AsyncSession,
        job_listing_id: UUID,
        force: bool = False,
        request_metadata: Optional[dict] = None,
    ) -> UUID:
        """
        Start extraction for a job listing; returns the attempt id.

        Soft single-flight: an active attempt for the same listing that
        moved within the last `active_attempt_reuse_minutes` is returned
        instead of creating a duplicate, unless `force` is set.

        Raises:
            JobListingNotFoundException: If the listing doesn't exist.
        """
        listing = await self.listing_repo.get_by_id(db, job_listing_id)
        if not listing:
            raise JobListingNotFoundException()

        if not force:
            fresh_after = utcnow() - timedelta(minutes=settings.active_attempt_reuse_minutes)
            active = await self.attempt_repo.find_active_for_listing(db, listing.id, fresh_after)
            if active:
                logger.info(
                    "attempt_reused",
                    attempt_id=str(active.id),
                    job_listing_id=str(listing.id),
                    status=active.status,
                )
                return active.id

        attempt = await self._create_attempt(db, listing.id, listing.url, request_metadata)
        await db.commit()
        self.dispatch(attempt.id)

        logger.info(
            "attempt_enqueued",
            attempt_id=str(attempt.id),
            job_listing_id=str(listing.id),
            domain=attempt.domain,
        )
        return attempt.id

    async def get_attempt(self, db: AsyncSession, attempt_id: UUID) -> ScrapingAttempt:
        attempt = await self.attempt_repo.get_by_id(db, attempt_id)
        if not attempt:
            raise AttemptNotFoundException()
        return attempt

    async def mark_failed(
        self,
        db: AsyncSession,
        attempt_id: UUID,
        error_type: str = MANUAL_FAILURE,
        message: Optional[str] = None,
    ) -> bool:
        """
        Force an attempt to `failed`. Returns False when it was already terminal.

        Raises:
            AttemptNotFoundException: If the attempt doesn't exist.
        """
        attempt = await self.attempt_repo.get_for_update(db, attempt_id)
        if not attempt:
            raise AttemptNotFoundException()
        return await AttemptLifecycle(db, attempt).mark_failed(error_type, message)

    async def retry_attempt(self, db: AsyncSession, attempt_id: UUID) -> UUID:
        """
        Create and dispatch a fresh attempt for a failed one.

        The failed attempt itself is never touched.

        Raises:
            AttemptNotFoundException: If the attempt doesn't exist.
            AttemptNotRetryableException: If it isn't in `failed`.
        """
        attempt = await self.attempt_repo.get_by_id(db, attempt_id)
        if not attempt:
            raise AttemptNotFoundException()
        if attempt.status != AttemptStatus.FAILED.value:
            raise AttemptNotRetryableException(attempt.status)

        new_attempt = await self._create_attempt(
            db,
            attempt.job_listing_id,
            attempt.url,
            {"retry_of": str(attempt.id)},
        )
        await db.commit()
        self.dispatch(new_attempt.id)

        logger.info(
            "attempt_retried",
            attempt_id=str(attempt.id),
            new_attempt_id=str(new_attempt.id),
        )
        return new_attempt.id

    async def _create_attempt(
        self,
        db: AsyncSession,
        job_listing_id: UUID,
        url: str,
        request_metadata: Optional[dict],
    ) -> ScrapingAttempt:
        return await self.attempt_repo.create(
            db,
            job_listing_id=job_listing_id,
            url=url,
            domain=extract_domain(url),
            status=AttemptStatus.PENDING.value,
            retry_count=0,
            request_metadata=request_metadata,
        )
