"""
Attempt repository - data access for ScrapingAttempt.
"""
from datetime import datetime
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.scraping_attempt import ACTIVE_STATUSES, AttemptStatus, ScrapingAttempt
from app.repositories.base import BaseRepository


class AttemptRepository(BaseRepository[ScrapingAttempt]):
    def __init__(self):
        super().__init__(ScrapingAttempt)

    async def find_active_for_listing(
        self,
        db: AsyncSession,
        job_listing_id: UUID,
        updated_after: datetime,
    ) -> Optional[ScrapingAttempt]:
        """Most recently touched non-terminal attempt for a listing, if fresh."""
        result = await db.execute(
            select(ScrapingAttempt)
            .where(
                ScrapingAttempt.job_listing_id == job_listing_id,
                ScrapingAttempt.status.in_([s.value for s in ACTIVE_STATUSES]),
                ScrapingAttempt.updated_at >= updated_after,
            )
            .order_by(ScrapingAttempt.updated_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_stale(
        self,
        db: AsyncSession,
        statuses: Iterable[AttemptStatus],
        updated_before: datetime,
        limit: int = 500,
    ) -> List[ScrapingAttempt]:
        """
        Attempts sitting in one of `statuses` since before `updated_before`,
        oldest first. A retrying attempt only counts once its scheduled
        retry time is also before `updated_before`.
        """
        result = await db.execute(
            select(ScrapingAttempt)
            .where(
                ScrapingAttempt.status.in_([s.value for s in statuses]),
                ScrapingAttempt.updated_at < updated_before,
                or_(
                    ScrapingAttempt.status != AttemptStatus.RETRYING.value,
                    ScrapingAttempt.next_retry_at.is_(None),
                    ScrapingAttempt.next_retry_at < updated_before,
                ),
            )
            .order_by(ScrapingAttempt.updated_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count_by_status(
        self,
        db: AsyncSession,
        *,
        since: datetime,
        domain: Optional[str] = None,
    ) -> Dict[str, int]:
        query = (
            select(ScrapingAttempt.status, func.count())
            .where(ScrapingAttempt.created_at >= since)
            .group_by(ScrapingAttempt.status)
        )
        if domain:
            query = query.where(ScrapingAttempt.domain == domain)
        result = await db.execute(query)
        return {status: count for status, count in result.all()}

    async def average_duration(
        self,
        db: AsyncSession,
        *,
        since: datetime,
        domain: Optional[str] = None,
    ) -> Optional[float]:
        query = select(func.avg(ScrapingAttempt.duration_seconds)).where(
            ScrapingAttempt.created_at >= since,
            ScrapingAttempt.duration_seconds.is_not(None),
        )
        if domain:
            query = query.where(ScrapingAttempt.domain == domain)
        result = await db.execute(query)
        value = result.scalar()
        return float(value) if value is not None else None

    async def count_dead_letter(self, db: AsyncSession) -> int:
        result = await db.execute(
            select(func.count())
            .select_from(ScrapingAttempt)
            .where(ScrapingAttempt.status == AttemptStatus.DEAD_LETTER.value)
        )
        return result.scalar() or 0
