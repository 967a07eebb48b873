"""
Event repository - data access for ScrapingEvent.
"""
from typing import List
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.scraping_event import EventStatus, ScrapingEvent
from app.repositories.base import BaseRepository


class EventRepository(BaseRepository[ScrapingEvent]):
    def __init__(self):
        super().__init__(ScrapingEvent)

    async def list_for_attempt(
        self,
        db: AsyncSession,
        attempt_id: UUID,
    ) -> List[ScrapingEvent]:
        """All events of an attempt in step order."""
        result = await db.execute(
            select(ScrapingEvent)
            .where(ScrapingEvent.scraping_attempt_id == attempt_id)
            .order_by(ScrapingEvent.step_order.asc())
        )
        return list(result.scalars().all())

    async def list_open(
        self,
        db: AsyncSession,
        attempt_id: UUID,
    ) -> List[ScrapingEvent]:
        """Events still in `started`."""
        result = await db.execute(
            select(ScrapingEvent)
            .where(
                ScrapingEvent.scraping_attempt_id == attempt_id,
                ScrapingEvent.status == EventStatus.STARTED.value,
            )
            .order_by(ScrapingEvent.step_order.asc())
        )
        return list(result.scalars().all())

    async def max_step_order(
        self,
        db: AsyncSession,
        attempt_id: UUID,
    ) -> int:
        result = await db.execute(
            select(func.max(ScrapingEvent.step_order)).where(
                ScrapingEvent.scraping_attempt_id == attempt_id
            )
        )
        return result.scalar() or 0
