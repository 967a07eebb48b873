"""
HTML log repository - data access for HtmlScrapingLog.
"""
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.html_scraping_log import HtmlScrapingLog
from app.repositories.base import BaseRepository


class HtmlLogRepository(BaseRepository[HtmlScrapingLog]):
    def __init__(self):
        super().__init__(HtmlScrapingLog)

    async def recent(
        self,
        db: AsyncSession,
        *,
        since: datetime,
        limit: int,
        domain: Optional[str] = None,
    ) -> List[HtmlScrapingLog]:
        """Newest logs in the window, capped at `limit` rows."""
        query = (
            select(HtmlScrapingLog)
            .where(HtmlScrapingLog.created_at >= since)
            .order_by(HtmlScrapingLog.created_at.desc())
            .limit(limit)
        )
        if domain:
            query = query.where(HtmlScrapingLog.domain == domain)
        result = await db.execute(query)
        return list(result.scalars().all())

    async def count_by_status(
        self,
        db: AsyncSession,
        *,
        since: datetime,
        domain: Optional[str] = None,
    ) -> Dict[str, int]:
        query = (
            select(HtmlScrapingLog.status, func.count())
            .where(HtmlScrapingLog.created_at >= since)
            .group_by(HtmlScrapingLog.status)
        )
        if domain:
            query = query.where(HtmlScrapingLog.domain == domain)
        result = await db.execute(query)
        return {status: count for status, count in result.all()}

    async def averages(
        self,
        db: AsyncSession,
        *,
        since: datetime,
        domain: Optional[str] = None,
    ) -> Dict[str, Optional[float]]:
        query = select(
            func.avg(HtmlScrapingLog.extraction_rate),
            func.avg(HtmlScrapingLog.duration_ms),
        ).where(HtmlScrapingLog.created_at >= since)
        if domain:
            query = query.where(HtmlScrapingLog.domain == domain)
        result = await db.execute(query)
        avg_rate, avg_duration = result.one()
        return {
            "avg_extraction_rate": float(avg_rate) if avg_rate is not None else None,
            "avg_duration_ms": float(avg_duration) if avg_duration is not None else None,
        }
