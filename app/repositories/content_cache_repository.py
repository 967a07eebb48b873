"""
Content cache repository - data access for ScrapedJobListingData.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.scraped_job_listing_data import ScrapedJobListingData
from app.repositories.base import BaseRepository


class ContentCacheRepository(BaseRepository[ScrapedJobListingData]):
    def __init__(self):
        super().__init__(ScrapedJobListingData)

    async def find_valid_for_url(
        self,
        db: AsyncSession,
        normalized_url: str,
        now: datetime,
    ) -> Optional[ScrapedJobListingData]:
        """Newest snapshot for the URL whose validity window is still open."""
        result = await db.execute(
            select(ScrapedJobListingData)
            .where(
                ScrapedJobListingData.url == normalized_url,
                ScrapedJobListingData.valid_until > now,
            )
            .order_by(
                ScrapedJobListingData.valid_until.desc(),
                ScrapedJobListingData.fetched_at.desc(),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()
