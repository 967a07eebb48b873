"""
Job listing repository - data access for JobListing.
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.job_listing import JobListing
from app.repositories.base import BaseRepository


class JobListingRepository(BaseRepository[JobListing]):
    def __init__(self):
        super().__init__(JobListing)

    async def find_by_url(self, db: AsyncSession, url: str) -> Optional[JobListing]:
        result = await db.execute(
            select(JobListing).where(JobListing.url == url).limit(1)
        )
        return result.scalar_one_or_none()
