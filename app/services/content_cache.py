"""
Content cache - fetched HTML keyed by normalized URL with a validity window.

Lookups return the newest snapshot whose `valid_until` is still in the
future. A miss fetches the page, cleans it and INSERTS a new row; existing
rows are never updated, so two workers racing on the same URL at worst
store two snapshots instead of overwriting each other.
Live fetches wait their turn on the per-domain pacer first.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.logging import get_logger
from app.models.base import utcnow
from app.models.scraped_job_listing_data import ScrapedJobListingData, content_hash, normalize_url
from app.models.scraping_attempt import extract_domain
from app.repositories.content_cache_repository import ContentCacheRepository
from app.scrapers.cleaner import HtmlCleaner
from app.scrapers.fetcher import HtmlFetcher
from app.scrapers.pacing import DomainPacer

logger = get_logger(__name__)


@dataclass
class CachedContent:
    html: str
    cleaned_html: str
    http_status: Optional[int]
    fetched_at: datetime
    content_hash: str
    from_cache: bool
    record: ScrapedJobListingData

    @classmethod
    def from_record(cls, record: ScrapedJobListingData, from_cache: bool) -> "CachedContent":
        return cls(
            html=record.raw_html,
            cleaned_html=record.cleaned_html or "",
            http_status=record.http_status,
            fetched_at=record.fetched_at,
            content_hash=record.content_hash,
            from_cache=from_cache,
            record=record,
        )


class ContentCache:
    """Read-through cache in front of HtmlFetcher."""

    def __init__(
        self,
        fetcher_factory: Callable[[], HtmlFetcher] = HtmlFetcher,
        cleaner: Optional[HtmlCleaner] = None,
        validity_days: Optional[int] = None,
        pacer: Optional[DomainPacer] = None,
    ):
        self.repo = ContentCacheRepository()
        self.fetcher_factory = fetcher_factory
        self.cleaner = cleaner or HtmlCleaner()
        self.validity_days = validity_days or settings.content_cache_validity_days
        self.pacer = pacer or DomainPacer()

    async def lookup(
        self,
        db: AsyncSession,
        url: str,
        now: Optional[datetime] = None,
    ) -> Optional[ScrapedJobListingData]:
        """Authoritative snapshot for `url`, or None."""
        return await self.repo.find_valid_for_url(db, normalize_url(url), now or utcnow())

    async def get_or_fetch(self, db: AsyncSession, url: str) -> CachedContent:
        """
        Return cached content for `url`, fetching and storing it on a miss.

        Raises FetchError when the live fetch fails. Flushes but does not
        commit; the caller owns the transaction.
        """
        normalized = normalize_url(url)
        now = utcnow()

        cached = await self.repo.find_valid_for_url(db, normalized, now)
        if cached:
            logger.info(
                "content_cache_hit",
                url=normalized,
                content_hash=cached.content_hash[:12],
                valid_until=cached.valid_until.isoformat(),
            )
            return CachedContent.from_record(cached, from_cache=True)

        await self.pacer.wait(extract_domain(url))
        async with self.fetcher_factory() as fetcher:
            result = await fetcher.fetch(url)

        cleaned = self.cleaner.clean(result.html)
        record = await self.repo.create(
            db,
            url=normalized,
            domain=extract_domain(url),
            raw_html=result.html,
            cleaned_html=cleaned,
            http_status=result.http_status,
            content_hash=content_hash(result.html),
            fetched_at=now,
            valid_until=ScrapedJobListingData.expiry_from(now, self.validity_days),
            fetch_metadata={
                "content_type": result.content_type,
                "final_url": result.final_url,
                "fetch_duration_ms": result.duration_ms,
                "html_size": len(result.html),
                "cleaned_size": len(cleaned),
            },
        )
        logger.info(
            "content_cache_stored",
            url=normalized,
            content_hash=record.content_hash[:12],
            html_size=len(result.html),
            cleaned_size=len(cleaned),
        )
        return CachedContent.from_record(record, from_cache=False)
