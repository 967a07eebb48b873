"""
ScrapedJobListingData model - cached fetch result for a URL.

Rows are insert-only: a cache miss stores a new snapshot with a fresh
validity window instead of updating an older one, so several historical
snapshots of one URL can coexist. The newest unexpired one wins.
"""
import hashlib
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel, JSONType, UTCDateTime, utcnow

VALIDITY_PERIOD_DAYS = 30


TRACKING_PARAMS = frozenset({"ref", "referrer", "source", "src", "gclid", "fbclid", "mc_cid", "mc_eid", "trk"})


def _is_tracking_param(name: str) -> bool:
    name = name.lower()
    return name.startswith("utm_") or name in TRACKING_PARAMS


def normalize_url(url: str) -> str:
    """
    Cache key for a posting URL.

    Scheme and host are lower-cased, the fragment and tracking parameters
    are dropped. The path keeps its case and the remaining query string is
    kept (sorted) because boards identify postings with it
    (`?gh_jid=`, `?jk=`, `?currentJobId=`).
    """
    parsed = urlsplit(url.strip())
    scheme = (parsed.scheme or "https").lower()
    host = (parsed.netloc or "").lower()
    path = (parsed.path or "").rstrip("/")
    params = sorted(
        (name, value)
        for name, value in parse_qsl(parsed.query, keep_blank_values=True)
        if not _is_tracking_param(name)
    )
    query = f"?{urlencode(params)}" if params else ""
    return f"{scheme}://{host}{path}{query}"


def content_hash(html: str) -> str:
    return hashlib.sha256(html.encode("utf-8")).hexdigest()


class ScrapedJobListingData(BaseModel):
    """Cached HTML snapshot entity."""

    __tablename__ = "scraped_job_listing_data"

    __table_args__ = (
        Index("ix_scraped_data_url_valid_until", "url", "valid_until"),
    )

    url: Mapped[str] = mapped_column(Text, nullable=False)
    domain: Mapped[str] = mapped_column(String(255), nullable=False)

    raw_html: Mapped[str] = mapped_column(Text, nullable=False)
    cleaned_html: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    http_status: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    fetched_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    valid_until: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    fetch_metadata: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    @staticmethod
    def expiry_from(fetched_at: datetime, days: int = VALIDITY_PERIOD_DAYS) -> datetime:
        return fetched_at + timedelta(days=days)

    def __repr__(self) -> str:
        return f"<ScrapedJobListingData {self.url} hash={self.content_hash[:8]}>"
