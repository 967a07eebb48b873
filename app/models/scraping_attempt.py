"""
ScrapingAttempt model - one fetch/extract cycle for one job listing.

Status is a closed set with an explicit transition table. Rows are never
deleted; once an attempt reaches a terminal status it is not mutated again
(failed is terminal for the pipeline but may still be promoted to
dead_letter).
"""
import enum
import uuid
from datetime import datetime
from typing import Dict, FrozenSet, Optional
from urllib.parse import urlparse

from sqlalchemy import Boolean, Float, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.core.exceptions import InvalidTransition
from app.models.base import BaseModel, JSONType, UTCDateTime


class AttemptStatus(str, enum.Enum):
    PENDING = "pending"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"
    DEAD_LETTER = "dead_letter"


class ExtractionMethod(str, enum.Enum):
    STRUCTURED = "structured"
    AI = "ai"
    FALLBACK = "fallback"


TRANSITIONS: Dict[AttemptStatus, FrozenSet[AttemptStatus]] = {
    AttemptStatus.PENDING: frozenset({AttemptStatus.FETCHING, AttemptStatus.FAILED}),
    AttemptStatus.FETCHING: frozenset(
        {AttemptStatus.EXTRACTING, AttemptStatus.RETRYING, AttemptStatus.FAILED}
    ),
    AttemptStatus.EXTRACTING: frozenset(
        {AttemptStatus.COMPLETED, AttemptStatus.RETRYING, AttemptStatus.FAILED}
    ),
    AttemptStatus.RETRYING: frozenset(
        {
            AttemptStatus.FETCHING,
            AttemptStatus.EXTRACTING,
            AttemptStatus.DEAD_LETTER,
            AttemptStatus.FAILED,
        }
    ),
    AttemptStatus.FAILED: frozenset({AttemptStatus.DEAD_LETTER}),
    AttemptStatus.COMPLETED: frozenset(),
    AttemptStatus.DEAD_LETTER: frozenset(),
}

# Statuses a worker may still be acting on
ACTIVE_STATUSES = frozenset(
    {
        AttemptStatus.PENDING,
        AttemptStatus.FETCHING,
        AttemptStatus.EXTRACTING,
        AttemptStatus.RETRYING,
    }
)
TERMINAL_STATUSES = frozenset(
    {AttemptStatus.COMPLETED, AttemptStatus.FAILED, AttemptStatus.DEAD_LETTER}
)

# Retry count at which a failed attempt is flagged for a human
REVIEW_RETRY_COUNT = 3


def extract_domain(url: str) -> str:
    host = urlparse(url).hostname or ""
    return host.lower().removeprefix("www.")


class ScrapingAttempt(BaseModel):
    """Scraping attempt entity."""

    __tablename__ = "scraping_attempts"

    __table_args__ = (
        Index("ix_scraping_attempts_listing_status", "job_listing_id", "status"),
        Index("ix_scraping_attempts_domain_created", "domain", "created_at"),
    )

    job_listing_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("job_listings.id"),
        nullable=False,
        index=True,
    )
    scraped_job_listing_data_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("scraped_job_listing_data.id"),
        nullable=True,
    )

    url: Mapped[str] = mapped_column(Text, nullable=False)
    domain: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AttemptStatus.PENDING.value,
        index=True,
    )

    # Outcome
    extraction_method: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    provider: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    http_status: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    confidence_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    low_confidence: Mapped[bool] = mapped_column(Boolean, default=False)
    duration_seconds: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Failure details
    error_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    failed_step: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Retry bookkeeping
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    next_retry_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    request_metadata: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    response_metadata: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    # ─── Lifecycle helpers ─────────────────────────────────────

    @property
    def status_enum(self) -> AttemptStatus:
        return AttemptStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.status_enum in TERMINAL_STATUSES

    @property
    def needs_review(self) -> bool:
        if self.status == AttemptStatus.DEAD_LETTER.value:
            return True
        return self.status == AttemptStatus.FAILED.value and self.retry_count >= REVIEW_RETRY_COUNT

    def can_transition_to(self, target: AttemptStatus) -> bool:
        return target in TRANSITIONS[self.status_enum]

    def transition_to(self, target: AttemptStatus) -> None:
        """Move to `target` or raise InvalidTransition. Does not flush."""
        if not self.can_transition_to(target):
            raise InvalidTransition(self.status, target.value)
        self.status = target.value

    def __repr__(self) -> str:
        return f"<ScrapingAttempt {self.status} {self.domain} retry={self.retry_count}>"
