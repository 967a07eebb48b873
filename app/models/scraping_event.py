"""
ScrapingEvent model - one step in an attempt's pipeline.

Events are ordered by `step_order`, a per-attempt counter. `completed_at`
is only set once the status leaves `started`.
"""
import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel, JSONType, UTCDateTime


class EventType(str, enum.Enum):
    PERMISSION_CHECK = "permission_check"
    HTML_FETCH = "html_fetch"
    STRUCTURED_EXTRACTION = "structured_extraction"
    AI_EXTRACTION = "ai_extraction"
    COMPLETION = "completion"
    FAILURE = "failure"


class EventStatus(str, enum.Enum):
    STARTED = "started"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class ScrapingEvent(BaseModel):
    """Scraping event entity."""

    __tablename__ = "scraping_events"

    __table_args__ = (
        UniqueConstraint("scraping_attempt_id", "step_order", name="uq_event_attempt_step"),
    )

    scraping_attempt_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("scraping_attempts.id"),
        nullable=False,
        index=True,
    )

    event_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=EventStatus.STARTED.value,
    )
    step_order: Mapped[int] = mapped_column(Integer, nullable=False)

    started_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    duration_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    input_payload: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    output_payload: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    error_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Named extra_data because 'metadata' is reserved by SQLAlchemy
    extra_data: Mapped[Optional[dict]] = mapped_column("metadata", JSONType, nullable=True)

    @property
    def is_open(self) -> bool:
        return self.status == EventStatus.STARTED.value

    def __repr__(self) -> str:
        return f"<ScrapingEvent #{self.step_order} {self.event_type} {self.status}>"
