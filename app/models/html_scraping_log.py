"""
HtmlScrapingLog model - diagnostics for one HTML-based extraction pass.

Records, per tracked field, whether it was found, which selector matched and
a per-field confidence, plus the selectors tried. Aggregate counts and the
extraction rate are derived from `field_results` by `compute_metrics()`.
"""
import enum
import uuid
from typing import Optional

from sqlalchemy import Float, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel, JSONType

TRACKED_FIELDS = (
    "title",
    "company_name",
    "location",
    "remote_type",
    "salary_min",
    "salary_max",
    "salary_currency",
    "description",
    "requirements",
    "responsibilities",
    "benefits",
)

# Extraction rate at or above which a pass counts as a full success
SUCCESS_RATE = 0.7


class DiagnosticStatus(str, enum.Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class HtmlScrapingLog(BaseModel):
    """HTML scraping diagnostic entity."""

    __tablename__ = "html_scraping_logs"

    scraping_attempt_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("scraping_attempts.id"),
        nullable=True,
        index=True,
    )
    job_listing_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("job_listings.id"),
        nullable=True,
    )

    url: Mapped[str] = mapped_column(Text, nullable=False)
    domain: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    board_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    extractor_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Sizes
    html_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    cleaned_html_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    duration_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # {field: {success, value, selector_matched, confidence}}
    field_results: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    # {field: [selectors...]}
    selectors_tried: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    fields_attempted: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    fields_extracted: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    extraction_rate: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=DiagnosticStatus.FAILED.value,
        index=True,
    )
    error_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def compute_metrics(self, success_rate: float = SUCCESS_RATE) -> None:
        """Derive counts, extraction rate and status from field_results."""
        results = self.field_results or {}
        self.fields_attempted = len(results)
        self.fields_extracted = sum(
            1 for r in results.values() if isinstance(r, dict) and r.get("success")
        )
        if self.fields_attempted > 0:
            self.extraction_rate = self.fields_extracted / self.fields_attempted
        else:
            self.extraction_rate = 0.0

        if self.extraction_rate >= success_rate:
            self.status = DiagnosticStatus.SUCCESS.value
        elif self.extraction_rate > 0:
            self.status = DiagnosticStatus.PARTIAL.value
        else:
            self.status = DiagnosticStatus.FAILED.value

    def __repr__(self) -> str:
        return f"<HtmlScrapingLog {self.domain} {self.status} rate={self.extraction_rate}>"
