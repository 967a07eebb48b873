"""
JobListing model - the posting the pipeline enriches.

Listings are created by the wider product (a user pastes a URL, an import
job discovers one). The extraction pipeline only fills in the fields below
once an attempt completes.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import Boolean, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel, UTCDateTime

# Fields copied from an accepted extraction result onto the listing
EXTRACTED_FIELDS = (
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

_SHORT_FIELDS = {"title": 255, "company_name": 255, "location": 255, "remote_type": 20, "salary_currency": 10}


class JobListing(BaseModel):
    """Job listing entity."""

    __tablename__ = "job_listings"

    url: Mapped[str] = mapped_column(Text, nullable=False)

    # Extracted fields
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    company_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    remote_type: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
    )  # 'remote', 'hybrid', 'on_site'
    salary_min: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    salary_max: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    salary_currency: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    requirements: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    responsibilities: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    benefits: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Extraction bookkeeping
    extraction_confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    low_confidence: Mapped[bool] = mapped_column(Boolean, default=False)
    last_extracted_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )

    def apply_extraction(self, data: Dict[str, Any]) -> list:
        """Copy non-empty extracted values onto the listing; returns updated field names."""
        updated = []
        for name in EXTRACTED_FIELDS:
            value = data.get(name)
            if value in (None, "", []):
                continue
            if isinstance(value, list):
                value = "\n".join(str(v) for v in value)
            if name in _SHORT_FIELDS:
                value = str(value)[: _SHORT_FIELDS[name]]
            setattr(self, name, value)
            updated.append(name)
        return updated

    def __repr__(self) -> str:
        return f"<JobListing {self.title or self.url}>"
