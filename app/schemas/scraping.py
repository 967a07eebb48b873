"""
Scraping pipeline schemas - requests and responses of the operational API.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import Field

from app.schemas.base import BaseSchema, IDSchema, TimestampSchema


# ── Requests ─────────────────────────────────────────────────────────────────


class EnqueueExtractionRequest(BaseSchema):
    job_listing_id: UUID
    force: bool = Field(False, description="Skip the active-attempt reuse guard")


class MarkFailedRequest(BaseSchema):
    message: Optional[str] = Field(None, max_length=2000)


# ── Attempts ─────────────────────────────────────────────────────────────────


class AttemptIdResponse(BaseSchema):
    attempt_id: UUID


class MarkFailedResponse(BaseSchema):
    attempt_id: UUID
    marked: bool
    status: str


class CleanupResponse(BaseSchema):
    count: int
    threshold_minutes: int


class AttemptDetail(IDSchema, TimestampSchema):
    """Full attempt row as seen by operators."""

    job_listing_id: UUID
    url: str
    domain: str
    status: str
    extraction_method: Optional[str] = None
    provider: Optional[str] = None
    http_status: Optional[int] = None
    confidence_score: Optional[float] = None
    low_confidence: bool = False
    duration_seconds: Optional[float] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    failed_step: Optional[str] = None
    retry_count: int = 0
    next_retry_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    needs_review: bool = False
    response_metadata: Optional[Dict[str, Any]] = None


# ── Timeline ─────────────────────────────────────────────────────────────────


class TimelineStep(BaseSchema):
    id: UUID
    step_order: int
    event_type: str
    status: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    input_payload: Optional[Dict[str, Any]] = None
    output_payload: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None


class TimelineResponse(BaseSchema):
    attempt_id: UUID
    status: str
    retry_count: int
    steps: List[TimelineStep]
    total_duration_ms: int
    successful: int
    failed: int
    skipped: int
    in_progress: int
    slowest_step: Optional[TimelineStep] = None
    first_failure: Optional[TimelineStep] = None


# ── Stats ────────────────────────────────────────────────────────────────────


class FieldRate(BaseSchema):
    attempts: int
    successes: int
    success_rate: float


class DomainStatsResponse(BaseSchema):
    domain: str
    window_days: int
    total_attempts: int
    attempts_by_status: Dict[str, int]
    success_rate: float
    avg_duration_seconds: Optional[float] = None
    dead_letter_count: int
    html_passes: int
    html_success_rate: float
    avg_extraction_rate: Optional[float] = None
    avg_html_duration_ms: Optional[float] = None
    field_rates: Dict[str, FieldRate]


class FieldStatsResponse(BaseSchema):
    window_days: int
    sample_size: int
    sample_limit: int
    fields: Dict[str, FieldRate]


class ProviderStat(BaseSchema):
    provider: str
    calls: int
    successes: int
    success_rate: float
    avg_latency_ms: Optional[float] = None
    avg_confidence: Optional[float] = None
    total_tokens: int
    total_cost_cents: float


class ProviderStatsResponse(BaseSchema):
    window_days: int
    providers: List[ProviderStat]
