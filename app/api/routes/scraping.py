"""
Scraping routes - thin HTTP adapter over the extraction pipeline services.

Authentication is handled upstream (internal admin network); these routes
only translate HTTP to service calls.
"""
from typing import Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.rate_limit import RATE_ADMIN, RATE_ENQUEUE, limiter
from app.schemas.base import ErrorResponse
from app.schemas.scraping import (
    AttemptDetail,
    AttemptIdResponse,
    CleanupResponse,
    DomainStatsResponse,
    EnqueueExtractionRequest,
    FieldStatsResponse,
    MarkFailedRequest,
    MarkFailedResponse,
    ProviderStatsResponse,
    TimelineResponse,
)
from app.scrapers.registry import list_extractors
from app.services.attempt_lifecycle import MANUAL_FAILURE
from app.services.metrics_service import MetricsService
from app.services.reaper_service import ReaperService
from app.services.scraping_service import ScrapingService
from app.services.timeline import attempt_timeline

router = APIRouter(
    prefix="/scraping",
    tags=["scraping"],
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)


def get_scraping_service() -> ScrapingService:
    """Overridable in tests to swap the Celery dispatcher."""
    return ScrapingService()


# ── Attempts ─────────────────────────────────────────────────────────────────


@router.post(
    "/attempts",
    response_model=AttemptIdResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
@limiter.limit(RATE_ENQUEUE)
async def enqueue_extraction(
    request: Request,
    payload: EnqueueExtractionRequest,
    db: AsyncSession = Depends(get_db),
    service: ScrapingService = Depends(get_scraping_service),
):
    """Start extraction for a job listing (or return its running attempt)."""
    attempt_id = await service.enqueue_extraction(db, payload.job_listing_id, force=payload.force)
    return AttemptIdResponse(attempt_id=attempt_id)


@router.post("/attempts/cleanup-stuck", response_model=CleanupResponse)
@limiter.limit(RATE_ADMIN)
async def cleanup_stuck_attempts(
    request: Request,
    threshold_minutes: Optional[int] = Query(None, ge=1, le=1440),
    db: AsyncSession = Depends(get_db),
    service: ScrapingService = Depends(get_scraping_service),
):
    """Run the reaper now."""
    minutes = threshold_minutes or settings.stuck_attempt_threshold_minutes

    async def mark_failed(attempt_id: UUID, error_type: str, message: str) -> bool:
        return await service.mark_failed(db, attempt_id, error_type, message)

    count = await ReaperService(mark_failed=mark_failed).cleanup_stuck(db, minutes)
    return CleanupResponse(count=count, threshold_minutes=minutes)


@router.get("/attempts/{attempt_id}", response_model=AttemptDetail)
async def get_attempt(
    attempt_id: UUID,
    db: AsyncSession = Depends(get_db),
    service: ScrapingService = Depends(get_scraping_service),
):
    """Attempt detail."""
    return await service.get_attempt(db, attempt_id)


@router.post("/attempts/{attempt_id}/mark-failed", response_model=MarkFailedResponse)
@limiter.limit(RATE_ADMIN)
async def mark_attempt_failed(
    request: Request,
    attempt_id: UUID,
    payload: Optional[MarkFailedRequest] = None,
    db: AsyncSession = Depends(get_db),
    service: ScrapingService = Depends(get_scraping_service),
):
    """Force a non-terminal attempt to failed. `marked` is false when it was already terminal."""
    message = payload.message if payload else None
    marked = await service.mark_failed(db, attempt_id, MANUAL_FAILURE, message)
    attempt = await service.get_attempt(db, attempt_id)
    return MarkFailedResponse(attempt_id=attempt_id, marked=marked, status=attempt.status)


@router.post(
    "/attempts/{attempt_id}/retry",
    response_model=AttemptIdResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
@limiter.limit(RATE_ADMIN)
async def retry_attempt(
    request: Request,
    attempt_id: UUID,
    db: AsyncSession = Depends(get_db),
    service: ScrapingService = Depends(get_scraping_service),
):
    """Create a new attempt for a failed one (409 unless the attempt is failed)."""
    new_attempt_id = await service.retry_attempt(db, attempt_id)
    return AttemptIdResponse(attempt_id=new_attempt_id)


@router.get("/attempts/{attempt_id}/timeline", response_model=TimelineResponse)
async def get_attempt_timeline(
    attempt_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Ordered steps of an attempt with duration and failure summary."""
    return await attempt_timeline(db, attempt_id)


# ── Stats ────────────────────────────────────────────────────────────────────


@router.get("/stats/domains/{domain}", response_model=DomainStatsResponse)
async def get_domain_stats(
    domain: str,
    days: int = Query(7, ge=1, le=90, description="Trailing window in days"),
    db: AsyncSession = Depends(get_db),
):
    return await MetricsService().domain_stats(db, domain, days)


@router.get("/stats/fields", response_model=FieldStatsResponse)
async def get_field_stats(
    days: int = Query(7, ge=1, le=90, description="Trailing window in days"),
    db: AsyncSession = Depends(get_db),
):
    return await MetricsService().field_stats(db, days)


@router.get("/stats/providers", response_model=ProviderStatsResponse)
async def get_provider_stats(
    days: int = Query(7, ge=1, le=90, description="Trailing window in days"),
    db: AsyncSession = Depends(get_db),
):
    return await MetricsService().provider_stats(db, days)


@router.get("/extractors", response_model=Dict[str, List[str]])
async def get_extractors():
    """Structured extractors per board, in the order they are tried."""
    return list_extractors()
