"""
Pydantic schemas for API validation and serialization.
"""
from app.schemas.base import (
    BaseSchema,
    IDSchema,
    TimestampSchema,
    ErrorResponse,
)
from app.schemas.scraping import (
    EnqueueExtractionRequest,
    MarkFailedRequest,
    AttemptIdResponse,
    MarkFailedResponse,
    CleanupResponse,
    AttemptDetail,
    TimelineStep,
    TimelineResponse,
    FieldRate,
    DomainStatsResponse,
    FieldStatsResponse,
    ProviderStat,
    ProviderStatsResponse,
)

__all__ = [
    # Base
    "BaseSchema",
    "IDSchema",
    "TimestampSchema",
    "ErrorResponse",
    # Requests
    "EnqueueExtractionRequest",
    "MarkFailedRequest",
    # Attempts
    "AttemptIdResponse",
    "MarkFailedResponse",
    "CleanupResponse",
    "AttemptDetail",
    # Timeline
    "TimelineStep",
    "TimelineResponse",
    # Stats
    "FieldRate",
    "DomainStatsResponse",
    "FieldStatsResponse",
    "ProviderStat",
    "ProviderStatsResponse",
]
