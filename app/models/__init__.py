"""
Database models for the listing extraction pipeline.

All models use UUID primary keys and include created_at/updated_at timestamps.
"""
from app.models.base import BaseModel, TimestampMixin, UUIDMixin
from app.models.job_listing import JobListing
from app.models.scraped_job_listing_data import ScrapedJobListingData
from app.models.scraping_attempt import AttemptStatus, ExtractionMethod, ScrapingAttempt
from app.models.scraping_event import EventStatus, EventType, ScrapingEvent
from app.models.html_scraping_log import HtmlScrapingLog
from app.models.llm_provider_config import LlmProviderConfig, ProviderType
from app.models.llm_api_log import LlmApiLog, LlmCallStatus

__all__ = [
    "BaseModel",
    "TimestampMixin",
    "UUIDMixin",
    "JobListing",
    "ScrapedJobListingData",
    "ScrapingAttempt",
    "AttemptStatus",
    "ExtractionMethod",
    "ScrapingEvent",
    "EventType",
    "EventStatus",
    "HtmlScrapingLog",
    "LlmProviderConfig",
    "ProviderType",
    "LlmApiLog",
    "LlmCallStatus",
]
