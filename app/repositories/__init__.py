"""
Repository layer - data access abstraction.

Repositories handle all database queries, keeping SQL/ORM logic
out of the service and route layers.
"""
from app.repositories.base import BaseRepository
from app.repositories.attempt_repository import AttemptRepository
from app.repositories.content_cache_repository import ContentCacheRepository
from app.repositories.event_repository import EventRepository
from app.repositories.html_log_repository import HtmlLogRepository
from app.repositories.job_listing_repository import JobListingRepository
from app.repositories.provider_repository import LlmLogRepository, ProviderConfigRepository

__all__ = [
    "BaseRepository",
    "AttemptRepository",
    "ContentCacheRepository",
    "EventRepository",
    "HtmlLogRepository",
    "JobListingRepository",
    "LlmLogRepository",
    "ProviderConfigRepository",
]
