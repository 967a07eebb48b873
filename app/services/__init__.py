"""
Service layer - business logic and orchestration.

Services contain the application's business logic, coordinate between
repositories, and own the transactions.

RULE: Routes and tasks call services. Services call repositories. Never the reverse.
"""
from app.services.ai_extractor import AIExtractor
from app.services.attempt_lifecycle import AttemptLifecycle, AttemptOutcome, backoff_seconds
from app.services.content_cache import CachedContent, ContentCache
from app.services.event_recorder import EventRecorder
from app.services.extraction_pipeline import ExtractionPipeline
from app.services.html_diagnostics import HtmlDiagnosticRecorder
from app.services.metrics_service import MetricsService
from app.services.reaper_service import ReaperService
from app.services.scraping_service import ScrapingService
from app.services.timeline import attempt_timeline, build_timeline

__all__ = [
    "AIExtractor",
    "AttemptLifecycle",
    "AttemptOutcome",
    "backoff_seconds",
    "CachedContent",
    "ContentCache",
    "EventRecorder",
    "ExtractionPipeline",
    "HtmlDiagnosticRecorder",
    "MetricsService",
    "ReaperService",
    "ScrapingService",
    "attempt_timeline",
    "build_timeline",
]
