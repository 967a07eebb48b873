"""
Workers package - Celery tasks and background processing.
"""
from app.workers.celery_app import celery_app
from app.workers.tasks import (
    run_scraping_attempt,
    mark_attempt_failed,
)
from app.workers.scheduler import (
    cleanup_stuck_attempts,
    report_dead_letter_queue,
)

__all__ = [
    "celery_app",
    "run_scraping_attempt",
    "mark_attempt_failed",
    "cleanup_stuck_attempts",
    "report_dead_letter_queue",
]
