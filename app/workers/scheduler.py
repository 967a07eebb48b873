"""
Celery Beat scheduler configuration.

Defines periodic tasks that run on a schedule:
- Reap stuck attempts every `reaper_interval_minutes`
- Report the dead-letter backlog hourly

WHY Celery Beat instead of cron?
- Beat is declarative (defined in Python, not crontab files)
- Beat is version-controlled with the code
- Beat runs inside Docker, no host system dependency
"""
from datetime import timedelta

from celery.schedules import crontab

from app.workers.celery_app import celery_app
from app.workers import tasks
from app.workers.tasks import run_async
from app.core.config import settings
from app.core.database import async_session_maker
from app.core.logging import get_logger

logger = get_logger(__name__)


# ─── Periodic Task Schedule ────────────────────────────────────

celery_app.conf.beat_schedule = {
    "cleanup-stuck-attempts": {
        "task": "app.workers.scheduler.cleanup_stuck_attempts",
        "schedule": timedelta(minutes=settings.reaper_interval_minutes),
    },
    "report-dead-letter-queue": {
        "task": "app.workers.scheduler.report_dead_letter_queue",
        "schedule": crontab(minute=0),
    },
}


# ─── Scheduled Tasks ──────────────────────────────────────────

@celery_app.task
def cleanup_stuck_attempts(threshold_minutes: int = None):
    """Force-fail attempts stuck in a non-terminal status."""
    return run_async(_cleanup_stuck_attempts(threshold_minutes))


async def _cleanup_stuck_attempts(threshold_minutes: int = None):
    from app.services.reaper_service import ReaperService

    reaper = ReaperService(mark_failed=tasks.mark_failed_in_own_session)

    async with async_session_maker() as db:
        count = await reaper.cleanup_stuck(db, threshold_minutes)
        return {"marked_failed": count}


@celery_app.task
def report_dead_letter_queue():
    """Log the dead-letter backlog so it shows up in alerting."""
    return run_async(_report_dead_letter_queue())


async def _report_dead_letter_queue():
    from app.repositories.attempt_repository import AttemptRepository

    async with async_session_maker() as db:
        count = await AttemptRepository().count_dead_letter(db)

        if count:
            logger.warning("dead_letter_backlog", count=count)
        else:
            logger.info("dead_letter_backlog_empty")

        return {"dead_letter_count": count}
