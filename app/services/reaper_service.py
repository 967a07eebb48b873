"""
Reaper - finds attempts stuck in a non-terminal status and fails them.

The reaper never writes attempts itself. It hands every stuck attempt to
the administrative mark-failed command, which is a no-op when the attempt
finished in the meantime, so a scan/complete race is harmless.
"""
from datetime import timedelta
from typing import Awaitable, Callable, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.logging import get_logger
from app.models.base import utcnow
from app.models.scraping_attempt import ACTIVE_STATUSES, ScrapingAttempt
from app.repositories.attempt_repository import AttemptRepository

logger = get_logger(__name__)

STUCK_ERROR_TYPE = "StuckTimeout"

# (attempt_id, error_type, message) -> True when the attempt was actually failed
MarkFailed = Callable[[UUID, str, str], Awaitable[bool]]


class ReaperService:
    def __init__(self, mark_failed: MarkFailed):
        self.attempt_repo = AttemptRepository()
        self.mark_failed = mark_failed

    async def find_stuck(
        self,
        db: AsyncSession,
        threshold_minutes: Optional[int] = None,
    ) -> List[ScrapingAttempt]:
        """
        Active attempts not updated for `threshold_minutes`, oldest first.
        Retrying attempts still waiting out their backoff are not stuck.
        """
        minutes = threshold_minutes or settings.stuck_attempt_threshold_minutes
        cutoff = utcnow() - timedelta(minutes=minutes)
        return await self.attempt_repo.find_stale(db, ACTIVE_STATUSES, cutoff)

    async def cleanup_stuck(
        self,
        db: AsyncSession,
        threshold_minutes: Optional[int] = None,
    ) -> int:
        """Fail every stuck attempt; returns how many actually transitioned."""
        minutes = threshold_minutes or settings.stuck_attempt_threshold_minutes
        stuck = await self.find_stuck(db, minutes)
        if not stuck:
            logger.info("reaper_nothing_stuck", threshold_minutes=minutes)
            return 0

        # Snapshot before handing off; mark_failed may run on another session
        targets = [(attempt.id, attempt.status) for attempt in stuck]
        count = 0
        for attempt_id, step in targets:
            message = f"Attempt stuck at '{step}' for over {minutes} minutes"
            if await self.mark_failed(attempt_id, STUCK_ERROR_TYPE, message):
                count += 1

        logger.warning(
            "reaper_cleaned_stuck_attempts",
            found=len(targets),
            failed=count,
            threshold_minutes=minutes,
        )
        return count
