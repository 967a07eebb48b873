"""
Metrics service - on-demand analytics over attempts, HTML logs and LLM calls.

Nothing is maintained incrementally; every figure is computed from the rows
in a trailing window when asked for.
"""
from datetime import timedelta
from typing import Any, Dict, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.base import utcnow
from app.models.html_scraping_log import TRACKED_FIELDS, DiagnosticStatus, HtmlScrapingLog
from app.models.scraping_attempt import AttemptStatus
from app.repositories.attempt_repository import AttemptRepository
from app.repositories.html_log_repository import HtmlLogRepository
from app.repositories.provider_repository import LlmLogRepository


def _rate(part: int, whole: int) -> float:
    return part / whole if whole else 0.0


def field_rates(logs: Iterable[HtmlScrapingLog]) -> Dict[str, Dict[str, Any]]:
    """Per tracked field: attempts, successes and success rate."""
    totals = {name: {"attempts": 0, "successes": 0} for name in TRACKED_FIELDS}
    for log in logs:
        for name, result in (log.field_results or {}).items():
            if name not in totals:
                continue
            totals[name]["attempts"] += 1
            if isinstance(result, dict) and result.get("success"):
                totals[name]["successes"] += 1
    return {
        name: {**counts, "success_rate": _rate(counts["successes"], counts["attempts"])}
        for name, counts in totals.items()
    }


class MetricsService:
    def __init__(self):
        self.attempt_repo = AttemptRepository()
        self.html_log_repo = HtmlLogRepository()
        self.llm_log_repo = LlmLogRepository()

    async def domain_stats(
        self,
        db: AsyncSession,
        domain: str,
        days: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Attempt and HTML-pass figures for one domain over the last `days`."""
        days = days or settings.stats_window_days
        since = utcnow() - timedelta(days=days)
        domain = domain.lower().removeprefix("www.")

        by_status = await self.attempt_repo.count_by_status(db, since=since, domain=domain)
        total = sum(by_status.values())
        completed = by_status.get(AttemptStatus.COMPLETED.value, 0)

        html_by_status = await self.html_log_repo.count_by_status(db, since=since, domain=domain)
        html_total = sum(html_by_status.values())
        html_ok = html_by_status.get(DiagnosticStatus.SUCCESS.value, 0) + html_by_status.get(
            DiagnosticStatus.PARTIAL.value, 0
        )
        averages = await self.html_log_repo.averages(db, since=since, domain=domain)
        logs = await self.html_log_repo.recent(
            db, since=since, limit=settings.field_stats_sample_limit, domain=domain
        )

        return {
            "domain": domain,
            "window_days": days,
            "total_attempts": total,
            "attempts_by_status": {s.value: by_status.get(s.value, 0) for s in AttemptStatus},
            "success_rate": _rate(completed, total),
            "avg_duration_seconds": await self.attempt_repo.average_duration(
                db, since=since, domain=domain
            ),
            "dead_letter_count": by_status.get(AttemptStatus.DEAD_LETTER.value, 0),
            "html_passes": html_total,
            "html_success_rate": _rate(html_ok, html_total),
            "avg_extraction_rate": averages["avg_extraction_rate"],
            "avg_html_duration_ms": averages["avg_duration_ms"],
            "field_rates": field_rates(logs),
        }

    async def field_stats(
        self,
        db: AsyncSession,
        days: Optional[int] = None,
        sample_limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Per-field extraction rates over the newest `sample_limit` HTML logs."""
        days = days or settings.stats_window_days
        limit = sample_limit or settings.field_stats_sample_limit
        logs = await self.html_log_repo.recent(
            db, since=utcnow() - timedelta(days=days), limit=limit
        )
        return {
            "window_days": days,
            "sample_size": len(logs),
            "sample_limit": limit,
            "fields": field_rates(logs),
        }

    async def provider_stats(
        self,
        db: AsyncSession,
        days: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Per LLM provider: calls, success rate, latency, confidence, tokens, cost."""
        days = days or settings.stats_window_days
        rows = await self.llm_log_repo.rollup_by_provider(db, since=utcnow() - timedelta(days=days))
        providers = []
        for row in rows:
            calls = int(row["calls"] or 0)
            successes = int(row["successes"] or 0)
            providers.append(
                {
                    "provider": row["provider"],
                    "calls": calls,
                    "successes": successes,
                    "success_rate": _rate(successes, calls),
                    "avg_latency_ms": float(row["avg_latency_ms"]) if row["avg_latency_ms"] is not None else None,
                    "avg_confidence": float(row["avg_confidence"]) if row["avg_confidence"] is not None else None,
                    "total_tokens": int(row["total_tokens"] or 0),
                    "total_cost_cents": round(float(row["total_cost_cents"] or 0.0), 4),
                }
            )
        return {"window_days": days, "providers": providers}
