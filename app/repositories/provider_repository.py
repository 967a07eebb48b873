"""
Provider repository - LLM provider configs and call logs.
"""
from datetime import datetime
from typing import Any, Dict, List

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.llm_api_log import LlmApiLog, LlmCallStatus
from app.models.llm_provider_config import LlmProviderConfig
from app.repositories.base import BaseRepository


class ProviderConfigRepository(BaseRepository[LlmProviderConfig]):
    def __init__(self):
        super().__init__(LlmProviderConfig)

    async def list_enabled(self, db: AsyncSession) -> List[LlmProviderConfig]:
        """Enabled providers, lowest priority number first."""
        result = await db.execute(
            select(LlmProviderConfig)
            .where(LlmProviderConfig.enabled == True)  # noqa: E712
            .order_by(LlmProviderConfig.priority.asc(), LlmProviderConfig.name.asc())
        )
        return list(result.scalars().all())

    async def get_by_name(self, db: AsyncSession, name: str):
        result = await db.execute(
            select(LlmProviderConfig).where(LlmProviderConfig.name == name)
        )
        return result.scalar_one_or_none()


class LlmLogRepository(BaseRepository[LlmApiLog]):
    def __init__(self):
        super().__init__(LlmApiLog)

    async def rollup_by_provider(
        self,
        db: AsyncSession,
        *,
        since: datetime,
    ) -> List[Dict[str, Any]]:
        """Per-provider call counts, latency, confidence, tokens and cost."""
        successes = func.sum(
            case((LlmApiLog.status == LlmCallStatus.SUCCESS.value, 1), else_=0)
        )
        result = await db.execute(
            select(
                LlmApiLog.provider,
                func.count().label("calls"),
                successes.label("successes"),
                func.avg(LlmApiLog.latency_ms).label("avg_latency_ms"),
                func.avg(LlmApiLog.confidence_score).label("avg_confidence"),
                func.coalesce(func.sum(LlmApiLog.total_tokens), 0).label("total_tokens"),
                func.coalesce(func.sum(LlmApiLog.estimated_cost_cents), 0.0).label("total_cost_cents"),
            )
            .where(LlmApiLog.created_at >= since)
            .group_by(LlmApiLog.provider)
            .order_by(LlmApiLog.provider)
        )
        return [dict(row._mapping) for row in result.all()]
