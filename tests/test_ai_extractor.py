from __future__ import annotations

from typing import List

import pytest
from sqlalchemy import select

from app.core.exceptions import AllProvidersExhausted, ProviderRateLimited, ProviderTimeout
from app.models.base import utcnow
from app.models.llm_api_log import LlmApiLog
from app.models.scraping_event import EventStatus, EventType
from app.repositories.event_repository import EventRepository
from app.services.ai_extractor import AIExtractor
from app.services.content_cache import CachedContent
from app.services.event_recorder import EventRecorder

from conftest import answer, scripted


def page() -> CachedContent:
    return CachedContent(
        html="<html><h1>Senior Backend Engineer</h1></html>",
        cleaned_html="Senior Backend Engineer\nAcme Corp\nNairobi",
        http_status=200,
        fetched_at=utcnow(),
        content_hash="0" * 64,
        from_cache=False,
        record=None,
    )


async def _logs(db) -> List[LlmApiLog]:
    result = await db.execute(select(LlmApiLog).order_by(LlmApiLog.provider))
    return list(result.scalars().all())


@pytest.mark.asyncio
async def test_no_enabled_providers_records_skip_and_raises(db, make_attempt, make_provider):
    attempt = await make_attempt()
    await make_provider("disabled", enabled=False)
    calls: List[str] = []
    recorder = EventRecorder(db, attempt)

    with pytest.raises(AllProvidersExhausted):
        await AIExtractor(provider_factory=scripted({}, calls)).extract(db, attempt, recorder, page())

    events = await EventRepository().list_for_attempt(db, attempt.id)
    assert [(e.event_type, e.status) for e in events] == [("ai_extraction", "skipped")]
    assert events[0].output_payload == {"reason": "No enabled LLM providers"}
    assert calls == []


@pytest.mark.asyncio
async def test_first_acceptable_answer_stops_the_walk(db, make_attempt, make_provider):
    attempt = await make_attempt()
    await make_provider("primary", priority=10)
    await make_provider("secondary", priority=20)
    calls: List[str] = []
    script = {"primary": answer(0.92), "secondary": answer(0.99)}

    result = await AIExtractor(threshold=0.7, provider_factory=scripted(script, calls)).extract(
        db, attempt, EventRecorder(db, attempt), page()
    )

    assert calls == ["primary"]
    assert result.extractor == "ai:primary"
    assert result.kind == "ai"
    assert result.provider == "primary"
    assert result.confidence == pytest.approx(0.92)
    assert result.data["company_name"] == "Acme Corp"

    logs = await _logs(db)
    assert [(log.provider, log.status) for log in logs] == [("primary", "success")]
    assert logs[0].total_tokens == 1200
    assert logs[0].confidence_score == pytest.approx(0.92)
    assert logs[0].estimated_cost_cents == pytest.approx(0.027)


@pytest.mark.asyncio
async def test_invalid_answer_moves_to_next_provider(db, make_attempt, make_provider):
    attempt = await make_attempt()
    await make_provider("primary", priority=10)
    await make_provider("secondary", priority=20)
    calls: List[str] = []
    script = {"primary": "I could not find a job posting.", "secondary": answer(0.9)}

    result = await AIExtractor(threshold=0.7, provider_factory=scripted(script, calls)).extract(
        db, attempt, EventRecorder(db, attempt), page()
    )

    assert calls == ["primary", "secondary"]
    assert result.provider == "secondary"

    events = await EventRepository().list_for_attempt(db, attempt.id)
    assert [(e.event_type, e.status) for e in events] == [
        (EventType.AI_EXTRACTION.value, EventStatus.FAILED.value),
        (EventType.AI_EXTRACTION.value, EventStatus.SUCCESS.value),
    ]
    assert events[0].error_type == "ProviderResponseInvalid"
    assert events[0].input_payload["provider"] == "primary"
    assert events[1].output_payload["accepted"] is True

    logs = await _logs(db)
    assert [(log.provider, log.status, log.error_type) for log in logs] == [
        ("primary", "error", "ProviderResponseInvalid"),
        ("secondary", "success", None),
    ]


@pytest.mark.asyncio
async def test_best_weak_answer_is_returned_when_none_clears_threshold(db, make_attempt, make_provider):
    attempt = await make_attempt()
    await make_provider("p1", priority=10)
    await make_provider("p2", priority=20)
    await make_provider("p3", priority=30)
    calls: List[str] = []
    script = {
        "p1": answer(0.6),
        "p2": ProviderTimeout("p2 timed out after 5s", provider="p2"),
        "p3": answer(0.4),
    }

    result = await AIExtractor(threshold=0.7, provider_factory=scripted(script, calls)).extract(
        db, attempt, EventRecorder(db, attempt), page()
    )

    assert calls == ["p1", "p2", "p3"]
    assert result.provider == "p1"
    assert result.confidence == pytest.approx(0.6)
    assert [(log.provider, log.status) for log in await _logs(db)] == [
        ("p1", "success"),
        ("p2", "timeout"),
        ("p3", "success"),
    ]


@pytest.mark.asyncio
async def test_every_provider_failing_raises(db, make_attempt, make_provider):
    attempt = await make_attempt()
    await make_provider("p1", priority=10)
    await make_provider("p2", priority=20)
    calls: List[str] = []
    script = {
        "p1": ProviderRateLimited("p1: rate limited", provider="p1"),
        "p2": RuntimeError("SDK exploded"),
    }

    with pytest.raises(AllProvidersExhausted, match="p1, p2"):
        await AIExtractor(provider_factory=scripted(script, calls)).extract(
            db, attempt, EventRecorder(db, attempt), page()
        )

    logs = await _logs(db)
    assert [(log.provider, log.status) for log in logs] == [("p1", "rate_limited"), ("p2", "error")]
    assert logs[1].error_message == "RuntimeError: SDK exploded"
    assert all(log.scraping_attempt_id == attempt.id for log in logs)
