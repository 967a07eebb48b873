from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

import httpx
import pytest
from sqlalchemy import func, select

from app.core.exceptions import ProviderTimeout, StrategyError
from app.models.html_scraping_log import HtmlScrapingLog
from app.models.llm_api_log import LlmApiLog
from app.models.scraping_attempt import AttemptStatus
from app.models.scraping_event import EventType
from app.repositories.event_repository import EventRepository
from app.scrapers.base import BaseExtractor, ExtractionResult
from app.scrapers.detector import BoardInfo
from app.services.ai_extractor import AIExtractor
from app.services.content_cache import ContentCache
from app.services.extraction_pipeline import ExtractionPipeline

from conftest import FakeSite, answer, html_response, json_response, scripted

FULL_DATA = {
    "title": "Senior Backend Engineer",
    "company_name": "Acme Corp",
    "description": "Build the payments platform.",
    "location": "Nairobi, Kenya",
}


class StubExtractor(BaseExtractor):
    """Structured extractor with a fixed outcome."""

    def __init__(
        self,
        board_info: BoardInfo,
        name: str,
        kind: str = "html",
        confidence: float = 0.0,
        data: Optional[Dict[str, Any]] = None,
        error: Optional[Exception] = None,
    ):
        super().__init__(board_info)
        self.name = name
        self.kind = kind
        self.confidence = confidence
        self.data = data if data is not None else dict(FULL_DATA)
        self.error = error

    async def extract(self, url: str, html: str) -> ExtractionResult:
        if self.error is not None:
            raise self.error
        return ExtractionResult(
            extractor=self.name,
            kind=self.kind,
            data=self.data,
            confidence=self.confidence,
            provider=self.board_info.board.value,
        )


def stubs(*specs: Dict[str, Any]):
    return lambda board_info: [StubExtractor(board_info, **spec) for spec in specs]


def pipeline(site: FakeSite, extractors=None, providers=None, calls=None, **kwargs) -> ExtractionPipeline:
    fetcher_factory = site.fetcher_factory()
    return ExtractionPipeline(
        content_cache=ContentCache(fetcher_factory=fetcher_factory),
        extractor_factory=extractors,
        ai_extractor=AIExtractor(threshold=0.7, provider_factory=scripted(providers or {}, calls if calls is not None else [])),
        threshold=0.7,
        fetcher_factory=fetcher_factory,
        **kwargs,
    )


async def _events(db, attempt) -> List[tuple]:
    events = await EventRepository().list_for_attempt(db, attempt.id)
    return [(e.event_type, e.status) for e in events]


@pytest.mark.asyncio
async def test_confident_structured_result_completes(db, make_attempt, job_site):
    attempt = await make_attempt()
    runner = pipeline(job_site, extractors=stubs({"name": "board_api", "kind": "api", "confidence": 0.95}))

    outcome = await runner.run(db, attempt.id)

    assert outcome.status == AttemptStatus.COMPLETED.value
    assert outcome.should_retry is False
    await db.refresh(attempt)
    assert attempt.extraction_method == "structured"
    assert attempt.provider is None
    assert attempt.confidence_score == pytest.approx(0.95)
    assert attempt.low_confidence is False
    assert attempt.http_status == 200
    assert attempt.scraped_job_listing_data_id is not None
    assert attempt.completed_at is not None
    assert await _events(db, attempt) == [
        ("html_fetch", "success"),
        ("structured_extraction", "success"),
        ("completion", "success"),
    ]

    listing = await runner.listing_repo.get_by_id(db, attempt.job_listing_id)
    assert listing.title == "Senior Backend Engineer"
    assert listing.extraction_confidence == pytest.approx(0.95)
    assert listing.last_extracted_at is not None

    # API passes do not produce HTML diagnostics
    count = (await db.execute(select(func.count()).select_from(HtmlScrapingLog))).scalar_one()
    assert count == 0


@pytest.mark.asyncio
async def test_default_extractors_on_a_real_page(db, make_attempt, job_site):
    attempt = await make_attempt()
    runner = pipeline(job_site)

    outcome = await runner.run(db, attempt.id)

    assert outcome.status == AttemptStatus.COMPLETED.value
    await db.refresh(attempt)
    assert attempt.response_metadata["extractor"] == "generic_html"
    log = (await db.execute(select(HtmlScrapingLog))).scalar_one()
    assert log.extractor_name == "generic_html"
    assert log.scraping_attempt_id == attempt.id


@pytest.mark.asyncio
async def test_weak_structured_result_falls_through_to_ai(db, make_attempt, make_provider, job_site):
    attempt = await make_attempt()
    await make_provider("p1", priority=10)
    await make_provider("p2", priority=20)
    calls: List[str] = []
    runner = pipeline(
        job_site,
        extractors=stubs({"name": "generic_html", "confidence": 0.3}),
        providers={"p1": ProviderTimeout("p1 timed out after 5s", provider="p1"), "p2": answer(0.9)},
        calls=calls,
    )

    outcome = await runner.run(db, attempt.id)

    assert outcome.status == AttemptStatus.COMPLETED.value
    await db.refresh(attempt)
    assert attempt.extraction_method == "ai"
    assert attempt.provider == "p2"
    assert attempt.confidence_score == pytest.approx(0.9)
    assert calls == ["p1", "p2"]
    assert await _events(db, attempt) == [
        ("html_fetch", "success"),
        ("structured_extraction", "success"),
        ("ai_extraction", "failed"),
        ("ai_extraction", "success"),
        ("completion", "success"),
    ]

    logs = (await db.execute(select(LlmApiLog).order_by(LlmApiLog.provider))).scalars().all()
    assert [(log.provider, log.status) for log in logs] == [("p1", "timeout"), ("p2", "success")]
    # The weak HTML pass still left diagnostics behind
    assert (await db.execute(select(func.count()).select_from(HtmlScrapingLog))).scalar_one() == 1


@pytest.mark.asyncio
async def test_best_weak_result_is_kept_as_low_confidence(db, make_attempt, job_site):
    attempt = await make_attempt()
    runner = pipeline(
        job_site,
        extractors=stubs(
            {"name": "board_html", "confidence": 0.5},
            {"name": "generic_html", "confidence": 0.4},
        ),
    )

    outcome = await runner.run(db, attempt.id)

    assert outcome.status == AttemptStatus.COMPLETED.value
    await db.refresh(attempt)
    assert attempt.extraction_method == "fallback"
    assert attempt.low_confidence is True
    assert attempt.response_metadata["extractor"] == "board_html"
    listing = await runner.listing_repo.get_by_id(db, attempt.job_listing_id)
    assert listing.low_confidence is True
    assert ("ai_extraction", "skipped") in await _events(db, attempt)


@pytest.mark.asyncio
async def test_exhausted_chain_retries_then_dead_letters(db, make_attempt, job_site):
    attempt = await make_attempt()
    runner = pipeline(
        job_site,
        extractors=stubs({"name": "generic_html", "error": StrategyError("generic_html: selectors matched nothing")}),
        max_retries=2,
    )

    statuses = []
    for _ in range(3):
        outcome = await runner.run(db, attempt.id)
        statuses.append(outcome.status)

    assert statuses == ["retrying", "retrying", "dead_letter"]
    # Later cycles are served from the content cache
    assert len(job_site.requests) == 1

    await db.refresh(attempt)
    assert attempt.retry_count == 2
    assert attempt.error_type == "AllProvidersExhausted"
    assert attempt.failed_step == "ai_extraction"
    assert attempt.next_retry_at is None
    assert attempt.needs_review is True

    events = await EventRepository().list_for_attempt(db, attempt.id)
    failures = [e for e in events if e.event_type == EventType.FAILURE.value]
    assert [f.extra_data["next_status"] for f in failures] == ["retrying", "retrying", "dead_letter"]
    assert [e.step_order for e in events] == list(range(1, len(events) + 1))


@pytest.mark.asyncio
async def test_fetch_error_schedules_retry_with_backoff(db, make_attempt):
    attempt = await make_attempt()
    site = FakeSite(default=html_response("down", status_code=503))
    runner = pipeline(site, extractors=stubs({"name": "generic_html", "confidence": 0.9}))

    outcome = await runner.run(db, attempt.id)

    assert outcome.status == AttemptStatus.RETRYING.value
    assert outcome.should_retry is True
    assert outcome.error_type == "FetchError"
    assert 55 <= outcome.retry_in_seconds <= 60
    await db.refresh(attempt)
    assert attempt.retry_count == 1
    assert attempt.failed_step == "html_fetch"
    assert attempt.http_status == 503
    assert await _events(db, attempt) == [("html_fetch", "failed"), ("failure", "failed")]


@pytest.mark.asyncio
async def test_retry_budget_already_spent_is_dead_lettered_without_fetching(db, make_attempt, job_site):
    attempt = await make_attempt(status=AttemptStatus.RETRYING, retry_count=3, failed_step="html_fetch")
    runner = pipeline(job_site, extractors=stubs({"name": "generic_html", "confidence": 0.9}), max_retries=2)

    outcome = await runner.run(db, attempt.id)

    assert outcome.status == AttemptStatus.DEAD_LETTER.value
    assert job_site.requests == []
    events = await EventRepository().list_for_attempt(db, attempt.id)
    assert [(e.event_type, e.error_type) for e in events] == [("failure", "RetryBudgetExhausted")]


@pytest.mark.asyncio
async def test_robots_disallow_fails_without_retry(db, make_attempt):
    attempt = await make_attempt()
    site = FakeSite(
        pages={
            "https://careers.acme.example.com/robots.txt": httpx.Response(
                200, text="User-agent: *\nDisallow: /jobs/\n", headers={"content-type": "text/plain"}
            )
        },
        default=html_response(),
    )
    runner = pipeline(site, extractors=stubs({"name": "generic_html", "confidence": 0.9}), check_robots=True)

    outcome = await runner.run(db, attempt.id)

    assert outcome.status == AttemptStatus.FAILED.value
    assert outcome.error_type == "PermissionDenied"
    assert await _events(db, attempt) == [("permission_check", "failed"), ("failure", "failed")]
    assert [str(r.url) for r in site.requests] == ["https://careers.acme.example.com/robots.txt"]


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [AttemptStatus.FETCHING, AttemptStatus.COMPLETED, AttemptStatus.DEAD_LETTER])
async def test_attempts_that_are_not_runnable_are_left_alone(db, make_attempt, job_site, status):
    attempt = await make_attempt(status=status)

    outcome = await pipeline(job_site).run(db, attempt.id)

    assert outcome.status == status.value
    assert job_site.requests == []
    assert await _events(db, attempt) == []


@pytest.mark.asyncio
async def test_unknown_attempt(db, job_site):
    outcome = await pipeline(job_site).run(db, uuid.uuid4())
    assert outcome.status == "not_found"


@pytest.mark.asyncio
async def test_embedded_greenhouse_board_is_read_through_its_api(db, make_listing, make_attempt):
    url = "https://careers.acme.example.com/open-roles?gh_jid=4567890"
    site = FakeSite(
        pages={
            url: html_response(
                "<html><body><div id='grnhse_app'></div>"
                "<script src='https://boards.greenhouse.io/embed/job_board/js?for=acme'></script>"
                "</body></html>"
            ),
            "https://boards-api.greenhouse.io/v1/boards/acme/jobs/4567890": json_response(
                {
                    "title": "Senior Backend Engineer",
                    "company_name": "Acme Corp",
                    "location": {"name": "Nairobi, Kenya"},
                    "content": "&lt;p&gt;Build the payments platform.&lt;/p&gt;",
                }
            ),
        }
    )
    api_client = httpx.AsyncClient(transport=httpx.MockTransport(site))
    attempt = await make_attempt(listing=await make_listing(url=url))

    outcome = await pipeline(site, api_client=api_client).run(db, attempt.id)

    assert outcome.status == AttemptStatus.COMPLETED.value
    await db.refresh(attempt)
    assert attempt.response_metadata["extractor"] == "greenhouse_api"
    events = await EventRepository().list_for_attempt(db, attempt.id)
    structured = [e for e in events if e.event_type == EventType.STRUCTURED_EXTRACTION.value]
    assert structured[0].input_payload["company_slug"] == "acme"
    await api_client.aclose()


@pytest.mark.asyncio
async def test_login_walled_preview_is_kept_as_limited(db, make_listing, make_attempt):
    url = "https://www.linkedin.com/jobs/view/3812345678/"
    site = FakeSite(
        default=html_response(
            "<html><head>"
            "<meta property='og:title' content='Acme Corp hiring Senior Backend Engineer in Nairobi, Kenya | LinkedIn'>"
            "<meta property='og:description' content='Build the payments platform.'>"
            "</head><body><div class='authwall'>Sign in</div></body></html>"
        )
    )
    attempt = await make_attempt(listing=await make_listing(url=url))

    outcome = await pipeline(site).run(db, attempt.id)

    assert outcome.status == AttemptStatus.COMPLETED.value
    await db.refresh(attempt)
    assert attempt.extraction_method == "fallback"
    assert attempt.low_confidence is True
    assert attempt.response_metadata["extractor"] == "meta_tags"
    assert attempt.response_metadata["limited"] is True
