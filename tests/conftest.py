from __future__ import annotations

import json
import os
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

# Settings are read at import time; point them at SQLite and switch the
# Redis-backed limiter off before anything from app/ is imported.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SCRAPE_CHECK_ROBOTS_TXT", "false")
os.environ.setdefault("SCRAPE_DOMAIN_MIN_INTERVAL_SECONDS", "0")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  registers every mapper on Base.metadata
from app.core.database import Base
from app.llm.base import BaseLLMProvider, LLMResponse
from app.models.job_listing import JobListing
from app.models.llm_provider_config import LlmProviderConfig
from app.models.scraping_attempt import AttemptStatus, ScrapingAttempt, extract_domain
from app.scrapers.fetcher import HtmlFetcher


JOB_PAGE_HTML = """
<html>
  <head><title>Senior Backend Engineer at Acme</title></head>
  <body>
    <nav>Home | Jobs | About</nav>
    <main>
      <h1 class="job-title">Senior Backend Engineer</h1>
      <div class="company-name">Acme Corp</div>
      <div class="job-location">Nairobi, Kenya (Hybrid)</div>
      <div class="job-description">
        <p>We are hiring a backend engineer to build our payments platform.
        You will design APIs, own services end to end and mentor engineers.</p>
        <h3>Requirements</h3>
        <ul><li>5+ years of Python</li><li>PostgreSQL experience</li></ul>
        <h3>Benefits</h3>
        <ul><li>Medical cover</li><li>Learning budget</li></ul>
      </div>
    </main>
    <footer>Acme Corp 2026</footer>
  </body>
</html>
"""


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db(engine):
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with maker() as session:
        yield session


@pytest_asyncio.fixture
async def make_listing(db):
    async def _make(url: str = "https://careers.acme.example.com/jobs/123", **fields) -> JobListing:
        listing = JobListing(url=url, **fields)
        db.add(listing)
        await db.commit()
        return listing

    return _make


@pytest_asyncio.fixture
async def make_attempt(db, make_listing):
    async def _make(
        status: AttemptStatus = AttemptStatus.PENDING,
        listing: Optional[JobListing] = None,
        retry_count: int = 0,
        updated_at: Optional[datetime] = None,
        **fields,
    ) -> ScrapingAttempt:
        listing = listing or await make_listing()
        attempt = ScrapingAttempt(
            job_listing_id=listing.id,
            url=listing.url,
            domain=extract_domain(listing.url),
            status=AttemptStatus(status).value,
            retry_count=retry_count,
            **fields,
        )
        if updated_at is not None:
            attempt.created_at = updated_at
            attempt.updated_at = updated_at
        db.add(attempt)
        await db.commit()
        return attempt

    return _make


@pytest_asyncio.fixture
async def make_provider(db):
    async def _make(name: str, priority: int = 10, enabled: bool = True, **fields) -> LlmProviderConfig:
        config = LlmProviderConfig(
            name=name,
            provider_type=fields.pop("provider_type", "openai"),
            llm_model=fields.pop("llm_model", "gpt-4o-mini"),
            priority=priority,
            enabled=enabled,
            timeout_seconds=fields.pop("timeout_seconds", 5),
            max_tokens=fields.pop("max_tokens", 1024),
            temperature=fields.pop("temperature", 0.0),
            **fields,
        )
        db.add(config)
        await db.commit()
        return config

    return _make


class FakeSite:
    """httpx.MockTransport handler serving canned pages and counting requests."""

    def __init__(self, pages: Optional[Dict[str, httpx.Response]] = None, default: Optional[httpx.Response] = None):
        self.pages = pages or {}
        self.default = default
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url in self.pages:
            return self.pages[url]
        if self.default is not None:
            return self.default
        return httpx.Response(404, text="not found")

    def fetcher_factory(self) -> Callable[[], HtmlFetcher]:
        client = httpx.AsyncClient(transport=httpx.MockTransport(self), follow_redirects=True)
        return lambda: HtmlFetcher(client=client)


def html_response(html: str = JOB_PAGE_HTML, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, text=html, headers={"content-type": "text/html; charset=utf-8"})


def json_response(payload: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json=payload)


@pytest.fixture
def job_site() -> FakeSite:
    return FakeSite(default=html_response())


# ── LLM fakes ────────────────────────────────────────────────────────────────

Script = Dict[str, Union[str, Exception]]


def answer(confidence: float, **fields) -> str:
    """A well-formed provider reply for the sample posting."""
    payload = {
        "title": "Senior Backend Engineer",
        "company_name": "Acme Corp",
        "description": "Build the payments platform.",
        "location": "Nairobi, Kenya",
        "confidence": confidence,
    }
    payload.update(fields)
    return json.dumps(payload)


class ScriptedProvider(BaseLLMProvider):
    """Answers (or fails) according to a per-provider-name script."""

    provider_type = "openai"

    def __init__(self, config: LlmProviderConfig, script: Script, calls: List[str]):
        super().__init__(config)
        self.script = script
        self.calls = calls

    async def _complete(self, system: str, prompt: str) -> LLMResponse:
        self.calls.append(self.name)
        outcome = self.script[self.name]
        if isinstance(outcome, Exception):
            raise outcome
        return LLMResponse(content=outcome, model=self.model, input_tokens=1000, output_tokens=200)


def scripted(script: Script, calls: List[str]) -> Callable[[LlmProviderConfig], BaseLLMProvider]:
    return lambda config: ScriptedProvider(config, script, calls)
