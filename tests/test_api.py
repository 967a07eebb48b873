from __future__ import annotations

import uuid
from datetime import timedelta

import httpx
import pytest
import pytest_asyncio

from app.api.routes import health
from app.api.routes.scraping import get_scraping_service
from app.core.database import get_db
from app.main import app
from app.models.base import utcnow
from app.models.scraping_attempt import AttemptStatus
from app.models.scraping_event import EventStatus, EventType
from app.services.event_recorder import EventRecorder
from app.services.scraping_service import ScrapingService


class RecordingDispatcher:
    def __init__(self):
        self.dispatched = []

    def __call__(self, attempt_id):
        self.dispatched.append(attempt_id)


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest_asyncio.fixture
async def client(db, dispatcher):
    async def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_scraping_service] = lambda: ScrapingService(dispatcher=dispatcher)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_enqueue_returns_202_and_dispatches(client, make_listing, dispatcher):
    listing = await make_listing()

    response = await client.post("/api/v1/scraping/attempts", json={"job_listing_id": str(listing.id)})

    assert response.status_code == 202
    attempt_id = response.json()["attempt_id"]
    assert [str(a) for a in dispatcher.dispatched] == [attempt_id]

    detail = await client.get(f"/api/v1/scraping/attempts/{attempt_id}")
    assert detail.status_code == 200
    body = detail.json()
    assert body["status"] == "pending"
    assert body["domain"] == "careers.acme.example.com"
    assert body["needs_review"] is False


@pytest.mark.asyncio
async def test_unknown_listing_renders_error_body(client):
    response = await client.post("/api/v1/scraping/attempts", json={"job_listing_id": str(uuid.uuid4())})

    assert response.status_code == 404
    assert response.json() == {
        "error": "JOB_LISTING_NOT_FOUND",
        "message": "Job listing not found",
        "details": None,
    }


@pytest.mark.asyncio
async def test_unknown_attempt_is_404(client):
    response = await client.get(f"/api/v1/scraping/attempts/{uuid.uuid4()}")

    assert response.status_code == 404
    assert response.json()["error"] == "ATTEMPT_NOT_FOUND"


@pytest.mark.asyncio
async def test_mark_failed_and_then_retry(client, make_attempt, dispatcher):
    attempt = await make_attempt(status=AttemptStatus.FETCHING)

    response = await client.post(
        f"/api/v1/scraping/attempts/{attempt.id}/mark-failed", json={"message": "site is down for maintenance"}
    )
    assert response.status_code == 200
    assert response.json() == {"attempt_id": str(attempt.id), "marked": True, "status": "failed"}

    again = await client.post(f"/api/v1/scraping/attempts/{attempt.id}/mark-failed")
    assert again.json()["marked"] is False

    retry = await client.post(f"/api/v1/scraping/attempts/{attempt.id}/retry")
    assert retry.status_code == 202
    assert retry.json()["attempt_id"] != str(attempt.id)
    assert len(dispatcher.dispatched) == 1


@pytest.mark.asyncio
async def test_retry_of_completed_attempt_conflicts(client, make_attempt):
    attempt = await make_attempt(status=AttemptStatus.COMPLETED)

    response = await client.post(f"/api/v1/scraping/attempts/{attempt.id}/retry")

    assert response.status_code == 409
    assert response.json() == {
        "error": "ATTEMPT_NOT_RETRYABLE",
        "message": "Attempt cannot be retried from status 'completed'",
        "details": {"status": "completed"},
    }


@pytest.mark.asyncio
async def test_timeline(client, db, make_attempt):
    attempt = await make_attempt(status=AttemptStatus.FETCHING)
    recorder = EventRecorder(db, attempt)
    await recorder.record_instant(EventType.HTML_FETCH, EventStatus.SUCCESS, output_payload={"http_status": 200})
    await db.commit()

    response = await client.get(f"/api/v1/scraping/attempts/{attempt.id}/timeline")

    assert response.status_code == 200
    body = response.json()
    assert body["attempt_id"] == str(attempt.id)
    assert body["status"] == "fetching"
    assert [step["event_type"] for step in body["steps"]] == ["html_fetch"]
    assert body["successful"] == 1
    assert body["first_failure"] is None


@pytest.mark.asyncio
async def test_cleanup_stuck(client, make_attempt):
    stuck = await make_attempt(status=AttemptStatus.EXTRACTING, updated_at=utcnow() - timedelta(hours=1))

    response = await client.post("/api/v1/scraping/attempts/cleanup-stuck", params={"threshold_minutes": 15})

    assert response.status_code == 200
    assert response.json() == {"count": 1, "threshold_minutes": 15}
    detail = await client.get(f"/api/v1/scraping/attempts/{stuck.id}")
    assert detail.json()["error_type"] == "StuckTimeout"


@pytest.mark.asyncio
async def test_stats_endpoints(client, make_attempt):
    await make_attempt(status=AttemptStatus.COMPLETED, duration_seconds=1.5)

    domains = await client.get("/api/v1/scraping/stats/domains/careers.acme.example.com")
    assert domains.status_code == 200
    assert domains.json()["total_attempts"] == 1
    assert domains.json()["success_rate"] == 1.0

    fields = await client.get("/api/v1/scraping/stats/fields", params={"days": 30})
    assert fields.json()["window_days"] == 30
    assert fields.json()["sample_size"] == 0

    providers = await client.get("/api/v1/scraping/stats/providers")
    assert providers.json() == {"window_days": 7, "providers": []}

    too_long = await client.get("/api/v1/scraping/stats/fields", params={"days": 365})
    assert too_long.status_code == 422


@pytest.mark.asyncio
async def test_extractors_listing(client):
    response = await client.get("/api/v1/scraping/extractors")

    assert response.status_code == 200
    body = response.json()
    assert body["greenhouse"] == ["greenhouse_api", "greenhouse_html"]
    assert body["*"] == ["generic_html"]


@pytest.mark.asyncio
async def test_health_reports_degraded_dependencies(client, monkeypatch):
    async def redis_down():
        return "unhealthy: ConnectionError"

    monkeypatch.setattr(health, "_check_redis", redis_down)

    response = await client.get("/api/v1/health")

    assert response.status_code == 200
    body = response.json()
    assert body["checks"] == {"database": "healthy", "redis": "unhealthy: ConnectionError"}
    assert body["status"] == "degraded"


class BrokenService(ScrapingService):
    async def enqueue_extraction(self, db, job_listing_id, force=False):
        raise RuntimeError("broker connection reset")


@pytest.mark.asyncio
async def test_unexpected_errors_use_the_error_body(db, make_listing):
    async def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_scraping_service] = BrokenService
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        listing = await make_listing()
        response = await ac.post("/api/v1/scraping/attempts", json={"job_listing_id": str(listing.id)})
    app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.json() == {
        "error": "INTERNAL_ERROR",
        "message": "An unexpected error occurred",
        "details": None,
    }


@pytest.mark.asyncio
async def test_only_the_versioned_api_is_served(client):
    assert (await client.get("/")).status_code == 404
