from __future__ import annotations

import uuid

import pytest

from app.core.exceptions import AttemptNotFoundException, EventClosed, FetchError
from app.models.scraping_event import EventStatus, EventType, ScrapingEvent
from app.repositories.event_repository import EventRepository
from app.services.event_recorder import TRUNCATION_MARKER, EventRecorder, sanitize_payload
from app.services.timeline import attempt_timeline, build_timeline


@pytest.mark.asyncio
async def test_step_order_continues_across_recorders(db, make_attempt):
    attempt = await make_attempt()

    first = EventRecorder(db, attempt)
    a = await first.record_instant(EventType.HTML_FETCH, EventStatus.SUCCESS)
    b = await first.record_instant(EventType.STRUCTURED_EXTRACTION, EventStatus.FAILED)
    await db.commit()

    # A retry cycle runs in a new worker with a new recorder
    second = EventRecorder(db, attempt)
    c = await second.record_instant(EventType.HTML_FETCH, EventStatus.SUCCESS)

    assert [a.step_order, b.step_order, c.step_order] == [1, 2, 3]


@pytest.mark.asyncio
async def test_record_context_closes_event_with_output(db, make_attempt):
    attempt = await make_attempt()
    recorder = EventRecorder(db, attempt)

    async with recorder.record(EventType.HTML_FETCH, {"url": attempt.url}) as step:
        step.output["http_status"] = 200
        step.metadata["from_cache"] = False

    event = step.event
    assert event.status == EventStatus.SUCCESS.value
    assert event.completed_at is not None
    assert event.duration_ms >= 0
    assert event.output_payload == {"http_status": 200}
    assert event.extra_data == {"from_cache": False}


@pytest.mark.asyncio
async def test_record_context_marks_failure_and_reraises(db, make_attempt):
    attempt = await make_attempt()
    recorder = EventRecorder(db, attempt)

    with pytest.raises(FetchError):
        async with recorder.record(EventType.HTML_FETCH) as step:
            raise FetchError("HTTP 503: Failed to fetch HTML", http_status=503)

    assert step.event.status == EventStatus.FAILED.value
    assert step.event.error_type == "FetchError"
    assert step.event.error_message == "HTTP 503: Failed to fetch HTML"


@pytest.mark.asyncio
async def test_record_context_can_end_as_skipped(db, make_attempt):
    attempt = await make_attempt()
    recorder = EventRecorder(db, attempt)

    async with recorder.record(EventType.PERMISSION_CHECK) as step:
        step.status = EventStatus.SKIPPED

    assert step.event.status == EventStatus.SKIPPED.value


@pytest.mark.asyncio
async def test_payloads_are_truncated_and_made_json_safe(db, make_attempt):
    attempt = await make_attempt()
    recorder = EventRecorder(db, attempt, max_chars=10, max_items=2)

    event = await recorder.record_start(
        EventType.AI_EXTRACTION,
        {"prompt": "x" * 50, "attempt": attempt.id, "items": [1, 2, 3, 4]},
    )

    assert event.input_payload["prompt"] == "x" * 10 + TRUNCATION_MARKER
    # max_items caps dict keys too, so only the first two survive
    assert set(event.input_payload) == {"prompt", "attempt"}
    assert event.input_payload["attempt"] == str(attempt.id)


def test_sanitize_payload_handles_nested_values():
    payload = {"status": EventStatus.SUCCESS, "tags": ("a", "b"), "nested": {"text": "abcdef"}}
    assert sanitize_payload(payload, max_chars=3, max_items=10) == {
        "status": "success",
        "tags": ["a", "b"],
        "nested": {"text": "abc" + TRUNCATION_MARKER},
    }


@pytest.mark.asyncio
async def test_record_end_rejects_started_status(db, make_attempt):
    attempt = await make_attempt()
    recorder = EventRecorder(db, attempt)
    event = await recorder.record_start(EventType.HTML_FETCH)

    with pytest.raises(ValueError):
        await recorder.record_end(event, EventStatus.STARTED)


@pytest.mark.asyncio
async def test_closed_event_cannot_be_ended_again(db, make_attempt):
    attempt = await make_attempt()
    recorder = EventRecorder(db, attempt)
    event = await recorder.record_start(EventType.STRUCTURED_EXTRACTION)

    closed = await recorder.force_fail_open("ManuallyMarkedFailed", "Stopped by operator")
    assert closed == 1
    assert event.status == EventStatus.FAILED.value
    assert event.error_type == "ManuallyMarkedFailed"

    with pytest.raises(EventClosed):
        await recorder.record_end(event, EventStatus.SUCCESS)

    # Nothing left open
    assert await EventRepository().list_open(db, attempt.id) == []
    assert await recorder.force_fail_open("ManuallyMarkedFailed", "again") == 0


@pytest.mark.asyncio
async def test_record_failure_stores_failed_step(db, make_attempt):
    attempt = await make_attempt()
    recorder = EventRecorder(db, attempt)

    event = await recorder.record_failure(
        FetchError("boom"), step="html_fetch", metadata={"next_status": "retrying"}
    )

    assert event.event_type == EventType.FAILURE.value
    assert event.input_payload == {"failed_step": "html_fetch"}
    assert event.extra_data == {"next_status": "retrying"}


# ── Timeline ─────────────────────────────────────────────────────────────────


def _event(step_order, event_type, status, duration_ms=None, **fields):
    return ScrapingEvent(
        step_order=step_order,
        event_type=event_type.value,
        status=status.value,
        duration_ms=duration_ms,
        **fields,
    )


def test_build_timeline_orders_steps_and_summarizes():
    events = [
        _event(3, EventType.AI_EXTRACTION, EventStatus.FAILED, 900, error_type="AllProvidersExhausted"),
        _event(1, EventType.HTML_FETCH, EventStatus.SUCCESS, 120),
        _event(4, EventType.FAILURE, EventStatus.FAILED, 0),
        _event(2, EventType.STRUCTURED_EXTRACTION, EventStatus.FAILED, 40),
        _event(5, EventType.COMPLETION, EventStatus.SKIPPED),
    ]

    timeline = build_timeline(events)

    assert [s["step_order"] for s in timeline["steps"]] == [1, 2, 3, 4, 5]
    assert timeline["total_duration_ms"] == 1060
    assert timeline["successful"] == 1
    assert timeline["failed"] == 3
    assert timeline["skipped"] == 1
    assert timeline["in_progress"] == 0
    assert timeline["slowest_step"]["event_type"] == "ai_extraction"
    assert timeline["first_failure"]["event_type"] == "structured_extraction"


def test_build_timeline_empty():
    timeline = build_timeline([])
    assert timeline["steps"] == []
    assert timeline["total_duration_ms"] == 0
    assert timeline["slowest_step"] is None
    assert timeline["first_failure"] is None


@pytest.mark.asyncio
async def test_attempt_timeline_reads_events(db, make_attempt):
    attempt = await make_attempt()
    recorder = EventRecorder(db, attempt)
    await recorder.record_instant(EventType.HTML_FETCH, EventStatus.SUCCESS)
    await recorder.record_start(EventType.STRUCTURED_EXTRACTION)
    await db.commit()

    timeline = await attempt_timeline(db, attempt.id)

    assert timeline["attempt_id"] == attempt.id
    assert timeline["status"] == "pending"
    assert [s["event_type"] for s in timeline["steps"]] == ["html_fetch", "structured_extraction"]
    assert timeline["in_progress"] == 1


@pytest.mark.asyncio
async def test_attempt_timeline_unknown_attempt(db):
    with pytest.raises(AttemptNotFoundException):
        await attempt_timeline(db, uuid.uuid4())
