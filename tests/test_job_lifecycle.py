from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from src.errors import GenerationError, InitializationError, ValidationError
from src.models.job import JobStatus
from src.services.document_store import InMemoryDocumentStore
from src.services.job_lifecycle import JobLifecycle, LifecycleConfig, validate_request
from src.services.metrics import RecordingMetrics
from tests.stubs.job_stubs import SAMPLE_ITINERARY, FlakyStore, StubGenerator

NOW = datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)


def _lifecycle(store, generator, **config) -> tuple[JobLifecycle, RecordingMetrics]:
    metrics = RecordingMetrics()
    lifecycle = JobLifecycle(
        store=store,
        generator=generator,
        config=LifecycleConfig(**config),
        metrics=metrics,
        clock=lambda: NOW,
    )
    return lifecycle, metrics


@pytest.mark.asyncio
async def test_successful_job_completes_with_itinerary():
    store = InMemoryDocumentStore()
    generator = StubGenerator()
    lifecycle, metrics = _lifecycle(store, generator)

    job = await lifecycle.start("  Kyoto ", 1)
    await lifecycle.drain()

    document = store.get(job.job_id)
    assert document == {
        "status": "completed",
        "destination": "Kyoto",
        "durationDays": 1,
        "createdAt": NOW,
        "completedAt": NOW,
        "itinerary": SAMPLE_ITINERARY,
        "error": None,
    }
    assert [w["status"] for w in store.writes[job.job_id]] == ["processing", "completed"]
    assert generator.calls == [{"destination": "Kyoto", "duration_days": 1}]
    assert job.status is JobStatus.COMPLETED
    assert metrics.count("jobs_completed_total") == 1
    assert metrics.latencies[0][0] == "generation_latency_seconds"


@pytest.mark.asyncio
async def test_processing_document_is_written_before_start_returns():
    store = InMemoryDocumentStore()
    lifecycle, _ = _lifecycle(store, StubGenerator(delay=0.05))

    job = await lifecycle.start("Oslo", 2)

    assert store.get(job.job_id)["status"] == "processing"
    assert store.get(job.job_id)["completedAt"] is None
    assert lifecycle.pending == 1
    await lifecycle.drain()
    assert lifecycle.pending == 0


@pytest.mark.asyncio
async def test_malformed_output_fails_job_with_bounded_error():
    store = InMemoryDocumentStore()
    lifecycle, metrics = _lifecycle(store, StubGenerator("{not json " + "x" * 600))

    job = await lifecycle.start("Rome", 2)
    await lifecycle.drain()

    document = store.get(job.job_id)
    assert document["status"] == "failed"
    assert document["completedAt"] == NOW
    assert document["itinerary"] == []
    assert document["error"].startswith("Failed to parse LLM output as JSON")
    assert len(document["error"]) <= 255
    assert metrics.count("jobs_failed_total", outcome="GenerationError") == 1


@pytest.mark.asyncio
async def test_missing_itinerary_key_fails_job():
    store = InMemoryDocumentStore()
    lifecycle, _ = _lifecycle(store, StubGenerator(json.dumps({"days": []})))

    job = await lifecycle.start("Rome", 2)
    await lifecycle.drain()

    document = store.get(job.job_id)
    assert document["status"] == "failed"
    assert document["error"] == 'Invalid itinerary format: expected array under "itinerary"'


@pytest.mark.asyncio
async def test_backend_exception_fails_job():
    store = InMemoryDocumentStore()
    lifecycle, _ = _lifecycle(store, StubGenerator(GenerationError("OpenAI API error: rate limited")))

    job = await lifecycle.start("Rome", 2)
    await lifecycle.drain()

    assert store.get(job.job_id)["error"] == "OpenAI API error: rate limited"
    assert job.status is JobStatus.FAILED


@pytest.mark.asyncio
async def test_generation_timeout_fails_job():
    store = InMemoryDocumentStore()
    lifecycle, _ = _lifecycle(
        store, StubGenerator(delay=1.0), generation_timeout_seconds=0.05
    )

    job = await lifecycle.start("Rome", 2)
    await lifecycle.drain()

    document = store.get(job.job_id)
    assert document["status"] == "failed"
    assert document["error"] == "Generation backend timed out after 0.05s"


@pytest.mark.asyncio
async def test_retry_budget_recovers_from_one_failure():
    store = InMemoryDocumentStore()
    generator = StubGenerator(
        RuntimeError("flaky"), json.dumps({"itinerary": SAMPLE_ITINERARY})
    )
    lifecycle, _ = _lifecycle(
        store, generator, generation_max_attempts=2, retry_max_wait_seconds=0
    )

    job = await lifecycle.start("Rome", 1)
    await lifecycle.drain()

    assert len(generator.calls) == 2
    assert store.get(job.job_id)["status"] == "completed"


@pytest.mark.asyncio
async def test_single_attempt_by_default():
    store = InMemoryDocumentStore()
    generator = StubGenerator(RuntimeError("flaky"), json.dumps({"itinerary": []}))
    lifecycle, _ = _lifecycle(store, generator)

    job = await lifecycle.start("Rome", 1)
    await lifecycle.drain()

    assert len(generator.calls) == 1
    assert store.get(job.job_id)["status"] == "failed"


@pytest.mark.asyncio
async def test_failed_completion_write_records_failure_instead():
    store = FlakyStore("completed", error=RuntimeError("Document store error 503: unavailable"))
    lifecycle, _ = _lifecycle(store, StubGenerator())

    job = await lifecycle.start("Rome", 1)
    await lifecycle.drain()

    document = store.get(job.job_id)
    assert document["status"] == "failed"
    assert document["error"] == "Document store error 503: unavailable"
    assert document["itinerary"] == []
    assert [w["status"] for w in store.writes[job.job_id]] == ["processing", "failed"]
    assert job.status is JobStatus.FAILED


@pytest.mark.asyncio
async def test_job_stays_processing_when_failure_write_is_rejected():
    store = FlakyStore("failed")
    lifecycle, metrics = _lifecycle(store, StubGenerator(GenerationError("boom")))

    job = await lifecycle.start("Rome", 1)
    await lifecycle.drain()

    assert store.get(job.job_id)["status"] == "processing"
    assert job.status is JobStatus.PROCESSING
    assert len(store.rejected) == 1
    assert metrics.count("jobs_stuck_processing_total") == 1


@pytest.mark.asyncio
async def test_initialization_failure_raises_and_spawns_nothing():
    store = FlakyStore("processing")
    generator = StubGenerator()
    lifecycle, metrics = _lifecycle(store, generator)

    with pytest.raises(InitializationError, match="Failed to initialize job") as excinfo:
        await lifecycle.start("Rome", 1)

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert lifecycle.pending == 0
    assert generator.calls == []
    assert len(store) == 0
    assert metrics.count("jobs_started_total", outcome="failed") == 1


@pytest.mark.parametrize(
    "destination,duration_days",
    [
        (None, 3),
        ("", 3),
        ("   ", 3),
        (42, 3),
        ("Paris", None),
        ("Paris", 0),
        ("Paris", -2),
        ("Paris", "3"),
        ("Paris", 2.5),
        ("Paris", 2.0),
        ("Paris", True),
        ("Paris", 2**53 + 1),
        ("Paris", 10**400),
    ],
)
@pytest.mark.asyncio
async def test_invalid_requests_write_nothing(destination, duration_days):
    store = InMemoryDocumentStore()
    lifecycle, _ = _lifecycle(store, StubGenerator())

    with pytest.raises(ValidationError, match="destination and positive durationDays required"):
        await lifecycle.start(destination, duration_days)

    assert len(store) == 0
    assert lifecycle.pending == 0


def test_validate_request_normalises_destination():
    assert validate_request("  Cape Town  ", 4) == ("Cape Town", 4)
    assert validate_request("Cape Town", 2**53) == ("Cape Town", 2**53)


@pytest.mark.asyncio
async def test_job_ids_are_unique():
    store = InMemoryDocumentStore()
    lifecycle, _ = _lifecycle(store, StubGenerator())

    jobs = [await lifecycle.start("Lima", 1) for _ in range(20)]
    await lifecycle.drain()

    assert len({job.job_id for job in jobs}) == 20
    assert len(store) == 20


@pytest.mark.asyncio
async def test_drain_reports_jobs_still_running():
    store = InMemoryDocumentStore()
    lifecycle, _ = _lifecycle(store, StubGenerator(delay=0.3))

    await lifecycle.start("Lima", 1)

    assert await lifecycle.drain(timeout=0.01) == 1
    assert await lifecycle.drain() == 0


@pytest.mark.asyncio
async def test_rerunning_a_finished_job_is_a_no_op():
    store = InMemoryDocumentStore()
    generator = StubGenerator()
    lifecycle, metrics = _lifecycle(store, generator)

    job = await lifecycle.start("Lima", 1)
    await lifecycle.drain()
    writes_before = list(store.writes[job.job_id])

    assert await lifecycle.run_generation(job) is JobStatus.COMPLETED

    assert len(generator.calls) == 1
    assert store.writes[job.job_id] == writes_before
    assert metrics.count("jobs_completed_total") == 1
    assert metrics.count("jobs_stuck_processing_total") == 0
