"""Itinerary job lifecycle: processing -> completed | failed.

`start` validates the request and durably records the `processing` document
before anything else happens. Generation then runs in a detached asyncio task
that the request handler never awaits. The task always finishes with exactly
one terminal write attempt; if even the `failed` write is rejected the job
stays in `processing` and the failure is only visible through logs and the
`jobs_stuck_processing_total` counter.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, List, Set

from tenacity import AsyncRetrying, stop_after_attempt, wait_random_exponential

from src.errors import GenerationError, InitializationError, ValidationError
from src.logging_setup import job_context
from src.models.job import (
    ERROR_MAX_CHARS,
    Day,
    ItineraryJob,
    JobStatus,
    new_job_id,
    utc_now,
)
from src.utils.logging_utils import stage_marker, structured_log

from .document_encoder import MAX_SAFE_INTEGER
from .interfaces import DocumentStore, ItineraryGenerator, MetricsClient
from .metrics import NullMetrics
from .openai_backend import parse_itinerary

LOG = logging.getLogger("job_lifecycle")


@dataclass(slots=True)
class LifecycleConfig:
    generation_timeout_seconds: float | None = 60.0
    generation_max_attempts: int = 1
    retry_max_wait_seconds: float = 10.0
    error_max_chars: int = ERROR_MAX_CHARS


def validate_request(destination: Any, duration_days: Any) -> tuple[str, int]:
    """Return the normalised (destination, duration_days) or raise ValidationError."""
    if not isinstance(destination, str) or not destination.strip():
        raise ValidationError(
            "Invalid input: destination and positive durationDays required"
        )
    if (
        isinstance(duration_days, bool)
        or not isinstance(duration_days, int)
        or not 0 < duration_days <= MAX_SAFE_INTEGER
    ):
        raise ValidationError(
            "Invalid input: destination and positive durationDays required"
        )
    return destination.strip(), duration_days


def _error_message(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


class JobLifecycle:
    """Creates jobs and drives their detached generation phase."""

    def __init__(
        self,
        *,
        store: DocumentStore,
        generator: ItineraryGenerator,
        config: LifecycleConfig | None = None,
        metrics: MetricsClient | None = None,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = new_job_id,
    ) -> None:
        self.store = store
        self.generator = generator
        self.config = config or LifecycleConfig()
        self.metrics = metrics or NullMetrics()
        self._clock = clock
        self._id_factory = id_factory
        self._tasks: Set[asyncio.Task[JobStatus]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def start(self, destination: Any, duration_days: Any) -> ItineraryJob:
        destination, duration_days = validate_request(destination, duration_days)
        job = ItineraryJob(
            destination=destination,
            duration_days=duration_days,
            job_id=self._id_factory(),
            created_at=self._clock(),
        )
        with job_context(job.job_id):
            try:
                async with stage_marker(LOG, stage="initialize", job_id=job.job_id):
                    await self.store.upsert(job.job_id, job.processing_record())
            except Exception as exc:  # noqa: BLE001 - every store/token failure aborts the request
                self.metrics.increment("jobs_started_total", stage="initialize", outcome="failed")
                raise InitializationError("Failed to initialize job") from exc
            self.metrics.increment("jobs_started_total", stage="initialize", outcome="ok")
            structured_log(
                LOG,
                logging.INFO,
                "job_accepted",
                job_id=job.job_id,
                duration_days=job.duration_days,
                status=job.status.value,
            )
        self._spawn(job)
        return job

    def _spawn(self, job: ItineraryJob) -> asyncio.Task[JobStatus]:
        task = asyncio.create_task(
            self.run_generation(job), name=f"itinerary-job-{job.job_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run_generation(self, job: ItineraryJob) -> JobStatus:
        """Detached phase. Never raises; returns the status left on the job."""
        with job_context(job.job_id):
            if job.status.terminal:
                structured_log(
                    LOG,
                    logging.WARNING,
                    "job_already_terminal",
                    job_id=job.job_id,
                    status=job.status.value,
                )
                return job.status
            try:
                itinerary = await self._generate_itinerary(job)
                record = job.completion_record(itinerary, now=self._clock)
                async with stage_marker(LOG, stage="persist", job_id=job.job_id):
                    await self.store.upsert(job.job_id, record)
                job.mark_persisted(record)
                self.metrics.increment("jobs_completed_total", stage="generation", outcome="ok")
                structured_log(
                    LOG,
                    logging.INFO,
                    "job_completed",
                    job_id=job.job_id,
                    itinerary_days=len(itinerary),
                    status=job.status.value,
                )
            except Exception as exc:  # noqa: BLE001 - outermost scope of the detached phase
                await self._persist_failure(job, exc)
        return job.status

    async def _generate_itinerary(self, job: ItineraryJob) -> List[Day]:
        cfg = self.config
        attempts = max(1, cfg.generation_max_attempts)
        async with stage_marker(
            LOG,
            stage="generation",
            job_id=job.job_id,
            max_attempts=attempts,
            timeout_seconds=cfg.generation_timeout_seconds,
        ) as marker:
            started = time.perf_counter()
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(attempts),
                wait=wait_random_exponential(multiplier=1, max=cfg.retry_max_wait_seconds),
                reraise=True,
            ):
                with attempt:
                    attempt_number = attempt.retry_state.attempt_number
                    if attempt_number > 1:
                        structured_log(
                            LOG,
                            logging.WARNING,
                            "generation_retry",
                            job_id=job.job_id,
                            attempt=attempt_number,
                            max_attempts=attempts,
                        )
                    raw = await self._call_generator(job)
                    itinerary = parse_itinerary(raw)
            self.metrics.observe_latency(
                "generation_latency_seconds",
                time.perf_counter() - started,
                stage="generation",
            )
            marker.add_completion_fields(itinerary_days=len(itinerary))
            return itinerary

    async def _call_generator(self, job: ItineraryJob) -> str:
        timeout = self.config.generation_timeout_seconds
        call = self.generator.generate(
            destination=job.destination, duration_days=job.duration_days
        )
        try:
            if timeout is None:
                return await call
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise GenerationError(
                f"Generation backend timed out after {timeout:g}s"
            ) from exc

    async def _persist_failure(self, job: ItineraryJob, exc: BaseException) -> None:
        LOG.error(
            "job_failed",
            exc_info=exc,
            extra={
                "job_id": job.job_id,
                "error_type": exc.__class__.__name__,
            },
        )
        self.metrics.increment("jobs_failed_total", stage="generation", outcome=exc.__class__.__name__)
        try:
            record = job.failure_record(
                _error_message(exc), now=self._clock, limit=self.config.error_max_chars
            )
            await self.store.upsert(job.job_id, record)
            job.mark_persisted(record)
        except Exception as save_exc:  # noqa: BLE001 - job stays in processing; surfaced via logs/metrics
            self.metrics.increment(
                "jobs_stuck_processing_total", stage="persist", outcome=save_exc.__class__.__name__
            )
            LOG.error(
                "job_failure_write_failed",
                exc_info=save_exc,
                extra={
                    "job_id": job.job_id,
                    "error_type": save_exc.__class__.__name__,
                    "status": job.status.value,
                },
            )

    async def drain(self, timeout: float | None = None) -> int:
        """Wait for in-flight detached tasks; returns how many are still running."""
        if not self._tasks:
            return 0
        _done, still_running = await asyncio.wait(set(self._tasks), timeout=timeout)
        if still_running:
            LOG.warning(
                "job_drain_incomplete",
                extra={"pending": len(still_running)},
            )
        return len(still_running)


__all__ = ["JobLifecycle", "LifecycleConfig", "validate_request"]
