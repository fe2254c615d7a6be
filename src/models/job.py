"""Itinerary job model and its one-way status state machine.

The job document is owned by the document store; an `ItineraryJob` only lives
for the duration of one request or background task. It produces the partial
records written at each transition and refuses to leave a terminal state.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, TypedDict

from src.errors import InvalidTransitionError

ERROR_MAX_CHARS = 255


class JobStatus(str, Enum):
    """Persisted job states; COMPLETED and FAILED are terminal."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self is not JobStatus.PROCESSING


class TimeOfDay(str, Enum):
    MORNING = "Morning"
    AFTERNOON = "Afternoon"
    EVENING = "Evening"


class Activity(TypedDict):
    time: str
    description: str
    location: str


class Day(TypedDict):
    day: int
    theme: str
    activities: List[Activity]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_job_id() -> str:
    return str(uuid.uuid4())


def truncate_error(message: str | None, limit: int = ERROR_MAX_CHARS) -> str:
    text = (message or "").strip() or "Unknown error"
    return text[:limit]


@dataclass(slots=True)
class ItineraryJob:
    destination: str
    duration_days: int
    job_id: str = field(default_factory=new_job_id)
    status: JobStatus = JobStatus.PROCESSING
    created_at: datetime = field(default_factory=utc_now)
    completed_at: datetime | None = None
    itinerary: List[Day] = field(default_factory=list)
    error: str | None = None

    def processing_record(self) -> Dict[str, Any]:
        """Full document written when the job is created."""
        return {
            "status": self.status.value,
            "destination": self.destination,
            "durationDays": self.duration_days,
            "createdAt": self.created_at,
            "completedAt": None,
            "itinerary": [],
            "error": None,
        }

    def completion_record(
        self, itinerary: List[Day], *, now: Callable[[], datetime] = utc_now
    ) -> Dict[str, Any]:
        self._ensure_open(JobStatus.COMPLETED)
        return {
            "status": JobStatus.COMPLETED.value,
            "itinerary": list(itinerary),
            "completedAt": now(),
            "error": None,
        }

    def failure_record(
        self,
        message: str | None,
        *,
        now: Callable[[], datetime] = utc_now,
        limit: int = ERROR_MAX_CHARS,
    ) -> Dict[str, Any]:
        """Partial record for a failed job; `itinerary` is left as persisted."""
        self._ensure_open(JobStatus.FAILED)
        return {
            "status": JobStatus.FAILED.value,
            "completedAt": now(),
            "error": truncate_error(message, limit),
        }

    def mark_persisted(self, record: Dict[str, Any]) -> None:
        """Apply a terminal record once the store has accepted it."""
        target = JobStatus(record["status"])
        self._ensure_open(target)
        self.status = target
        self.completed_at = record.get("completedAt")
        self.error = record.get("error")
        if "itinerary" in record:
            self.itinerary = list(record["itinerary"])

    def _ensure_open(self, target: JobStatus) -> None:
        if self.status.terminal:
            raise InvalidTransitionError(
                f"Job {self.job_id} is already {self.status.value}; cannot move to {target.value}"
            )


__all__ = [
    "ERROR_MAX_CHARS",
    "JobStatus",
    "TimeOfDay",
    "Activity",
    "Day",
    "ItineraryJob",
    "new_job_id",
    "truncate_error",
    "utc_now",
]
