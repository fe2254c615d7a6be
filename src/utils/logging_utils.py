"""Helpers for emitting consistent structured logs and stage telemetry."""

from __future__ import annotations

import logging
import time
from contextlib import AbstractAsyncContextManager
from typing import Any, Dict, Literal

STRUCTURED_LOG_ALLOWED_FIELDS: frozenset[str] = frozenset(
    {
        "attempt",
        "client_email",
        "collection",
        "component",
        "debug_enabled",
        "detail",
        "destination",
        "duration_days",
        "duration_ms",
        "error",
        "error_type",
        "event",
        "fields",
        "itinerary_days",
        "job_id",
        "max_attempts",
        "model",
        "path",
        "raw_preview",
        "reason",
        "request_id",
        "stage",
        "status",
        "timeout_seconds",
    }
)


def _filter_structured_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: value
        for key, value in fields.items()
        if key in STRUCTURED_LOG_ALLOWED_FIELDS and value is not None
    }


def structured_log(
    logger: logging.Logger, level: int, event: str, **fields: Any
) -> None:
    """Emit a log record with an `event` attribute and structured extras."""
    payload: Dict[str, Any] = {"event": event, "_structured_log": True}
    payload.update(_filter_structured_fields(fields))
    logger.log(level, event, extra=payload)


class StageMarker(AbstractAsyncContextManager["StageMarker"]):
    """Context manager that emits job stage start/completion telemetry."""

    def __init__(
        self,
        logger: logging.Logger,
        *,
        stage: str,
        level: int = logging.INFO,
        **base_fields: Any,
    ) -> None:
        self._logger = logger
        self._stage = stage
        merged_fields = {"stage": stage}
        merged_fields.update(base_fields)
        self._base_fields: Dict[str, Any] = _filter_structured_fields(merged_fields)
        self._level = level
        self._started_at: float | None = None
        self._completion_fields: Dict[str, Any] = {}

    def add_completion_fields(self, **fields: Any) -> None:
        self._completion_fields.update(_filter_structured_fields(fields))

    @property
    def elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        return time.perf_counter() - self._started_at

    def _start(self) -> None:
        self._started_at = time.perf_counter()
        structured_log(
            self._logger,
            self._level,
            "job_stage",
            status="started",
            **self._base_fields,
        )

    def _finish(self, exc: BaseException | None) -> None:
        payload = dict(self._base_fields)
        payload.update(self._completion_fields)
        payload["duration_ms"] = int(self.elapsed * 1000)
        if exc:
            payload["status"] = "failed"
            payload["error_type"] = exc.__class__.__name__
            structured_log(self._logger, logging.ERROR, "job_stage", **payload)
        else:
            payload["status"] = "completed"
            structured_log(self._logger, self._level, "job_stage", **payload)

    async def __aenter__(self) -> "StageMarker":
        self._start()
        return self

    async def __aexit__(self, exc_type, exc: BaseException | None, _tb) -> Literal[False]:
        self._finish(exc)
        return False


def stage_marker(
    logger: logging.Logger, *, stage: str, level: int = logging.INFO, **fields: Any
) -> StageMarker:
    """Convenience helper mirroring `async with stage_marker(...)` usage."""
    return StageMarker(logger, stage=stage, level=level, **fields)


__all__ = [
    "StageMarker",
    "stage_marker",
    "structured_log",
    "STRUCTURED_LOG_ALLOWED_FIELDS",
]
