"""Shared interfaces used across the itinerary jobs services."""

from __future__ import annotations

from typing import Any, Mapping, Protocol


class DocumentStore(Protocol):
    """Persistence seam for job documents (partial-field upserts)."""

    async def upsert(self, job_id: str, record: Mapping[str, Any]) -> None: ...


class ItineraryGenerator(Protocol):
    """Generation backend returning the raw JSON text of an itinerary."""

    async def generate(self, *, destination: str, duration_days: int) -> str: ...


class MetricsClient(Protocol):
    """Interface for emitting metrics to Prometheus."""

    def observe_latency(self, name: str, value: float, **labels: str) -> None: ...

    def increment(self, name: str, amount: int = 1, **labels: str) -> None: ...


__all__ = ["DocumentStore", "ItineraryGenerator", "MetricsClient"]
