"""Metrics utilities for the itinerary jobs service."""

from __future__ import annotations

import logging
from typing import Any, ClassVar

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.responses import PlainTextResponse

from .interfaces import MetricsClient

LOG = logging.getLogger(__name__)


class PrometheusMetrics(MetricsClient):
    """Prometheus-backed metrics client."""

    _LATENCY = Histogram(
        "itinerary_job_latency_seconds",
        "Job stage latency in seconds",
        ["stage", "name"],
    )
    _COUNTERS = Counter(
        "itinerary_job_events_total",
        "Job lifecycle event counts",
        ["stage", "name", "outcome"],
    )
    _DEFAULT_INSTANCE: ClassVar["PrometheusMetrics | None"] = None

    def observe_latency(self, name: str, value: float, **labels: str) -> None:
        stage = labels.get("stage", "unknown")
        PrometheusMetrics._LATENCY.labels(stage=stage, name=name).observe(value)

    def increment(self, name: str, amount: int = 1, **labels: str) -> None:
        stage = labels.get("stage", "unknown")
        outcome = labels.get("outcome", "")
        PrometheusMetrics._COUNTERS.labels(stage=stage, name=name, outcome=outcome).inc(amount)

    @classmethod
    def default(cls) -> "PrometheusMetrics":
        if cls._DEFAULT_INSTANCE is None:
            cls._DEFAULT_INSTANCE = cls()
        return cls._DEFAULT_INSTANCE

    @classmethod
    def instrument_app(cls, app: Any) -> "PrometheusMetrics":
        """Attach the /metrics endpoint to the FastAPI app (once)."""
        metrics = cls.default()
        if getattr(app.state, "_prometheus_instrumented", False):
            return metrics

        @app.get("/metrics", include_in_schema=False)
        async def _metrics_endpoint():  # pragma: no cover - passthrough
            return PlainTextResponse(
                generate_latest().decode("utf-8"), media_type=CONTENT_TYPE_LATEST
            )

        app.state._prometheus_instrumented = True
        app.state.metrics = metrics
        return metrics


class NullMetrics(MetricsClient):
    """No-op metrics implementation."""

    def observe_latency(self, name: str, value: float, **labels: str) -> None:
        LOG.debug("Metric ignored: %s=%s labels=%s", name, value, labels)

    def increment(self, name: str, amount: int = 1, **labels: str) -> None:
        LOG.debug("Counter ignored: %s+=%s labels=%s", name, amount, labels)


class RecordingMetrics(MetricsClient):
    """Keeps every emitted metric in memory; used by tests and local runs."""

    def __init__(self) -> None:
        self.latencies: list[tuple[str, float, dict[str, str]]] = []
        self.counters: list[tuple[str, int, dict[str, str]]] = []

    def observe_latency(self, name: str, value: float, **labels: str) -> None:
        self.latencies.append((name, value, dict(labels)))

    def increment(self, name: str, amount: int = 1, **labels: str) -> None:
        self.counters.append((name, amount, dict(labels)))

    def count(self, name: str, **labels: str) -> int:
        return sum(
            amount
            for counter, amount, recorded in self.counters
            if counter == name and all(recorded.get(k) == v for k, v in labels.items())
        )


__all__ = ["PrometheusMetrics", "NullMetrics", "RecordingMetrics"]
