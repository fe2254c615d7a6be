from __future__ import annotations

from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from src.main import create_app
from src.services.document_store import InMemoryDocumentStore
from src.services.metrics import NullMetrics, PrometheusMetrics, RecordingMetrics
from tests.stubs.job_stubs import StubGenerator


def _counter_value(name: str, outcome: str) -> float:
    value = REGISTRY.get_sample_value(
        "itinerary_job_events_total",
        {"stage": "initialize", "name": name, "outcome": outcome},
    )
    return value or 0.0


def test_prometheus_metrics_exposed_when_enabled(app_config):
    app_config.enable_metrics_raw = True
    before = _counter_value("jobs_started_total", "ok")
    app = create_app(config=app_config, store=InMemoryDocumentStore(), generator=StubGenerator())

    with TestClient(app) as client:
        client.post("/itineraries", json={"destination": "Quito", "durationDays": 1})
        response = client.get("/metrics")

    assert isinstance(app.state.metrics, PrometheusMetrics)
    assert response.status_code == 200
    assert "itinerary_job_events_total" in response.text
    assert _counter_value("jobs_started_total", "ok") == before + 1


def test_metrics_endpoint_absent_when_disabled(app_config):
    app = create_app(config=app_config, store=InMemoryDocumentStore(), generator=StubGenerator())

    with TestClient(app) as client:
        assert client.get("/metrics").status_code == 404
    assert isinstance(app.state.metrics, NullMetrics)


def test_instrument_app_is_idempotent(app_config):
    app_config.enable_metrics_raw = True
    app = create_app(config=app_config, store=InMemoryDocumentStore(), generator=StubGenerator())

    PrometheusMetrics.instrument_app(app)

    metrics_routes = [r for r in app.router.routes if getattr(r, "path", None) == "/metrics"]
    assert len(metrics_routes) == 1


def test_recording_metrics_counts_by_label():
    metrics = RecordingMetrics()
    metrics.increment("jobs_failed_total", stage="generation", outcome="GenerationError")
    metrics.increment("jobs_failed_total", stage="generation", outcome="TimeoutError")
    metrics.observe_latency("generation_latency_seconds", 0.5, stage="generation")

    assert metrics.count("jobs_failed_total") == 2
    assert metrics.count("jobs_failed_total", outcome="TimeoutError") == 1
    assert metrics.latencies == [("generation_latency_seconds", 0.5, {"stage": "generation"})]
