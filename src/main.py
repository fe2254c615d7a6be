"""FastAPI application entrypoint for the itinerary jobs service."""

from __future__ import annotations

import logging
import os
import sys
import uuid
from typing import Any, Callable

import httpx
from fastapi import FastAPI, Request

from src.api import build_api_router
from src.config import AppConfig, get_config
from src.logging_setup import configure_logging, set_request_id
from src.services.document_store import FirestoreDocumentStore
from src.services.interfaces import DocumentStore, ItineraryGenerator
from src.services.job_lifecycle import JobLifecycle, LifecycleConfig
from src.services.metrics import NullMetrics, PrometheusMetrics
from src.services.openai_backend import OpenAIItineraryBackend
from src.services.token_provider import TokenProvider
from src.utils.logging_utils import structured_log

DEBUG_ENABLED = any(arg == "--debug" for arg in sys.argv) or os.getenv(
    "DEBUG", "false"
).strip().lower() in {"1", "true", "yes", "on"}
LOG_LEVEL = logging.DEBUG if DEBUG_ENABLED else logging.INFO

_API_LOG = logging.getLogger("api")


def _health_payload() -> dict[str, str]:
    return {"status": "ok"}


def _request_id_from(request: Request) -> str:
    trace_header = request.headers.get("x-cloud-trace-context") or ""
    return (
        request.headers.get("x-request-id")
        or trace_header.split("/", 1)[0].strip()
        or uuid.uuid4().hex
    )


def _build_document_store(
    cfg: AppConfig, *, http_client: httpx.AsyncClient, metrics: Any
) -> DocumentStore:
    token_provider = TokenProvider(
        token_uri=cfg.oauth_token_uri,
        scope=cfg.oauth_scope,
        http_client=http_client,
        timeout=cfg.http_timeout_seconds,
        metrics=metrics,
    )
    return FirestoreDocumentStore(
        project_id=cfg.project_id,
        collection=cfg.firestore_collection,
        database=cfg.firestore_database,
        base_url=cfg.firestore_base_url,
        credential=cfg.service_credential(),
        token_provider=token_provider,
        http_client=http_client,
        timeout=cfg.http_timeout_seconds,
        metrics=metrics,
    )


def _build_generator(cfg: AppConfig) -> ItineraryGenerator:
    return OpenAIItineraryBackend(
        api_key=cfg.openai_api_key,
        model=cfg.openai_model,
        max_tokens=cfg.llm_max_tokens,
        temperature=cfg.llm_temperature,
        timeout=cfg.generation_timeout,
    )


def create_app(
    config: AppConfig | None = None,
    *,
    store: DocumentStore | None = None,
    generator: ItineraryGenerator | None = None,
) -> FastAPI:
    configure_logging(level=LOG_LEVEL)
    if config is None:
        get_config.cache_clear()
        config = get_config()
    cfg = config

    app = FastAPI(title="Itinerary Jobs API", version="1.0.0")
    app.state.config = cfg

    if cfg.enable_metrics:
        metrics: Any = PrometheusMetrics.instrument_app(app)
    else:
        metrics = NullMetrics()
    app.state.metrics = metrics

    http_client: httpx.AsyncClient | None = None
    if store is None:
        http_client = httpx.AsyncClient(timeout=cfg.http_timeout_seconds)
        store = _build_document_store(cfg, http_client=http_client, metrics=metrics)
    if generator is None:
        generator = _build_generator(cfg)
    app.state.http_client = http_client
    app.state.store = store
    app.state.generator = generator
    app.state.lifecycle = JobLifecycle(
        store=store,
        generator=generator,
        config=LifecycleConfig(
            generation_timeout_seconds=cfg.generation_timeout,
            generation_max_attempts=cfg.generation_max_attempts,
        ),
        metrics=metrics,
    )
    structured_log(
        _API_LOG,
        logging.INFO,
        "service_components_configured",
        component=store.__class__.__name__,
        model=getattr(generator, "model", generator.__class__.__name__),
        collection=cfg.firestore_collection,
        debug_enabled=DEBUG_ENABLED,
    )

    @app.get("/healthz", summary="Healthz")
    async def healthz():
        return _health_payload()

    @app.get("/readyz", include_in_schema=False)
    async def readyz():
        return _health_payload()

    app.include_router(build_api_router())

    @app.middleware("http")
    async def _request_context(request: Request, call_next: Callable[[Request], Any]):
        set_request_id(_request_id_from(request))
        try:
            return await call_next(request)
        finally:
            set_request_id(None)

    @app.on_event("startup")
    async def _startup_diag():
        if http_client is not None:
            cfg.validate_required()
        routes = [getattr(r, "path", str(r)) for r in app.router.routes]
        _API_LOG.info(
            "boot_canary", extra={"service": "itinerary-jobs", "routes": routes}
        )

    @app.on_event("shutdown")
    async def _drain_jobs():
        lifecycle: JobLifecycle = app.state.lifecycle
        still_running = await lifecycle.drain(timeout=cfg.shutdown_drain_seconds)
        if still_running:
            _API_LOG.error("shutdown_with_running_jobs", extra={"pending": still_running})
        if app.state.http_client is not None:
            await app.state.http_client.aclose()

    return app


__all__ = ["create_app"]
