"""Process entrypoint: serve the itinerary API under uvicorn.

A single worker is the default because detached generation tasks are owned by
the process that accepted the request; ``UVICORN_WORKERS`` overrides it.
"""

from __future__ import annotations

import os

import uvicorn

from src.config import get_config

DEFAULT_APP = "src.main:create_app"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080
# Added on top of the lifecycle drain window.
SHUTDOWN_GRACE_SECONDS = 5


def _positive_int(raw: str | None, default: int) -> int:
    try:
        parsed = int(raw) if raw else default
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _worker_count() -> int:
    return _positive_int(os.getenv("UVICORN_WORKERS"), 1)


def _graceful_shutdown_seconds() -> int:
    drain = max(0.0, get_config().shutdown_drain_seconds)
    return int(drain) + SHUTDOWN_GRACE_SECONDS


def main() -> None:
    uvicorn.run(
        os.getenv("FASTAPI_APP", DEFAULT_APP),
        factory=True,
        host=os.getenv("HOST", DEFAULT_HOST),
        port=_positive_int(os.getenv("PORT"), DEFAULT_PORT),
        workers=_worker_count(),
        lifespan="on",
        proxy_headers=True,
        timeout_graceful_shutdown=_graceful_shutdown_seconds(),
    )


if __name__ == "__main__":  # pragma: no cover - exercised in runtime
    main()
