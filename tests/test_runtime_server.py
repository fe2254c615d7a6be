from __future__ import annotations

from types import SimpleNamespace

import pytest

import src.runtime_server as runtime_server
from src.config import get_config


@pytest.fixture
def fresh_config(clean_env):
    get_config.cache_clear()
    yield clean_env
    get_config.cache_clear()


@pytest.fixture
def recorded_run(monkeypatch):
    recorded: dict[str, object] = {}

    def _fake_run(app, **kwargs):
        recorded.update(kwargs, app=app)

    monkeypatch.setattr(runtime_server, "uvicorn", SimpleNamespace(run=_fake_run))
    return recorded


@pytest.mark.parametrize(
    "raw,expected",
    [(None, 1), ("", 1), ("4", 4), ("invalid", 1), ("0", 1), ("-3", 1)],
)
def test_worker_count_defaults_to_single_worker(monkeypatch, raw, expected):
    if raw is None:
        monkeypatch.delenv("UVICORN_WORKERS", raising=False)
    else:
        monkeypatch.setenv("UVICORN_WORKERS", raw)
    assert runtime_server._worker_count() == expected


def test_main_invokes_uvicorn_factory(fresh_config, recorded_run):
    fresh_config.setenv("UVICORN_WORKERS", "2")
    fresh_config.setenv("PORT", "9090")
    fresh_config.setenv("SHUTDOWN_DRAIN_SECONDS", "20")
    fresh_config.delenv("FASTAPI_APP", raising=False)
    fresh_config.delenv("HOST", raising=False)

    runtime_server.main()

    assert recorded_run["app"] == "src.main:create_app"
    assert recorded_run["factory"] is True
    assert recorded_run["host"] == "0.0.0.0"
    assert recorded_run["port"] == 9090
    assert recorded_run["workers"] == 2
    assert recorded_run["proxy_headers"] is True
    assert recorded_run["timeout_graceful_shutdown"] == 25


def test_main_falls_back_on_unusable_port_and_default_drain(fresh_config, recorded_run):
    fresh_config.setenv("PORT", "not-a-port")
    fresh_config.setenv("HOST", "127.0.0.1")
    fresh_config.delenv("UVICORN_WORKERS", raising=False)

    runtime_server.main()

    assert recorded_run["host"] == "127.0.0.1"
    assert recorded_run["port"] == runtime_server.DEFAULT_PORT
    assert recorded_run["workers"] == 1
    assert recorded_run["timeout_graceful_shutdown"] == 35
