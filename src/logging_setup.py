"""Structured logging configuration.

Provides a JSON formatter plus request/job correlation context variables. The
FastAPI app calls `configure_logging()` at creation time. Background job
tasks run inside `job_context(job_id)` so every record they emit carries the
job identifier.
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Mapping

from src.utils.redact import redact_mapping, redact_text

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
job_id_var: ContextVar[str | None] = ContextVar("job_id", default=None)

_STANDARD_FIELDS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        data: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": redact_text(record.getMessage()),
        }
        rid = request_id_var.get()
        if rid:
            data["request_id"] = rid
        jid = job_id_var.get()
        if jid:
            data["job_id"] = jid
        if record.exc_info:
            data["exc_info"] = redact_text(self.formatException(record.exc_info))
        for key, value in record.__dict__.items():
            if key in _STANDARD_FIELDS or key.startswith("_"):
                continue
            if isinstance(value, str):
                value = redact_text(value)
            elif isinstance(value, Mapping):
                value = redact_mapping(value)
            data[key] = value
        return json.dumps(data, ensure_ascii=False, default=str)


def configure_logging(level: int = logging.INFO, force: bool = False) -> None:
    root = logging.getLogger()
    if force:
        for handler in list(root.handlers):
            root.removeHandler(handler)
    elif any(
        isinstance(h, logging.StreamHandler) for h in root.handlers
    ):  # already configured
        root.setLevel(level)
        for handler in root.handlers:
            handler.setLevel(level)
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.setLevel(level)
    root.addHandler(handler)


def set_request_id(rid: str | None) -> None:
    request_id_var.set(rid)


@contextmanager
def job_context(job_id: str | None) -> Iterator[None]:
    token = job_id_var.set(job_id)
    try:
        yield
    finally:
        job_id_var.reset(token)


__all__ = [
    "JsonFormatter",
    "configure_logging",
    "set_request_id",
    "job_context",
    "request_id_var",
    "job_id_var",
]
