"""Itinerary request route: accept, persist `processing`, hand back a job id."""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from src.errors import InitializationError, ValidationError
from src.services.job_lifecycle import JobLifecycle
from src.utils.logging_utils import structured_log

router = APIRouter()
_API_LOG = logging.getLogger("api.itineraries")

CORS_HEADERS: Dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def _error(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse({"detail": detail}, status_code=status_code, headers=CORS_HEADERS)


async def _parse_itinerary_request(request: Request) -> Dict[str, Any]:
    content_type = request.headers.get("content-type") or ""
    if "application/json" not in content_type.lower():
        raise ValidationError("Content-Type must be application/json")
    try:
        payload = await request.json()
    except ValueError as exc:
        raise ValidationError("Invalid JSON") from exc
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON: expected an object")
    return payload


@router.options("", include_in_schema=False)
async def itinerary_preflight() -> Response:
    return Response(status_code=204, headers=CORS_HEADERS)


@router.post("", status_code=202)
async def create_itinerary(request: Request) -> JSONResponse:
    lifecycle: JobLifecycle = request.app.state.lifecycle
    try:
        payload = await _parse_itinerary_request(request)
        job = await lifecycle.start(payload.get("destination"), payload.get("durationDays"))
    except ValidationError as exc:
        structured_log(_API_LOG, logging.INFO, "itinerary_rejected", reason=str(exc))
        return _error(400, str(exc))
    except InitializationError as exc:
        _API_LOG.error(
            "itinerary_initialization_failed",
            exc_info=exc.__cause__ or exc,
            extra={"error_type": type(exc.__cause__ or exc).__name__},
        )
        return _error(500, "Failed to initialize job")
    return JSONResponse({"jobId": job.job_id}, status_code=202, headers=CORS_HEADERS)


__all__ = ["router", "CORS_HEADERS"]
