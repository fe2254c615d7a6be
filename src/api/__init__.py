"""Routers for the itinerary jobs FastAPI application."""

from __future__ import annotations

from fastapi import APIRouter

from .itineraries import router as itineraries_router


def build_api_router() -> APIRouter:
    """Combine all API routers for inclusion in the FastAPI app."""
    router = APIRouter()
    router.include_router(itineraries_router, prefix="/itineraries", tags=["itineraries"])
    return router


__all__ = ["build_api_router"]
