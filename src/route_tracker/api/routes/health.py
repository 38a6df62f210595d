"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...config import settings

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/routes", status_code=status.HTTP_200_OK)
def health_routes() -> dict:
    """Report whether the routing and assignment services are configured."""
    return {
        "service": "routes",
        "configured": bool(settings.routes_api_url),
        "assignments_configured": bool(settings.assignments_api_url),
        "timeout_seconds": settings.route_timeout_seconds,
        "debounce_seconds": settings.route_debounce_seconds,
        "off_route_threshold_m": settings.off_route_threshold_m,
    }
