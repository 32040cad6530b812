"""Health-check endpoint.

Load balancers and container health checks hit this endpoint to verify
the application is running and responsive.  It sits outside the signed
and authenticated protocol routes.
"""

from __future__ import annotations

from fastapi import APIRouter

from acp.config import API_VERSION

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Return ``{"status": "healthy", "api_version": ...}`` with 200."""
    return {"status": "healthy", "api_version": API_VERSION}
