"""
Health check endpoints.

We provide two endpoints:
- /health: Basic liveness check (is the process running?)
- /health/ready: Readiness check (can we serve traffic?)

Readiness fails on broken configuration or an unusable data
directory. Having no storage profile yet is reported but does not
fail readiness: profiles are created through this same API.
"""

import logging
from typing import Any

from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from ... import __version__
from ..dependencies import ServicesDep, SettingsDep

logger = logging.getLogger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    """
    Health check response.

    Standardized format makes it easy for monitoring tools to parse.
    """
    status: str
    version: str
    details: dict[str, Any] = {}


class ReadinessCheck(BaseModel):
    """Individual readiness check result."""
    name: str
    status: str  # "ok", "warning" or "error"
    error: str | None = None


class ReadinessResponse(BaseModel):
    """Readiness check response with details."""
    status: str  # "ready" or "not_ready"
    version: str
    checks: list[ReadinessCheck]


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
    description="Returns 200 if the service is running. Does not check dependencies.",
)
async def health_check(settings: SettingsDep) -> HealthResponse:
    """Liveness check. Fast, touches nothing outside the process."""
    return HealthResponse(
        status="ok",
        version=__version__,
        details={
            "mock_mode": {
                "storage": settings.storage_mock_mode,
            }
        }
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    status_code=status.HTTP_200_OK,
    summary="Readiness check",
    description="Returns 200 if the service can handle traffic. Checks configuration and local state.",
    responses={
        503: {
            "description": "Service not ready",
            "model": ReadinessResponse,
        }
    },
)
async def readiness_check(
    response: Response,
    settings: SettingsDep,
    services: ServicesDep,
) -> ReadinessResponse:
    """
    Readiness check - can we serve traffic?

    Returns 503 if any check fails, which tells load balancers not
    to route traffic here.
    """
    checks: list[ReadinessCheck] = []
    all_ok = True

    # Check configuration
    missing_fields = settings.validate_required_fields()
    if missing_fields:
        checks.append(ReadinessCheck(
            name="configuration",
            status="error",
            error=f"Missing required fields: {', '.join(missing_fields)}"
        ))
        all_ok = False
    else:
        checks.append(ReadinessCheck(name="configuration", status="ok"))

    # Check the data directory can hold profiles and history
    data_dir = settings.data_dir
    try:
        data_dir.mkdir(parents=True, exist_ok=True)
        checks.append(ReadinessCheck(name="data_dir", status="ok"))
    except OSError as e:
        logger.error("Data directory unusable", extra={"data_dir": str(data_dir), "error": str(e)})
        checks.append(ReadinessCheck(name="data_dir", status="error", error=str(e)))
        all_ok = False

    # Report whether uploads have a profile to use
    if services.profiles.resolve_profile() is None:
        checks.append(ReadinessCheck(
            name="profile",
            status="warning",
            error="No storage profile configured"
        ))
    else:
        checks.append(ReadinessCheck(name="profile", status="ok"))

    if not all_ok:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        logger.warning(
            "Readiness check failed",
            extra={
                "checks": [
                    {"name": c.name, "status": c.status, "error": c.error}
                    for c in checks
                ]
            }
        )

    return ReadinessResponse(
        status="ready" if all_ok else "not_ready",
        version=__version__,
        checks=checks,
    )
