"""Health check endpoints.

Provides liveness (/health) and readiness (/health/ready). Readiness
checks the configuration store backend; the Google connection is
reported but never fails readiness, since it is user-driven.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from src.insureflow.config import ConfigStoreBackend, get_settings
from src.insureflow.core.redis import check_config_store

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic liveness check. No external dependencies are checked."""
    settings = get_settings()
    return {"status": "ok", "environment": settings.ENVIRONMENT.value}


@router.get("/health/ready")
async def readiness_check(request: Request):
    """Readiness check: verifies the config store is reachable.

    Returns 200 if it is, 503 otherwise.
    """
    settings = get_settings()
    checks: dict = {"config_store": "ok"}

    if settings.CONFIG_STORE_BACKEND == ConfigStoreBackend.redis:
        failure = await check_config_store()
        if failure is not None:
            checks["config_store"] = "error"
            checks["config_store_error"] = failure
    else:
        checks["config_store"] = "memory"

    wizard = getattr(request.app.state, "wizard", None)
    checks["sheets"] = "connected" if wizard is not None and wizard.connected else "disconnected"

    healthy = checks["config_store"] in ("ok", "memory")
    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "ready" if healthy else "degraded", "checks": checks},
    )
