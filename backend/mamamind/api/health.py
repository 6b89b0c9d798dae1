"""
Mama Mind - Health Check Endpoints

System health monitoring endpoints for load balancers, monitoring,
and operational visibility.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from mamamind import __version__
from mamamind.config import Settings
from mamamind.core.pipeline import IntakeOrchestrator
from mamamind.core.types import utcnow

from .routes import get_orchestrator, get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/system", tags=["system"])


def _timestamp() -> str:
    return utcnow().isoformat().replace("+00:00", "Z")


async def _datastore_check(orchestrator: IntakeOrchestrator) -> dict:
    try:
        await orchestrator.datastore.ping()
    except Exception as e:
        logger.warning("Datastore health check failed: %s", e)
        return {"status": "unhealthy", "backend": type(orchestrator.datastore).__name__}
    return {"status": "healthy", "backend": type(orchestrator.datastore).__name__}


@router.get("/health")
async def health_check(
    orchestrator: IntakeOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
) -> dict:
    """
    Overall system health check.

    Returns:
        - status: "healthy" or "degraded"
        - checks: Individual component statuses
        - timestamp: Current server time

    Used by load balancers and monitoring systems.
    """
    checks = {
        "orchestrator": {"status": "healthy"},
        "datastore": await _datastore_check(orchestrator),
        "auth": {"status": "healthy", "backend": settings.auth_backend},
        "notifications": {
            "status": "healthy" if settings.notify_on_critical else "disabled",
            "notifier": type(orchestrator.notifier).__name__,
        },
    }

    all_healthy = all(
        c.get("status") in ("healthy", "disabled")
        for c in checks.values()
    )

    return {
        "status": "healthy" if all_healthy else "degraded",
        "timestamp": _timestamp(),
        "version": __version__,
        "environment": settings.app_env,
        "checks": checks,
    }


@router.get("/ready")
async def readiness_check(
    orchestrator: IntakeOrchestrator = Depends(get_orchestrator),
):
    """
    Readiness probe for container orchestration.

    Returns 200 once the datastore answers, 503 otherwise.
    """
    datastore = await _datastore_check(orchestrator)
    ready = datastore["status"] == "healthy"
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"ready": ready, "timestamp": _timestamp()},
    )


@router.get("/live")
async def liveness_check() -> dict:
    """
    Liveness probe for container orchestration.

    Returns 200 if the service is alive.
    """
    return {
        "alive": True,
        "timestamp": _timestamp(),
    }


@router.get("/config")
async def config_info(
    settings: Settings = Depends(get_settings),
) -> dict:
    """
    Non-sensitive configuration information.

    Useful for debugging and operational visibility.
    Excludes secrets, tokens, and connection strings.
    """
    return {
        "environment": settings.app_env,
        "debug": settings.app_debug,
        "log_level": settings.app_log_level,
        "backends": {
            "datastore": settings.datastore_backend,
            "auth": settings.auth_backend,
        },
        "triage": {
            "intake_timeout_seconds": settings.intake_timeout_seconds,
            "notify_on_critical": settings.notify_on_critical,
        },
        "privacy": {
            "anonymize_logs": settings.anonymize_logs,
        },
        "timestamp": _timestamp(),
    }
