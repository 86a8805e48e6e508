"""
Health Check Endpoints
"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
import structlog

from mern_auth.core.database import check_database_health
from mern_auth.schemas.base import HealthCheck, HealthStatus

logger = structlog.get_logger()
router = APIRouter()

SERVICE_NAME = "mern-auth-api"
SERVICE_VERSION = "1.0.0"


@router.get("/", response_model=HealthCheck)
async def health_check(request: Request):
    """
    Health of the active authentication backend

    The database is only checked when the local scheme owns it.
    """
    settings = request.app.state.settings
    checks = {}
    overall_status = HealthStatus.HEALTHY

    if request.app.state.owns_database:
        db_healthy = await check_database_health()
        checks["database"] = {"status": "healthy" if db_healthy else "unhealthy"}
        if not db_healthy:
            overall_status = HealthStatus.UNHEALTHY

    health = HealthCheck(
        status=overall_status,
        service=SERVICE_NAME,
        version=SERVICE_VERSION,
        auth_scheme=settings.AUTH_SCHEME,
        checks=checks,
    )
    if overall_status == HealthStatus.UNHEALTHY:
        logger.error("Health check failed", checks=checks)
        return JSONResponse(status_code=503, content=health.model_dump(mode="json"))
    return health
