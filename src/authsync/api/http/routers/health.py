"""Health check endpoints router for monitoring service availability."""

from typing import Any

from fastapi import APIRouter, Depends
from starlette.responses import JSONResponse

from src.authsync.api.http.app_data import ApplicationDependencies
from src.authsync.api.http.deps import get_app_dependencies

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health() -> dict[str, str]:
    """Liveness probe; does not check dependencies."""
    return {"status": "healthy", "service": "authsync"}


@router.get("/ready", response_model=None)
async def readiness(
    deps: ApplicationDependencies = Depends(get_app_dependencies),
) -> dict[str, Any] | JSONResponse:
    """Readiness probe: 200 when the database answers, 503 otherwise.

    Signing keys are reported but not required; the verifier fetches them
    on demand.
    """
    db_healthy = deps.database_service.health_check()
    checks = {
        "database": {
            "status": "healthy" if db_healthy else "unhealthy",
            "type": "sqlite" if deps.config.database.is_sqlite else "postgresql",
        },
        "signing_keys": {"status": "cached" if deps.key_cache.is_fresh() else "cold"},
    }
    body = {"status": "ready" if db_healthy else "not_ready", "checks": checks}
    if not db_healthy:
        return JSONResponse(status_code=503, content=body)
    return body
