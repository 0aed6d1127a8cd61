"""Health, readiness, and version endpoints."""

from fastapi import APIRouter, Request

from ednova.config import get_settings
from ednova.redis_client import get_optional_redis

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(request: Request) -> dict[str, object]:
    """Readiness: Redis connectivity plus the state of every connected tenant."""
    checks: dict[str, object] = {}

    redis = get_optional_redis()
    if redis is None:
        checks["redis"] = "disabled"
    else:
        try:
            await redis.ping()
            checks["redis"] = "ok"
        except Exception as exc:
            checks["redis"] = f"error: {exc}"

    tenants = request.app.state.tenant_registry.summary()
    checks["tenants"] = tenants

    all_ok = checks["redis"] in ("ok", "disabled") and all(state == "ready" for state in tenants.values())
    return {"status": "ready" if all_ok else "degraded", "checks": checks}


@router.get("/version")
async def version() -> dict[str, str]:
    """Return API version and environment."""
    settings = get_settings()
    return {
        "version": settings.app_version,
        "environment": settings.environment,
    }
