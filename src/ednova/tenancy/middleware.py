"""Tenant resolution middleware. Binds every tenant-scoped request to its data store."""

from __future__ import annotations

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ednova.errors import InvalidTenantError, TenantConnectionError

logger = structlog.get_logger()

# Served without a tenant
_EXEMPT_PATHS = frozenset({"/", "/health", "/ready", "/version", "/docs", "/redoc", "/openapi.json"})
_EXEMPT_PREFIXES = ("/docs/", "/media/")

MISSING_TENANT_DETAIL = "Server configuration error: tenant identifier missing."


def extract_tenant(path: str) -> str | None:
    """Return the tenant segment of ``/{tenant}/api/...`` paths, else None."""
    segments = [s for s in path.split("/") if s]
    if len(segments) >= 2 and segments[1] == "api":
        return segments[0]
    return None


class TenantResolutionMiddleware(BaseHTTPMiddleware):
    """Resolve ``/{tenant}/api/...`` against the registry on ``app.state``."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if path in _EXEMPT_PATHS or path.startswith(_EXEMPT_PREFIXES):
            return await call_next(request)

        tenant = extract_tenant(path)
        if tenant is None:
            logger.error("tenant_missing", path=path, method=request.method)
            return JSONResponse(status_code=500, content={"detail": MISSING_TENANT_DETAIL})

        registry = request.app.state.tenant_registry
        try:
            handle = await registry.resolve(tenant)
        except InvalidTenantError as exc:
            logger.warning("tenant_rejected", tenant=tenant, path=path)
            return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})
        except TenantConnectionError as exc:
            return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

        request.state.tenant = handle
        structlog.contextvars.bind_contextvars(tenant=tenant)
        try:
            return await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("tenant")
