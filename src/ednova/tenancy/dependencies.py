"""FastAPI dependencies for the request's tenant."""

from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from ednova.tenancy.registry import TenantHandle


def get_tenant(request: Request) -> TenantHandle:
    """The handle attached by TenantResolutionMiddleware."""
    handle: TenantHandle | None = getattr(request.state, "tenant", None)
    if handle is None:
        # Only reachable when a tenant route is mounted outside /{tenant}/api.
        msg = "Tenant handle missing from request context"
        raise RuntimeError(msg)
    return handle


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session on the request's tenant database."""
    handle = get_tenant(request)
    async with handle.session() as session:
        yield session
