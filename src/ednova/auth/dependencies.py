"""FastAPI authentication dependencies."""

from __future__ import annotations

from typing import Any

import jwt
from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from ednova.auth.jwt import verify_token
from ednova.auth.service import get_user_by_id
from ednova.config import get_settings
from ednova.db.models import User
from ednova.errors import ForbiddenError, UnauthorizedError
from ednova.tenancy.dependencies import get_db, get_tenant
from ednova.tenancy.registry import TenantHandle

_bearer = HTTPBearer(auto_error=False)


def _extract_token(request: Request, credentials: HTTPAuthorizationCredentials | None) -> str:
    """Bearer header first, then the auth cookie."""
    if credentials is not None and credentials.credentials:
        return credentials.credentials
    token = request.cookies.get(get_settings().auth_cookie_name)
    if not token:
        msg = "Please login to access this resource"
        raise UnauthorizedError(msg)
    return token


async def get_token_payload(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    handle: TenantHandle = Depends(get_tenant),
) -> dict[str, Any]:
    """Decoded claims of a token issued for the request's tenant."""
    token = _extract_token(request, credentials)
    try:
        return verify_token(token, tenant=handle.name)
    except jwt.InvalidTokenError as e:
        raise UnauthorizedError(str(e)) from e


async def get_current_user(
    payload: dict[str, Any] = Depends(get_token_payload),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Verify the token and load its user from the tenant database."""
    if payload.get("role") == "SUPERADMIN":
        msg = "Super admin tokens cannot access LMS resources"
        raise ForbiddenError(msg)
    try:
        user_id = int(payload["sub"])
    except (KeyError, ValueError) as e:
        msg = "Invalid token subject"
        raise UnauthorizedError(msg) from e
    user = await get_user_by_id(db, user_id)
    if user is None:
        msg = "User not found"
        raise UnauthorizedError(msg)
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        msg = "Role: USER is not allowed to access this resource"
        raise ForbiddenError(msg)
    return user


async def require_superadmin(payload: dict[str, Any] = Depends(get_token_payload)) -> dict[str, Any]:
    if payload.get("role") != "SUPERADMIN":
        msg = "Only the super admin can access this resource"
        raise ForbiddenError(msg)
    return payload
