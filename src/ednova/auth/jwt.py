"""
JWT access tokens.

HS256 with a shared secret by default; RS256 key files are supported by
setting ``jwt_algorithm`` to an RS* value. Every token carries the tenant it
was issued for and is rejected on any other tenant.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import jwt

from ednova.config import get_settings

_keys: tuple[str, str] | None = None


def _load_keys() -> tuple[str, str]:
    """Return (signing_key, verifying_key), cached after first call."""
    global _keys  # noqa: PLW0603
    if _keys is None:
        settings = get_settings()
        if settings.jwt_algorithm.upper().startswith("HS"):
            _keys = (settings.jwt_secret_key, settings.jwt_secret_key)
        else:
            _keys = (
                Path(settings.jwt_private_key_path).read_text(),
                Path(settings.jwt_public_key_path).read_text(),
            )
    return _keys


def reset_keys() -> None:
    """Reset cached keys (useful for testing)."""
    global _keys  # noqa: PLW0603
    _keys = None


def create_access_token(
    subject: int | str,
    *,
    tenant: str,
    role: str,
    email: str,
) -> str:
    """
    Create an access token for a user of ``tenant``.

    Args:
        subject: User id (or the super-admin email on the control tenant).
        tenant: Tenant the token is valid for.
        role: USER, ADMIN or SUPERADMIN.
        email: The account email, informational only.

    Returns:
        Encoded JWT string.
    """
    signing_key, _ = _load_keys()
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": str(subject),
        "tenant": tenant,
        "role": role,
        "email": email,
        "iat": now,
        "exp": now + timedelta(minutes=settings.jwt_access_token_expire_minutes),
        "iss": settings.jwt_issuer,
        "type": "access",
    }
    return jwt.encode(payload, signing_key, algorithm=settings.jwt_algorithm)


def verify_token(token: str, *, tenant: str, expected_type: str = "access") -> dict[str, Any]:
    """
    Verify and decode a token issued for ``tenant``.

    Raises:
        jwt.InvalidTokenError: If the token is invalid, expired, of the wrong
            type or issued for another tenant.
    """
    _, verifying_key = _load_keys()
    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            verifying_key,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
        )
    except jwt.ExpiredSignatureError:
        msg = "Token has expired"
        raise jwt.InvalidTokenError(msg) from None

    if payload.get("type") != expected_type:
        msg = f"Expected token type '{expected_type}', got '{payload.get('type')}'"
        raise jwt.InvalidTokenError(msg)
    if payload.get("tenant") != tenant:
        msg = "Token was not issued for this tenant"
        raise jwt.InvalidTokenError(msg)

    return payload
