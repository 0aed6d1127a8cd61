"""
Authentication and user business logic.

Handles user creation, login lockout, verification and password-reset tokens,
profile updates and the XP leaderboard.
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import timedelta
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import func, select

from ednova.auth.password import (
    check_needs_rehash,
    hash_password,
    validate_password_strength,
    verify_password,
)
from ednova.config import get_settings
from ednova.db.base import utcnow
from ednova.db.models import ProgressRecord, User
from ednova.errors import AppError, ConflictError, UnauthorizedError, ValidationError
from ednova.storage.service import commit_or_discard, delete_quietly, store_upload

if TYPE_CHECKING:
    from fastapi import UploadFile
    from redis.asyncio import Redis
    from sqlalchemy.ext.asyncio import AsyncSession

    from ednova.storage.service import BaseAssetStorage

logger = structlog.get_logger()

INVALID_CREDENTIALS = "Invalid email or password"


class AccountLockedError(AppError):
    status_code = 429
    default_message = "Account temporarily locked. Try again later."


def hash_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode()).hexdigest()


def normalize_name(name: str) -> str:
    return name.strip().lower()


# ---------------------------------------------------------------------------
# User queries
# ---------------------------------------------------------------------------


async def get_user_by_id(db: AsyncSession, user_id: int) -> User | None:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """Fetch a user by email (case-insensitive)."""
    result = await db.execute(select(User).where(func.lower(User.email) == email.strip().lower()))
    return result.scalar_one_or_none()


async def get_user_by_name(db: AsyncSession, name: str) -> User | None:
    result = await db.execute(select(User).where(User.name == normalize_name(name)))
    return result.scalar_one_or_none()


async def admin_exists(db: AsyncSession) -> bool:
    result = await db.execute(select(func.count()).select_from(User).where(User.role == "ADMIN"))
    return result.scalar_one() > 0


# ---------------------------------------------------------------------------
# Registration and login
# ---------------------------------------------------------------------------


async def register_user(
    db: AsyncSession,
    name: str,
    email: str,
    password: str,
    role: str = "USER",
) -> User:
    """
    Create a user and their empty progress record.

    Raises:
        PasswordStrengthError: If the password is weak.
        ConflictError: If the name or email is taken.
    """
    validate_password_strength(password)

    if await get_user_by_email(db, email) is not None:
        msg = "Email already registered"
        raise ConflictError(msg)
    if await get_user_by_name(db, name) is not None:
        msg = "This name is already taken, please choose another"
        raise ConflictError(msg)

    now = utcnow()
    user = User(
        name=normalize_name(name),
        email=email.strip().lower(),
        password_hash=hash_password(password),
        role=role,
        xp=0,
        is_verified=False,
        created_at=now,
        updated_at=now,
        badges=[],
    )
    db.add(user)
    await db.flush()
    db.add(ProgressRecord(user_id=user.id, created_at=now, courses=[]))
    await db.flush()
    logger.info("user_created", user_id=user.id, role=role)
    return user


async def register_first_admin(db: AsyncSession, name: str, email: str, password: str) -> User:
    """Self-registration of the tenant's first administrator."""
    if await admin_exists(db):
        msg = "An administrator already exists for this LMS"
        raise ConflictError(msg)
    return await register_user(db, name, email, password, role="ADMIN")


async def authenticate(
    db: AsyncSession,
    redis: Redis | None,
    tenant: str,
    email: str,
    password: str,
) -> User:
    """
    Check email + password.

    Raises:
        UnauthorizedError: Same message for unknown email and wrong password.
        AccountLockedError: Too many recent failures.
    """
    user = await get_user_by_email(db, email)
    if user is None:
        raise UnauthorizedError(INVALID_CREDENTIALS)

    if await check_account_lockout(redis, tenant, user.id):
        raise AccountLockedError

    if not verify_password(password, user.password_hash):
        await increment_failed_login(redis, tenant, user.id)
        raise UnauthorizedError(INVALID_CREDENTIALS)

    await clear_failed_login(redis, tenant, user.id)

    if check_needs_rehash(user.password_hash):
        user.password_hash = hash_password(password)
        await db.flush()
        logger.info("password_rehashed", user_id=user.id)
    return user


# ---------------------------------------------------------------------------
# Account lockout (skipped when Redis is not configured)
# ---------------------------------------------------------------------------


def _lockout_key(tenant: str, user_id: int) -> str:
    return f"login_attempts:{tenant}:{user_id}"


async def check_account_lockout(redis: Redis | None, tenant: str, user_id: int) -> bool:
    if redis is None:
        return False
    count_str = await redis.get(_lockout_key(tenant, user_id))
    if count_str is None:
        return False
    return int(count_str) >= get_settings().account_lockout_threshold


async def increment_failed_login(redis: Redis | None, tenant: str, user_id: int) -> int:
    if redis is None:
        return 0
    key = _lockout_key(tenant, user_id)
    count = await redis.incr(key)
    if count == 1:
        await redis.expire(key, get_settings().account_lockout_duration_minutes * 60)
    return int(count)


async def clear_failed_login(redis: Redis | None, tenant: str, user_id: int) -> None:
    if redis is not None:
        await redis.delete(_lockout_key(tenant, user_id))


# ---------------------------------------------------------------------------
# Verification and reset tokens
# ---------------------------------------------------------------------------


async def issue_verification_token(db: AsyncSession, user: User) -> str:
    """Store a fresh verification token hash on the user; return the raw token."""
    settings = get_settings()
    raw_token = secrets.token_urlsafe(32)
    user.verification_token_hash = hash_token(raw_token)
    user.verification_token_expires_at = utcnow() + timedelta(minutes=settings.email_verification_token_ttl_minutes)
    await db.flush()
    return raw_token


async def clear_verification_token(db: AsyncSession, user: User) -> None:
    user.verification_token_hash = None
    user.verification_token_expires_at = None
    await db.flush()


async def confirm_verification(db: AsyncSession, raw_token: str) -> User:
    """Mark the token's owner verified. Raises ValidationError if invalid or expired."""
    result = await db.execute(select(User).where(User.verification_token_hash == hash_token(raw_token)))
    user = result.scalar_one_or_none()
    if user is None or user.verification_token_expires_at is None or user.verification_token_expires_at < utcnow():
        msg = "Verification token is invalid or has expired"
        raise ValidationError(msg)
    user.is_verified = True
    user.updated_at = utcnow()
    await clear_verification_token(db, user)
    logger.info("user_verified", user_id=user.id)
    return user


async def issue_reset_token(db: AsyncSession, user: User) -> str:
    settings = get_settings()
    raw_token = secrets.token_urlsafe(32)
    user.reset_token_hash = hash_token(raw_token)
    user.reset_token_expires_at = utcnow() + timedelta(minutes=settings.password_reset_token_ttl_minutes)
    await db.flush()
    return raw_token


async def clear_reset_token(db: AsyncSession, user: User) -> None:
    user.reset_token_hash = None
    user.reset_token_expires_at = None
    await db.flush()


async def reset_password(db: AsyncSession, raw_token: str, new_password: str) -> User:
    """
    Set a new password using a reset token.

    Raises:
        PasswordStrengthError: If the new password is weak.
        ValidationError: If the token is invalid or expired.
    """
    validate_password_strength(new_password)
    result = await db.execute(select(User).where(User.reset_token_hash == hash_token(raw_token)))
    user = result.scalar_one_or_none()
    if user is None or user.reset_token_expires_at is None or user.reset_token_expires_at < utcnow():
        msg = "Reset password token is invalid or has expired"
        raise ValidationError(msg)
    user.password_hash = hash_password(new_password)
    user.updated_at = utcnow()
    await clear_reset_token(db, user)
    logger.info("password_reset", user_id=user.id)
    return user


async def change_password(db: AsyncSession, user: User, old_password: str, new_password: str) -> None:
    if not verify_password(old_password, user.password_hash):
        msg = "Current password is incorrect"
        raise ValidationError(msg)
    validate_password_strength(new_password)
    user.password_hash = hash_password(new_password)
    user.updated_at = utcnow()
    await db.flush()
    logger.info("password_changed", user_id=user.id)


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


async def update_profile(
    db: AsyncSession,
    storage: BaseAssetStorage,
    tenant: str,
    user: User,
    name: str | None = None,
    avatar: UploadFile | None = None,
) -> User:
    """
    Update name and/or avatar, then commit.

    The new avatar is uploaded first; if the write fails it is deleted again.
    The previous avatar is removed only after the write succeeded.
    """
    if name is not None:
        normalized = normalize_name(name)
        if not 3 <= len(normalized) <= 20:
            msg = "Name must be between 3 and 20 characters"
            raise ValidationError(msg)
        if normalized != user.name:
            if await get_user_by_name(db, normalized) is not None:
                msg = "This name is already taken, please choose another"
                raise ConflictError(msg)
            user.name = normalized

    old_asset_id = user.avatar_asset_id
    new_asset = None
    if avatar is not None:
        new_asset = await store_upload(storage, avatar, tenant=tenant, folder="avatars")
        user.avatar_asset_id = new_asset.asset_id
        user.avatar_url = new_asset.public_url

    user.updated_at = utcnow()
    await commit_or_discard(db, storage, new_asset)

    if new_asset is not None:
        await delete_quietly(storage, old_asset_id)
    return user


async def leaderboard(db: AsyncSession, limit: int = 10) -> list[User]:
    """Users ordered by XP (highest first), ties broken by earliest signup."""
    result = await db.execute(select(User).order_by(User.xp.desc(), User.created_at.asc(), User.id.asc()).limit(limit))
    return list(result.scalars().all())
