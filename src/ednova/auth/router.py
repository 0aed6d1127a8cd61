"""User and authentication endpoints: /{tenant}/api/v1/user/*."""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from ednova.auth.dependencies import get_current_user
from ednova.auth.jwt import create_access_token
from ednova.auth.password import PasswordStrengthError
from ednova.auth.schemas import (
    AdminExistsResponse,
    ChangePasswordRequest,
    EmailRequest,
    LeaderboardEntry,
    LeaderboardResponse,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
    UserBadgeResponse,
    UserResponse,
)
from ednova.auth.service import (
    admin_exists,
    authenticate,
    change_password,
    clear_reset_token,
    clear_verification_token,
    confirm_verification,
    get_user_by_email,
    issue_reset_token,
    issue_verification_token,
    leaderboard,
    register_first_admin,
    register_user,
    reset_password,
    update_profile,
)
from ednova.config import get_settings
from ednova.db.models import User
from ednova.email.service import get_email_service
from ednova.errors import ExternalServiceError
from ednova.redis_client import get_optional_redis
from ednova.storage.service import BaseAssetStorage, get_asset_storage
from ednova.tenancy.dependencies import get_db, get_tenant
from ednova.tenancy.registry import TenantHandle

logger = structlog.get_logger()

router = APIRouter(prefix="/{tenant}/api/v1/user", tags=["Users"])

RESET_MAIL_SENT = "If that email exists, a reset link has been sent."
VERIFY_MAIL_SENT = "If that email exists, a verification link has been sent."


def user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        xp=user.xp,
        is_verified=user.is_verified,
        avatar_url=user.avatar_url,
        badges=[
            UserBadgeResponse(id=ub.badge.id, title=ub.badge.title, image_url=ub.badge.image_url, earned_at=ub.earned_at)
            for ub in user.badges
        ],
        created_at=user.created_at,
    )


async def _issue_session(db: AsyncSession, response: Response, handle: TenantHandle, user: User) -> TokenResponse:
    """Commit, then hand out an access token in the body and the auth cookie."""
    settings = get_settings()
    await db.commit()
    token = create_access_token(user.id, tenant=handle.name, role=user.role, email=user.email)
    max_age = settings.jwt_access_token_expire_minutes * 60
    response.set_cookie(
        settings.auth_cookie_name,
        token,
        max_age=max_age,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite="none" if settings.auth_cookie_secure else "lax",
    )
    return TokenResponse(access_token=token, expires_in=max_age, user=user_response(user))


def _link(handle: TenantHandle, path: str) -> str:
    return f"{get_settings().frontend_base_url.rstrip('/')}/{handle.name}/{path}"


# ---------------------------------------------------------------------------
# Registration and login
# ---------------------------------------------------------------------------


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(
    body: RegisterRequest,
    response: Response,
    handle: TenantHandle = Depends(get_tenant),
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    """Register a learner and send the welcome / verification email."""
    try:
        user = await register_user(db, body.name, body.email, body.password)
    except PasswordStrengthError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    settings = get_settings()
    raw_token = await issue_verification_token(db, user)
    await db.commit()
    sent = await get_email_service().send_template(
        to=user.email,
        template_name="welcome",
        context={
            "name": user.name,
            "verify_url": _link(handle, f"verify/{raw_token}"),
            "expires_minutes": settings.email_verification_token_ttl_minutes,
        },
    )
    if not sent:
        logger.warning("welcome_email_failed", user_id=user.id)
        await clear_verification_token(db, user)

    return await _issue_session(db, response, handle, user)


@router.get("/admin-exists", response_model=AdminExistsResponse)
async def check_admin_exists(db: AsyncSession = Depends(get_db)) -> AdminExistsResponse:
    return AdminExistsResponse(admin_exists=await admin_exists(db))


@router.post("/admin-register", response_model=TokenResponse, status_code=201)
async def admin_register(
    body: RegisterRequest,
    response: Response,
    handle: TenantHandle = Depends(get_tenant),
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    """Register the tenant's first administrator. Closed once an admin exists."""
    try:
        user = await register_first_admin(db, body.name, body.email, body.password)
    except PasswordStrengthError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return await _issue_session(db, response, handle, user)


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    response: Response,
    handle: TenantHandle = Depends(get_tenant),
    db: AsyncSession = Depends(get_db),
    redis: Redis | None = Depends(get_optional_redis),
) -> TokenResponse:
    user = await authenticate(db, redis, handle.name, body.email, body.password)
    return await _issue_session(db, response, handle, user)


@router.get("/logout", response_model=MessageResponse)
async def logout(response: Response) -> MessageResponse:
    response.delete_cookie(get_settings().auth_cookie_name)
    return MessageResponse(message="Logged out successfully")


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(get_current_user)) -> UserResponse:
    return user_response(user)


@router.put("/me", response_model=UserResponse)
async def update_me(
    name: str | None = Form(None),
    avatar: UploadFile | None = File(None),
    user: User = Depends(get_current_user),
    handle: TenantHandle = Depends(get_tenant),
    storage: BaseAssetStorage = Depends(get_asset_storage),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """Update name and/or avatar (multipart)."""
    user = await update_profile(db, storage, handle.name, user, name=name, avatar=avatar)
    return user_response(user)


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    limit: int = Query(10, ge=1),
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> LeaderboardResponse:
    users = await leaderboard(db, min(limit, get_settings().leaderboard_max_limit))
    return LeaderboardResponse(
        entries=[
            LeaderboardEntry(
                rank=rank,
                id=u.id,
                name=u.name,
                avatar_url=u.avatar_url,
                xp=u.xp,
                badges=[ub.badge.title for ub in u.badges],
            )
            for rank, u in enumerate(users, start=1)
        ]
    )


# ---------------------------------------------------------------------------
# Email verification
# ---------------------------------------------------------------------------


@router.post("/verify-registration", response_model=MessageResponse)
async def request_verification(
    body: EmailRequest,
    handle: TenantHandle = Depends(get_tenant),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """Send a fresh verification link. The token is dropped again if the mail cannot be delivered."""
    user = await get_user_by_email(db, body.email)
    if user is None or user.is_verified:
        return MessageResponse(message=VERIFY_MAIL_SENT)

    settings = get_settings()
    raw_token = await issue_verification_token(db, user)
    await db.commit()
    sent = await get_email_service().send_template(
        to=user.email,
        template_name="verify_email",
        context={
            "verify_url": _link(handle, f"verify/{raw_token}"),
            "expires_minutes": settings.email_verification_token_ttl_minutes,
        },
    )
    if not sent:
        await clear_verification_token(db, user)
        await db.commit()
        msg = "Verification email could not be sent. Please try again later."
        raise ExternalServiceError(msg)
    return MessageResponse(message=VERIFY_MAIL_SENT)


@router.post("/verify/{token}", response_model=UserResponse)
async def complete_verification(token: str, db: AsyncSession = Depends(get_db)) -> UserResponse:
    user = await confirm_verification(db, token)
    await db.commit()
    return user_response(user)


# ---------------------------------------------------------------------------
# Password flows
# ---------------------------------------------------------------------------


@router.post("/reset", response_model=MessageResponse)
async def forgot_password(
    body: EmailRequest,
    handle: TenantHandle = Depends(get_tenant),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """Send a reset link. The token is dropped again if the mail cannot be delivered."""
    user = await get_user_by_email(db, body.email)
    if user is None:
        return MessageResponse(message=RESET_MAIL_SENT)

    settings = get_settings()
    raw_token = await issue_reset_token(db, user)
    await db.commit()
    sent = await get_email_service().send_template(
        to=user.email,
        template_name="password_reset",
        context={
            "reset_url": _link(handle, f"reset/{raw_token}"),
            "expires_minutes": settings.password_reset_token_ttl_minutes,
        },
    )
    if not sent:
        await clear_reset_token(db, user)
        await db.commit()
        msg = "Reset email could not be sent. Please try again later."
        raise ExternalServiceError(msg)
    return MessageResponse(message=RESET_MAIL_SENT)


@router.post("/reset/{token}", response_model=MessageResponse)
async def complete_reset(
    token: str,
    body: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    try:
        await reset_password(db, token, body.password)
    except PasswordStrengthError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return MessageResponse(message="Password has been reset")


@router.post("/change-password", response_model=MessageResponse)
async def update_password(
    body: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    try:
        await change_password(db, user, body.old_password, body.new_password)
    except PasswordStrengthError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()

    sent = await get_email_service().send_template(
        to=user.email,
        template_name="password_changed",
        context={"name": user.name},
    )
    if not sent:
        logger.warning("password_changed_email_failed", user_id=user.id)
    return MessageResponse(message="Password changed successfully")
