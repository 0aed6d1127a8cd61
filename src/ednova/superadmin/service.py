"""
Super-tenant: LMS operator accounts on the control tenant.

The super admin signs in with configured credentials; operator accounts,
their active status and billing dates live in the control tenant's store.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlalchemy import func, select

from ednova.auth.password import hash_password, validate_password_strength, verify_password
from ednova.config import get_settings
from ednova.db.base import utcnow
from ednova.db.models import TenantAccount, TenantBillingPayment
from ednova.errors import ConflictError, NotFoundError, UnauthorizedError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

INVALID_CREDENTIALS = "Invalid credentials."
INACTIVE_MESSAGE = "Payment for this LMS is not paid. Please contact admin."
ACTIVE_MESSAGE = "Tenant is active."


def authenticate_superadmin(email: str, password: str) -> str:
    """Check the configured super-admin credentials and return the email."""
    settings = get_settings()
    if not settings.superadmin_password_hash:
        logger.warning("superadmin_not_configured")
        raise UnauthorizedError(INVALID_CREDENTIALS)
    if email.strip().lower() != settings.superadmin_email.lower():
        raise UnauthorizedError(INVALID_CREDENTIALS)
    if not verify_password(password, settings.superadmin_password_hash):
        raise UnauthorizedError(INVALID_CREDENTIALS)
    return settings.superadmin_email


async def list_accounts(db: AsyncSession) -> list[TenantAccount]:
    result = await db.execute(select(TenantAccount).order_by(TenantAccount.created_at, TenantAccount.id))
    return list(result.scalars().all())


async def get_account(db: AsyncSession, account_id: int) -> TenantAccount:
    account = await db.get(TenantAccount, account_id)
    if account is None:
        msg = "Admin not found."
        raise NotFoundError(msg)
    return account


async def find_by_lms_name(db: AsyncSession, lms_name: str) -> TenantAccount | None:
    result = await db.execute(select(TenantAccount).where(func.lower(TenantAccount.lms_name) == lms_name.lower()))
    return result.scalar_one_or_none()


async def create_account(db: AsyncSession, email: str, password: str, lms_name: str) -> TenantAccount:
    """Create an operator account with its first billing date set to now."""
    lms_name = lms_name.strip()
    if await find_by_lms_name(db, lms_name) is not None:
        msg = "Admin with this LMS already exists."
        raise ConflictError(msg)
    email = email.strip().lower()
    if (await db.execute(select(TenantAccount.id).where(TenantAccount.email == email))).first() is not None:
        msg = "Admin with this email already exists."
        raise ConflictError(msg)
    validate_password_strength(password)

    now = utcnow()
    account = TenantAccount(
        email=email,
        password_hash=hash_password(password),
        lms_name=lms_name,
        status=True,
        created_at=now,
        payments=[TenantBillingPayment(paid_at=now, note="initial")],
    )
    db.add(account)
    await db.flush()
    logger.info("tenant_account_created", account_id=account.id, lms_name=lms_name)
    return account


async def set_status(db: AsyncSession, account_id: int, status: bool) -> TenantAccount:
    account = await get_account(db, account_id)
    account.status = status
    await db.flush()
    logger.info("tenant_account_status", account_id=account_id, status=status)
    return account


async def record_payment(db: AsyncSession, account_id: int, note: str | None = None) -> TenantAccount:
    """Record a billing date and reactivate the account."""
    account = await get_account(db, account_id)
    account.payments.append(TenantBillingPayment(paid_at=utcnow(), note=note))
    account.status = True
    await db.flush()
    logger.info("tenant_account_paid", account_id=account_id)
    return account


async def tenant_status(db: AsyncSession, tenant_id: str) -> TenantAccount | None:
    """Look up an LMS by its URL id; ``_`` stands for a space."""
    return await find_by_lms_name(db, tenant_id.replace("_", " "))
