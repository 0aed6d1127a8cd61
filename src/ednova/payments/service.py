"""
Course purchases.

A user has access to a course while at least one of their purchases for it
has not expired. Administrators always have access and cannot buy.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import select

from ednova.config import get_settings
from ednova.courses.service import get_course
from ednova.db.base import utcnow
from ednova.db.models import CoursePurchase, PaymentRecord, User
from ednova.errors import ConflictError, ForbiddenError, ValidationError
from ednova.payments.gateway import CheckoutRequest
from ednova.progress.store import ensure_course_entry

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from ednova.db.models import Course
    from ednova.payments.gateway import BasePaymentGateway, CheckoutSession

logger = structlog.get_logger()


async def get_payment_record(db: AsyncSession, user_id: int) -> PaymentRecord | None:
    result = await db.execute(select(PaymentRecord).where(PaymentRecord.user_id == user_id))
    return result.scalar_one_or_none()


async def get_or_create_payment_record(db: AsyncSession, user_id: int) -> PaymentRecord:
    record = await get_payment_record(db, user_id)
    if record is None:
        record = PaymentRecord(user_id=user_id, created_at=utcnow(), purchases=[])
        db.add(record)
        await db.flush()
    return record


async def has_active_purchase(db: AsyncSession, user_id: int, course_id: int) -> bool:
    result = await db.execute(
        select(CoursePurchase.id)
        .where(
            CoursePurchase.user_id == user_id,
            CoursePurchase.course_id == course_id,
            CoursePurchase.expiration_date > utcnow(),
        )
        .limit(1)
    )
    return result.first() is not None


async def require_course_access(db: AsyncSession, user: User, course_id: int) -> Course:
    """Return the course if the user may view it. Raises NotFoundError / ForbiddenError."""
    course = await get_course(db, course_id)
    if user.is_admin:
        return course
    if not await has_active_purchase(db, user.id, course_id):
        msg = "You have not purchased this course or your access has expired"
        raise ForbiddenError(msg)
    return course


async def active_course_ids(db: AsyncSession, user_id: int) -> list[int]:
    result = await db.execute(
        select(CoursePurchase.course_id)
        .where(CoursePurchase.user_id == user_id, CoursePurchase.expiration_date > utcnow())
        .distinct()
    )
    return list(result.scalars().all())


def _metadata(tenant: str, user_id: int, course_id: int) -> dict[str, str]:
    return {"tenant": tenant, "user_id": str(user_id), "course_id": str(course_id)}


async def start_checkout(
    db: AsyncSession,
    gateway: BasePaymentGateway,
    tenant: str,
    user: User,
    course_id: int,
    school_id: str | None = None,
) -> CheckoutSession:
    """Create a hosted checkout session for the course."""
    if user.is_admin:
        msg = "Administrators cannot purchase courses"
        raise ForbiddenError(msg)
    course = await get_course(db, course_id)
    if await has_active_purchase(db, user.id, course_id):
        msg = "You have already purchased this course"
        raise ConflictError(msg)

    await get_or_create_payment_record(db, user.id)

    settings = get_settings()
    base = settings.frontend_base_url.rstrip("/")
    metadata = _metadata(tenant, user.id, course_id)
    if school_id:
        metadata["school_id"] = school_id
    session = await gateway.create_checkout(
        CheckoutRequest(
            amount_minor=course.price * 100,
            currency=settings.payment_currency,
            description=course.title,
            success_url=f"{base}/{tenant}/payment/success?course_id={course_id}&session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{base}/{tenant}/course/{course_id}",
            metadata=metadata,
        )
    )
    logger.info("checkout_started", user_id=user.id, course_id=course_id, session_id=session.session_id)
    return session


async def verify_purchase(
    db: AsyncSession,
    gateway: BasePaymentGateway,
    tenant: str,
    user: User,
    course_id: int,
    session_id: str,
) -> tuple[CoursePurchase, bool]:
    """
    Grant access for a paid checkout session.

    Returns (purchase, created). Verifying the same session twice returns
    the existing purchase with ``created`` False.

    Raises:
        ValidationError: The session is unpaid or was issued for someone else.
        ConflictError: The user already has active access.
    """
    if user.is_admin:
        msg = "Administrators cannot purchase courses"
        raise ForbiddenError(msg)
    course = await get_course(db, course_id)

    existing = (
        await db.execute(select(CoursePurchase).where(CoursePurchase.checkout_session_id == session_id))
    ).scalar_one_or_none()
    if existing is not None:
        if existing.user_id != user.id or existing.course_id != course_id:
            msg = "Payment session does not match this purchase"
            raise ValidationError(msg)
        return existing, False

    session = await gateway.retrieve_session(session_id)
    expected = _metadata(tenant, user.id, course_id)
    if any(session.metadata.get(key) != value for key, value in expected.items()):
        logger.warning("checkout_metadata_mismatch", session_id=session_id, user_id=user.id, course_id=course_id)
        msg = "Payment session does not match this purchase"
        raise ValidationError(msg)
    if not session.paid:
        msg = "Payment has not been completed"
        raise ValidationError(msg)
    if await has_active_purchase(db, user.id, course_id):
        msg = "You have already purchased this course"
        raise ConflictError(msg)

    settings = get_settings()
    now = utcnow()
    record = await get_or_create_payment_record(db, user.id)
    purchase = CoursePurchase(
        user_id=user.id,
        course_id=course_id,
        amount=course.price,
        currency=settings.payment_currency,
        checkout_session_id=session_id,
        purchase_date=now,
        expiration_date=now + timedelta(days=course.expiry_months * settings.days_per_expiry_month),
    )
    record.purchases.append(purchase)
    await ensure_course_entry(db, user.id, course_id)
    await db.flush()
    logger.info("course_purchased", user_id=user.id, course_id=course_id, expires=purchase.expiration_date.isoformat())
    return purchase, True


async def purchase_history(db: AsyncSession, user_id: int) -> list[CoursePurchase]:
    result = await db.execute(
        select(CoursePurchase).where(CoursePurchase.user_id == user_id).order_by(CoursePurchase.purchase_date)
    )
    return list(result.scalars().all())
