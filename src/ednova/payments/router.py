"""Course checkout endpoints: /{tenant}/api/v1/payment/*."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from ednova.auth.dependencies import get_current_user
from ednova.config import get_settings
from ednova.db.base import utcnow
from ednova.db.models import Course, User
from ednova.email.service import get_email_service
from ednova.payments.gateway import BasePaymentGateway, get_payment_gateway
from ednova.payments.schemas import (
    CheckoutRequestBody,
    CheckoutResponse,
    CoursePurchases,
    PurchaseHistoryResponse,
    PurchaseResponse,
    VerifyPurchaseRequest,
    VerifyPurchaseResponse,
)
from ednova.payments.service import purchase_history, start_checkout, verify_purchase
from ednova.tenancy.dependencies import get_db, get_tenant
from ednova.tenancy.registry import TenantHandle

logger = structlog.get_logger()

router = APIRouter(prefix="/{tenant}/api/v1/payment", tags=["Payments"])


@router.post("/checkout", response_model=CheckoutResponse)
async def checkout(
    body: CheckoutRequestBody,
    user: User = Depends(get_current_user),
    handle: TenantHandle = Depends(get_tenant),
    gateway: BasePaymentGateway = Depends(get_payment_gateway),
    db: AsyncSession = Depends(get_db),
) -> CheckoutResponse:
    """Open a hosted checkout session for a course."""
    session = await start_checkout(db, gateway, handle.name, user, body.course_id, body.school_id)
    await db.commit()
    return CheckoutResponse(session_id=session.session_id, url=session.url)


@router.post("/verify", response_model=VerifyPurchaseResponse)
async def verify(
    body: VerifyPurchaseRequest,
    user: User = Depends(get_current_user),
    handle: TenantHandle = Depends(get_tenant),
    gateway: BasePaymentGateway = Depends(get_payment_gateway),
    db: AsyncSession = Depends(get_db),
) -> VerifyPurchaseResponse:
    """Record the purchase behind a paid session. Safe to call more than once."""
    purchase, created = await verify_purchase(db, gateway, handle.name, user, body.course_id, body.session_id)
    await db.commit()

    if created:
        course = await db.get(Course, body.course_id)
        base = get_settings().frontend_base_url.rstrip("/")
        sent = await get_email_service().send_template(
            to=user.email,
            template_name="course_purchase",
            context={
                "name": user.name,
                "course_title": course.title if course else "",
                "expires_on": purchase.expiration_date.date().isoformat(),
                "course_url": f"{base}/{handle.name}/course/{body.course_id}",
            },
        )
        if not sent:
            logger.warning("purchase_email_failed", user_id=user.id, course_id=body.course_id)

    return VerifyPurchaseResponse(purchase=PurchaseResponse.model_validate(purchase), created=created)


@router.get("/me", response_model=PurchaseHistoryResponse)
async def my_purchases(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> PurchaseHistoryResponse:
    """The caller's purchases grouped by course, oldest first."""
    purchases = await purchase_history(db, user.id)
    course_ids = {p.course_id for p in purchases}
    titles: dict[int, str] = {}
    if course_ids:
        result = await db.execute(select(Course.id, Course.title).where(Course.id.in_(course_ids)))
        titles = {row.id: row.title for row in result}

    now = utcnow()
    grouped: dict[int, list] = {}
    for purchase in purchases:
        grouped.setdefault(purchase.course_id, []).append(purchase)
    return PurchaseHistoryResponse(
        courses=[
            CoursePurchases(
                course_id=course_id,
                title=titles.get(course_id),
                active=any(p.expiration_date > now for p in items),
                purchases=[PurchaseResponse.model_validate(p) for p in items],
            )
            for course_id, items in grouped.items()
        ]
    )
