"""Admin dashboard and analytics endpoints: /{tenant}/api/v1/admin/*."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ednova.admin import service
from ednova.admin.schemas import (
    CompletionRatesResponse,
    RevenueResponse,
    SalesByCourseResponse,
    SalesByUserResponse,
    TopContentResponse,
    UserGrowthResponse,
    UsersResponse,
)
from ednova.auth.dependencies import require_admin
from ednova.tenancy.dependencies import get_db

router = APIRouter(
    prefix="/{tenant}/api/v1/admin",
    tags=["Admin"],
    dependencies=[Depends(require_admin)],
)


@router.get("/sales/by-user", response_model=SalesByUserResponse)
async def sales_by_user(db: AsyncSession = Depends(get_db)) -> SalesByUserResponse:
    return await service.sales_by_user(db)


@router.get("/sales/by-course", response_model=SalesByCourseResponse)
async def sales_by_course(db: AsyncSession = Depends(get_db)) -> SalesByCourseResponse:
    return await service.sales_by_course(db)


@router.get("/users", response_model=UsersResponse)
async def users(db: AsyncSession = Depends(get_db)) -> UsersResponse:
    return await service.users_with_creation_date(db)


@router.get("/analytics/user-growth", response_model=UserGrowthResponse)
async def user_growth(
    from_date: datetime | None = Query(None),
    to_date: datetime | None = Query(None),
    db: AsyncSession = Depends(get_db),
) -> UserGrowthResponse:
    return await service.user_growth(db, from_date, to_date)


@router.get("/analytics/revenue", response_model=RevenueResponse)
async def revenue(
    from_date: datetime | None = Query(None),
    to_date: datetime | None = Query(None),
    db: AsyncSession = Depends(get_db),
) -> RevenueResponse:
    return await service.revenue(db, from_date, to_date)


@router.get("/analytics/top-content", response_model=TopContentResponse)
async def top_content(
    limit: int = Query(4, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
) -> TopContentResponse:
    return await service.top_content(db, limit)


@router.get("/analytics/completion-rates", response_model=CompletionRatesResponse)
async def completion_rates(
    from_date: datetime | None = Query(None),
    to_date: datetime | None = Query(None),
    db: AsyncSession = Depends(get_db),
) -> CompletionRatesResponse:
    return await service.completion_rates(db, from_date, to_date)
