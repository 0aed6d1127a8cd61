"""Badge catalog and XP history endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from ednova.auth.dependencies import get_current_user, require_admin
from ednova.db.models import User
from ednova.gamification.badge_service import create_badge, delete_badge, list_badges
from ednova.gamification.schemas import BadgeListResponse, BadgeResponse, XPHistoryEntry, XPHistoryResponse
from ednova.gamification.xp_service import xp_history
from ednova.storage.service import BaseAssetStorage, get_asset_storage
from ednova.tenancy.dependencies import get_db, get_tenant
from ednova.tenancy.registry import TenantHandle

router = APIRouter(prefix="/{tenant}/api/v1", tags=["Gamification"])


@router.get("/badges", response_model=BadgeListResponse)
async def get_badges(
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> BadgeListResponse:
    """The badge catalog, lowest threshold first."""
    badges = await list_badges(db)
    return BadgeListResponse(badges=[BadgeResponse.model_validate(b) for b in badges])


@router.post("/badges", response_model=BadgeResponse, status_code=201)
async def add_badge(
    title: str = Form(..., min_length=1, max_length=50),
    content: str = Form(..., min_length=1, max_length=200),
    xp_threshold: int = Form(..., ge=0),
    image: UploadFile | None = File(None),
    _admin: User = Depends(require_admin),
    handle: TenantHandle = Depends(get_tenant),
    storage: BaseAssetStorage = Depends(get_asset_storage),
    db: AsyncSession = Depends(get_db),
) -> BadgeResponse:
    badge = await create_badge(db, storage, handle.name, title, content, xp_threshold, image)
    return BadgeResponse.model_validate(badge)


@router.delete("/badges/{badge_id}", status_code=204)
async def remove_badge(
    badge_id: int,
    _admin: User = Depends(require_admin),
    storage: BaseAssetStorage = Depends(get_asset_storage),
    db: AsyncSession = Depends(get_db),
) -> None:
    await delete_badge(db, storage, badge_id)


@router.get("/user/me/xp/history", response_model=XPHistoryResponse)
async def my_xp_history(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> XPHistoryResponse:
    entries, total = await xp_history(db, user.id, page=page, per_page=per_page)
    return XPHistoryResponse(
        entries=[XPHistoryEntry.model_validate(e) for e in entries],
        total=total,
        page=page,
        per_page=per_page,
    )
