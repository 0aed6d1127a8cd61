"""Announcement endpoints: /{tenant}/api/v1/announcement."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ednova.announcements.schemas import AnnouncementCreate, AnnouncementListResponse, AnnouncementResponse
from ednova.announcements.service import create_announcement, list_announcements
from ednova.auth.dependencies import get_current_user, require_admin
from ednova.db.models import User
from ednova.tenancy.dependencies import get_db

router = APIRouter(prefix="/{tenant}/api/v1/announcement", tags=["Announcements"])


@router.get("", response_model=AnnouncementListResponse)
async def get_announcements(
    limit: int = Query(50, ge=1, le=200),
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> AnnouncementListResponse:
    """Newest first."""
    announcements = await list_announcements(db, limit)
    return AnnouncementListResponse(announcements=[AnnouncementResponse.model_validate(a) for a in announcements])


@router.post("", response_model=AnnouncementResponse, status_code=201)
async def post_announcement(
    body: AnnouncementCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> AnnouncementResponse:
    announcement = await create_announcement(db, admin, body.title, body.content, body.category)
    await db.commit()
    return AnnouncementResponse.model_validate(announcement)
