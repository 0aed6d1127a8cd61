"""Tenant announcements."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlalchemy import select

from ednova.db.base import utcnow
from ednova.db.models import ANNOUNCEMENT_CATEGORIES, Announcement
from ednova.errors import ValidationError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from ednova.db.models import User

logger = structlog.get_logger()


async def list_announcements(db: AsyncSession, limit: int = 50) -> list[Announcement]:
    result = await db.execute(
        select(Announcement).order_by(Announcement.created_at.desc(), Announcement.id.desc()).limit(limit)
    )
    return list(result.scalars().all())


async def create_announcement(db: AsyncSession, author: User, title: str, content: str, category: str) -> Announcement:
    if category not in ANNOUNCEMENT_CATEGORIES:
        msg = f"Category must be one of: {', '.join(ANNOUNCEMENT_CATEGORIES)}"
        raise ValidationError(msg)
    announcement = Announcement(
        title=title.strip(),
        content=content.strip(),
        category=category,
        created_by_id=author.id,
        created_at=utcnow(),
    )
    db.add(announcement)
    await db.flush()
    logger.info("announcement_created", announcement_id=announcement.id, category=category)
    return announcement
