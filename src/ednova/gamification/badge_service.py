"""Badge catalog and the XP-threshold badge reconciler."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ednova.db.base import utcnow
from ednova.db.models import Badge, User, UserBadge
from ednova.errors import NotFoundError
from ednova.storage.service import BaseAssetStorage, commit_or_discard, delete_quietly, store_upload

if TYPE_CHECKING:
    from fastapi import UploadFile

logger = logging.getLogger(__name__)


@dataclass
class BadgeChanges:
    awarded: list[Badge] = field(default_factory=list)
    revoked: list[Badge] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.awarded or self.revoked)


def compute_badge_changes(
    catalog: Iterable[tuple[int, int]],
    held: set[int],
    xp: int,
) -> tuple[set[int], set[int]]:
    """Return (to_award, to_revoke) badge ids.

    ``catalog`` yields (badge_id, xp_threshold). A badge is held exactly when
    ``xp >= threshold``; held ids that are no longer in the catalog are left
    alone.
    """
    thresholds = dict(catalog)
    eligible = {badge_id for badge_id, threshold in thresholds.items() if xp >= threshold}
    to_award = eligible - held
    to_revoke = {badge_id for badge_id in held & thresholds.keys() if badge_id not in eligible}
    return to_award, to_revoke


async def get_badge(db: AsyncSession, badge_id: int) -> Badge:
    badge = await db.get(Badge, badge_id)
    if badge is None:
        msg = "Badge not found"
        raise NotFoundError(msg)
    return badge


async def list_badges(db: AsyncSession) -> list[Badge]:
    result = await db.execute(select(Badge).order_by(Badge.xp_threshold, Badge.id))
    return list(result.scalars().all())


async def reconcile_badges(db: AsyncSession, user: User, current_xp: int | None = None) -> BadgeChanges:
    """Bring the user's badge set in line with their XP in one update.

    Safe to call at any time; a call that changes nothing performs no write.
    """
    xp = user.xp if current_xp is None else current_xp
    catalog = await list_badges(db)
    by_id = {badge.id: badge for badge in catalog}
    held = {ub.badge_id for ub in user.badges}

    to_award, to_revoke = compute_badge_changes([(b.id, b.xp_threshold) for b in catalog], held, xp)
    changes = BadgeChanges(
        awarded=[by_id[i] for i in sorted(to_award)],
        revoked=[by_id[i] for i in sorted(to_revoke)],
    )
    if not changes.changed:
        return changes

    now = utcnow()
    for ub in [ub for ub in user.badges if ub.badge_id in to_revoke]:
        user.badges.remove(ub)
    for badge in changes.awarded:
        user.badges.append(UserBadge(badge_id=badge.id, badge=badge, earned_at=now))
    await db.flush()

    logger.info(
        "Badges reconciled: user=%s xp=%s awarded=%s revoked=%s",
        user.id,
        xp,
        sorted(to_award),
        sorted(to_revoke),
    )
    return changes


async def create_badge(
    db: AsyncSession,
    storage: BaseAssetStorage,
    tenant: str,
    title: str,
    content: str,
    xp_threshold: int,
    image: UploadFile | None = None,
) -> Badge:
    """Store the optional image, then insert the badge and commit.

    The insert is only flushed by the guarded commit, so any failed write
    removes the uploaded image again.
    """
    asset = await store_upload(storage, image, tenant=tenant, folder="badges") if image else None
    badge = Badge(
        title=title,
        content=content,
        xp_threshold=xp_threshold,
        image_asset_id=asset.asset_id if asset else None,
        image_url=asset.public_url if asset else None,
        created_at=utcnow(),
    )
    db.add(badge)
    await commit_or_discard(db, storage, asset)
    logger.info("Badge created: id=%s threshold=%s", badge.id, xp_threshold)
    return badge


async def delete_badge(db: AsyncSession, storage: BaseAssetStorage, badge_id: int) -> None:
    """Delete a badge and every holding of it, then commit; the image goes last, best-effort."""
    badge = await get_badge(db, badge_id)
    asset_id = badge.image_asset_id
    await db.execute(delete(UserBadge).where(UserBadge.badge_id == badge_id).execution_options(synchronize_session="fetch"))
    await db.delete(badge)
    await db.commit()
    await delete_quietly(storage, asset_id)
    logger.info("Badge deleted: id=%s", badge_id)
