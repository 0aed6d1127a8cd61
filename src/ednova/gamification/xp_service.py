"""XP delta rules and the atomic XP ledger update."""

from __future__ import annotations

import logging

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ednova.config import get_settings
from ednova.db.base import utcnow
from ednova.db.models import User, XPLedger

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pure delta rules
# ---------------------------------------------------------------------------


def lecture_mark_delta(previous: bool | None, new: bool, gain_xp: int, awarded: int = 0) -> int:
    """XP change for a lecture mark transition.

    ``previous`` is None when the lecture had never been marked. Only a change
    of state moves XP: unset/False -> True earns ``gain_xp``, True -> False
    gives back ``awarded``, the amount stored when the lecture was marked.
    The ``gain_xp`` of an unmark request is ignored. Repeating the current
    state is worth nothing.
    """
    if gain_xp < 0:
        msg = "gain_xp must be non-negative"
        raise ValueError(msg)
    was_marked = bool(previous)
    if new and not was_marked:
        return gain_xp
    if was_marked and not new:
        return -awarded
    return 0


def quiz_submission_delta(previous_best: int | None, new_score: int) -> int:
    """XP change for a quiz submission: only improvements over the best score count.

    Scores never take XP away; a worse re-submission is simply worth 0.
    """
    best = previous_best or 0
    return max(0, new_score - best)


def best_score(scores: list[int]) -> int | None:
    return max(scores) if scores else None


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


async def apply_delta(
    db: AsyncSession,
    user: User,
    delta: int,
    source: str,
    source_id: str | None = None,
    description: str | None = None,
) -> int:
    """Apply ``delta`` to the user's XP in one UPDATE and log it. Returns the new total.

    With ``xp_floor_at_zero`` the total never drops below zero; the ledger
    records the amount actually applied next to the requested one. A zero
    delta writes nothing.
    """
    if delta == 0:
        return user.xp

    settings = get_settings()
    new_value = User.xp + delta
    if settings.xp_floor_at_zero:
        new_value = case((User.xp + delta < 0, 0), else_=User.xp + delta)

    before = (await db.execute(select(User.xp).where(User.id == user.id))).scalar_one()
    await db.execute(
        update(User)
        .where(User.id == user.id)
        .values(xp=new_value, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    await db.refresh(user, attribute_names=["xp", "updated_at"])

    applied = user.xp - before
    db.add(
        XPLedger(
            user_id=user.id,
            amount=applied,
            requested_amount=delta,
            balance_after=user.xp,
            source=source,
            source_id=source_id,
            description=description,
            created_at=utcnow(),
        )
    )
    await db.flush()
    logger.info("XP applied: user=%s delta=%s applied=%s total=%s source=%s", user.id, delta, applied, user.xp, source)
    return user.xp


async def xp_history(db: AsyncSession, user_id: int, page: int = 1, per_page: int = 20) -> tuple[list[XPLedger], int]:
    """Paginated ledger for one user, newest first. Returns (entries, total)."""
    total = (await db.execute(select(func.count()).select_from(XPLedger).where(XPLedger.user_id == user_id))).scalar_one()
    result = await db.execute(
        select(XPLedger)
        .where(XPLedger.user_id == user_id)
        .order_by(XPLedger.created_at.desc(), XPLedger.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total
