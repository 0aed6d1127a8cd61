"""Tests for the XP ledger, badge reconciliation and progress-driven XP."""

from __future__ import annotations

import asyncio
import io

import pytest
from fastapi import UploadFile
from sqlalchemy import func, select
from starlette.datastructures import Headers

from ednova.auth.service import register_user
from ednova.config import get_settings
from ednova.db.base import utcnow
from ednova.db.models import Badge, Course, Lecture, User, XPLedger
from ednova.errors import ValidationError
from ednova.gamification.badge_service import create_badge, reconcile_badges
from ednova.gamification.xp_service import apply_delta
from ednova.progress import service
from ednova.storage.service import LocalAssetStorage


@pytest.fixture
async def user(db_session):
    user = await register_user(db_session, "alice", "alice@example.com", "SecureP4ss")
    await db_session.commit()
    return user


@pytest.fixture
async def badges(db_session):
    now = utcnow()
    catalog = [
        Badge(title="Starter", content="Reach 10 XP", xp_threshold=10, created_at=now),
        Badge(title="Scholar", content="Reach 50 XP", xp_threshold=50, created_at=now),
    ]
    db_session.add_all(catalog)
    await db_session.commit()
    return catalog


def held_titles(user: User) -> set[str]:
    return {ub.badge.title for ub in user.badges}


class TestApplyDelta:
    async def test_positive_delta(self, db_session, user):
        total = await apply_delta(db_session, user, 15, source="lecture", source_id="1:1")
        assert total == 15
        assert user.xp == 15

    async def test_zero_delta_writes_nothing(self, db_session, user):
        assert await apply_delta(db_session, user, 0, source="quiz") == 0
        rows = (await db_session.execute(select(XPLedger))).scalars().all()
        assert rows == []

    async def test_floor_at_zero_records_applied_amount(self, db_session, user):
        await apply_delta(db_session, user, 5, source="lecture")
        total = await apply_delta(db_session, user, -20, source="lecture")
        assert total == 0

        rows = (await db_session.execute(select(XPLedger).order_by(XPLedger.id))).scalars().all()
        assert [(r.amount, r.requested_amount, r.balance_after) for r in rows] == [(5, 5, 5), (-5, -20, 0)]

    async def test_negative_allowed_without_floor(self, db_session, user, monkeypatch):
        monkeypatch.setenv("EDNOVA_XP_FLOOR_AT_ZERO", "false")
        get_settings.cache_clear()
        assert await apply_delta(db_session, user, -3, source="lecture") == -3


class TestReconcileBadges:
    async def test_thresholds_follow_xp_both_ways(self, db_session, user, badges):
        for amount, expected in [(12, {"Starter"}), (48, {"Starter", "Scholar"}), (-55, set())]:
            total = await apply_delta(db_session, user, amount, source="test")
            await reconcile_badges(db_session, user, total)
            await db_session.commit()
            assert held_titles(user) == expected, (amount, total)

    async def test_reports_awarded_and_revoked(self, db_session, user, badges):
        total = await apply_delta(db_session, user, 60, source="test")
        changes = await reconcile_badges(db_session, user, total)
        assert [b.title for b in changes.awarded] == ["Starter", "Scholar"]
        assert changes.revoked == []

        total = await apply_delta(db_session, user, -30, source="test")
        changes = await reconcile_badges(db_session, user, total)
        assert changes.awarded == []
        assert [b.title for b in changes.revoked] == ["Scholar"]

    async def test_reconcile_is_idempotent(self, db_session, user, badges):
        total = await apply_delta(db_session, user, 20, source="test")
        await reconcile_badges(db_session, user, total)
        again = await reconcile_badges(db_session, user, total)
        assert not again.changed
        assert held_titles(user) == {"Starter"}

    async def test_badge_created_later_is_picked_up(self, db_session, user):
        await apply_delta(db_session, user, 30, source="test")
        db_session.add(Badge(title="Late", content="Added later", xp_threshold=25, created_at=utcnow()))
        await db_session.flush()
        changes = await reconcile_badges(db_session, user)
        assert [b.title for b in changes.awarded] == ["Late"]


@pytest.fixture
async def admin_and_course(db_session):
    """An admin (bypasses purchase checks) and a one-lecture course."""
    admin = await register_user(db_session, "admin", "admin@example.com", "SecureP4ss", role="ADMIN")
    now = utcnow()
    course = Course(
        title="Course",
        description="d",
        category="c",
        created_by="admin",
        price=0,
        expiry_months=1,
        number_of_lectures=1,
        created_at=now,
        updated_at=now,
        lectures=[Lecture(name="L1", description="", position=0, created_at=now)],
        quizzes=[],
        sequence=[],
    )
    db_session.add(course)
    await db_session.commit()
    return admin, course


class TestMarkLecture:
    async def test_mark_unmark_round_trip(self, db_session, tenant_handle, admin_and_course, badges):
        admin, course = admin_and_course
        lecture_id = course.lectures[0].id

        first = await service.mark_lecture(db_session, tenant_handle, admin, course.id, lecture_id, True, 15)
        assert (first.xp_delta, first.total_xp) == (15, 15)
        assert [b.title for b in first.awarded] == ["Starter"]

        repeat = await service.mark_lecture(db_session, tenant_handle, admin, course.id, lecture_id, True, 15)
        assert (repeat.xp_delta, repeat.total_xp) == (0, 15)

        undo = await service.mark_lecture(db_session, tenant_handle, admin, course.id, lecture_id, False, 15)
        assert (undo.xp_delta, undo.total_xp) == (-15, 0)
        assert [b.title for b in undo.revoked] == ["Starter"]

    async def test_gain_xp_bounds(self, db_session, tenant_handle, admin_and_course):
        admin, course = admin_and_course
        with pytest.raises(ValidationError):
            await service.mark_lecture(db_session, tenant_handle, admin, course.id, course.lectures[0].id, True, -1)
        with pytest.raises(ValidationError):
            await service.mark_lecture(db_session, tenant_handle, admin, course.id, course.lectures[0].id, True, 10**6)

    async def test_concurrent_marks_apply_xp_once(self, tenant_handle, admin_and_course):
        admin, course = admin_and_course
        lecture_id = course.lectures[0].id

        async def mark() -> int:
            async with tenant_handle.session() as session:
                user = await session.get(User, admin.id)
                outcome = await service.mark_lecture(session, tenant_handle, user, course.id, lecture_id, True, 10)
                return outcome.xp_delta

        deltas = await asyncio.gather(mark(), mark(), mark())
        assert sorted(deltas) == [0, 0, 10]

        async with tenant_handle.session() as session:
            assert (await session.get(User, admin.id)).xp == 10


def _image() -> UploadFile:
    return UploadFile(io.BytesIO(b"\x89PNG badge"), filename="star.png", headers=Headers({"content-type": "image/png"}))


class TestCreateBadge:
    async def test_stores_image_and_badge(self, db_session, tmp_path):
        storage = LocalAssetStorage(tmp_path / "media", "http://test/media")
        badge = await create_badge(db_session, storage, "acme", "Starter", "Reach 10 XP", 10, _image())

        assert badge.id is not None
        assert badge.image_url.startswith("http://test/media/acme/badges/")
        assert storage.exists(badge.image_asset_id)

    async def test_failed_write_removes_uploaded_image(self, db_session, tmp_path, monkeypatch):
        storage = LocalAssetStorage(tmp_path / "media", "http://test/media")

        async def failing_commit() -> None:
            msg = "disk full"
            raise RuntimeError(msg)

        monkeypatch.setattr(db_session, "commit", failing_commit)
        with pytest.raises(RuntimeError, match="disk full"):
            await create_badge(db_session, storage, "acme", "Starter", "Reach 10 XP", 10, _image())

        assert list((tmp_path / "media").rglob("*.png")) == []
        assert (await db_session.execute(select(func.count()).select_from(Badge))).scalar_one() == 0
