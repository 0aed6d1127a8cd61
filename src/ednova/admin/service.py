"""
Admin analytics over a tenant's sales, users and progress.

Counts and sums run in SQL; bucketing by day or month happens in Python so
the same code serves PostgreSQL and SQLite.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select

from ednova.admin.schemas import (
    CompletionRate,
    CompletionRatesResponse,
    CourseSales,
    DailyCount,
    MonthlyRevenue,
    RevenueResponse,
    SalesByCourseResponse,
    SalesByUserResponse,
    TopContentResponse,
    TopCourse,
    UserCreated,
    UserGrowthResponse,
    UserSales,
    UsersResponse,
)
from ednova.db.models import Course, CourseProgress, CoursePurchase, LectureProgress, User

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


def _in_range(column, from_date: datetime | None, to_date: datetime | None) -> list:
    clauses = []
    if from_date is not None:
        clauses.append(column >= from_date)
    if to_date is not None:
        clauses.append(column <= to_date)
    return clauses


async def sales_by_user(db: AsyncSession) -> SalesByUserResponse:
    stmt = (
        select(
            User.id,
            User.name,
            User.email,
            func.count(CoursePurchase.id).label("purchases"),
            func.coalesce(func.sum(CoursePurchase.amount), 0).label("total_spent"),
        )
        .join(CoursePurchase, CoursePurchase.user_id == User.id)
        .group_by(User.id, User.name, User.email)
        .order_by(func.sum(CoursePurchase.amount).desc(), User.id)
    )
    rows = (await db.execute(stmt)).all()
    return SalesByUserResponse(
        users=[
            UserSales(user_id=r.id, name=r.name, email=r.email, purchases=r.purchases, total_spent=r.total_spent)
            for r in rows
        ]
    )


async def sales_by_course(db: AsyncSession) -> SalesByCourseResponse:
    stmt = (
        select(
            Course.id,
            Course.title,
            func.count(CoursePurchase.id).label("purchases"),
            func.coalesce(func.sum(CoursePurchase.amount), 0).label("revenue"),
        )
        .outerjoin(CoursePurchase, CoursePurchase.course_id == Course.id)
        .group_by(Course.id, Course.title)
        .order_by(Course.title)
    )
    rows = (await db.execute(stmt)).all()
    return SalesByCourseResponse(
        courses=[CourseSales(course_id=r.id, title=r.title, purchases=r.purchases, revenue=r.revenue) for r in rows]
    )


async def users_with_creation_date(db: AsyncSession) -> UsersResponse:
    result = await db.execute(select(User).order_by(User.created_at.desc(), User.id.desc()))
    return UsersResponse(
        users=[
            UserCreated(id=u.id, name=u.name, email=u.email, role=u.role, created_at=u.created_at)
            for u in result.scalars()
        ]
    )


async def user_growth(
    db: AsyncSession,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
) -> UserGrowthResponse:
    """New users per calendar day (UTC)."""
    stmt = select(User.created_at).where(*_in_range(User.created_at, from_date, to_date))
    per_day = Counter(created_at.date() for created_at in (await db.execute(stmt)).scalars())
    return UserGrowthResponse(days=[DailyCount(day=day, count=per_day[day]) for day in sorted(per_day)])


async def revenue(
    db: AsyncSession,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
) -> RevenueResponse:
    """Purchase revenue bucketed by month (``YYYY-MM``)."""
    stmt = select(CoursePurchase.purchase_date, CoursePurchase.amount).where(
        *_in_range(CoursePurchase.purchase_date, from_date, to_date)
    )
    amounts: dict[str, int] = defaultdict(int)
    counts: Counter[str] = Counter()
    for purchase_date, amount in (await db.execute(stmt)).all():
        month = purchase_date.strftime("%Y-%m")
        amounts[month] += amount
        counts[month] += 1
    months = [MonthlyRevenue(month=m, revenue=amounts[m], purchases=counts[m]) for m in sorted(amounts)]
    return RevenueResponse(months=months, total_revenue=sum(amounts.values()))


async def top_content(db: AsyncSession, limit: int = 4) -> TopContentResponse:
    """Most purchased courses."""
    purchases = func.count(CoursePurchase.id).label("purchases")
    stmt = (
        select(Course.id, Course.title, purchases)
        .join(CoursePurchase, CoursePurchase.course_id == Course.id)
        .group_by(Course.id, Course.title)
        .order_by(purchases.desc(), Course.id)
        .limit(limit)
    )
    rows = (await db.execute(stmt)).all()
    return TopContentResponse(
        courses=[TopCourse(course_id=r.id, title=r.title, purchases=r.purchases) for r in rows]
    )


async def completion_rates(
    db: AsyncSession,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
) -> CompletionRatesResponse:
    """Per course: enrolments, and how many of them have every lecture marked."""
    marked = (
        select(LectureProgress.course_progress_id, func.count(LectureProgress.id).label("marked"))
        .where(LectureProgress.marked.is_(True))
        .group_by(LectureProgress.course_progress_id)
        .subquery()
    )
    stmt = (
        select(CourseProgress.course_id, Course.title, Course.number_of_lectures, func.coalesce(marked.c.marked, 0))
        .join(Course, Course.id == CourseProgress.course_id)
        .outerjoin(marked, marked.c.course_progress_id == CourseProgress.id)
        .where(*_in_range(CourseProgress.created_at, from_date, to_date))
    )

    titles: dict[int, str] = {}
    enrolled: Counter[int] = Counter()
    completed: Counter[int] = Counter()
    for course_id, title, number_of_lectures, marked_count in (await db.execute(stmt)).all():
        titles[course_id] = title
        enrolled[course_id] += 1
        if number_of_lectures > 0 and marked_count >= number_of_lectures:
            completed[course_id] += 1

    return CompletionRatesResponse(
        courses=[
            CompletionRate(
                course_id=course_id,
                title=titles[course_id],
                enrolled=enrolled[course_id],
                completed=completed[course_id],
                rate=round(completed[course_id] / enrolled[course_id] * 100, 2),
            )
            for course_id in sorted(enrolled)
        ]
    )
