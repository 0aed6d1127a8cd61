"""Response schemas for the admin dashboard and analytics endpoints."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel


class UserSales(BaseModel):
    user_id: int
    name: str
    email: str
    purchases: int
    total_spent: int


class CourseSales(BaseModel):
    course_id: int
    title: str
    purchases: int
    revenue: int


class UserCreated(BaseModel):
    id: int
    name: str
    email: str
    role: str
    created_at: datetime


class DailyCount(BaseModel):
    day: date
    count: int


class MonthlyRevenue(BaseModel):
    month: str
    revenue: int
    purchases: int


class TopCourse(BaseModel):
    course_id: int
    title: str
    purchases: int


class CompletionRate(BaseModel):
    course_id: int
    title: str
    enrolled: int
    completed: int
    rate: float


class SalesByUserResponse(BaseModel):
    users: list[UserSales]


class SalesByCourseResponse(BaseModel):
    courses: list[CourseSales]


class UsersResponse(BaseModel):
    users: list[UserCreated]


class UserGrowthResponse(BaseModel):
    days: list[DailyCount]


class RevenueResponse(BaseModel):
    months: list[MonthlyRevenue]
    total_revenue: int


class TopContentResponse(BaseModel):
    courses: list[TopCourse]


class CompletionRatesResponse(BaseModel):
    courses: list[CompletionRate]
