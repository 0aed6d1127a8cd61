"""Request/response schemas for checkout and purchase endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class CheckoutRequestBody(BaseModel):
    course_id: int
    school_id: str | None = Field(None, max_length=100)


class CheckoutResponse(BaseModel):
    session_id: str
    url: str | None


class VerifyPurchaseRequest(BaseModel):
    course_id: int
    session_id: str = Field(..., min_length=1, max_length=255)


class PurchaseResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    course_id: int
    amount: int
    currency: str
    checkout_session_id: str
    purchase_date: datetime
    expiration_date: datetime


class VerifyPurchaseResponse(BaseModel):
    purchase: PurchaseResponse
    created: bool


class CoursePurchases(BaseModel):
    course_id: int
    title: str | None
    active: bool
    purchases: list[PurchaseResponse]


class PurchaseHistoryResponse(BaseModel):
    courses: list[CoursePurchases]
