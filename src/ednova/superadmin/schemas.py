from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class SuperAdminLoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class SuperAdminTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    email: str


class TenantAccountCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    lmsname: str = Field(..., min_length=1, max_length=120)


class StatusUpdate(BaseModel):
    status: bool


class BillingPaymentCreate(BaseModel):
    note: str | None = Field(None, max_length=256)


class BillingPaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    paid_at: datetime
    note: str | None = None


class TenantAccountResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    lms_name: str
    status: bool
    created_at: datetime
    payments: list[BillingPaymentResponse] = []


class TenantAccountListResponse(BaseModel):
    admins: list[TenantAccountResponse]


class TenantStatusResponse(BaseModel):
    valid: bool
    status: bool | None = None
    message: str
