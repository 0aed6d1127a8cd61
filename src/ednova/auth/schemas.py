"""Request/response schemas for user and authentication endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=3, max_length=20)
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower().strip()

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str) -> str:
        v = v.strip().lower()
        if len(v) < 3:
            msg = "Name must be at least 3 characters"
            raise ValueError(msg)
        return v


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower().strip()


class EmailRequest(BaseModel):
    """Body of verify-registration and forgot-password requests."""

    email: EmailStr


class ResetPasswordRequest(BaseModel):
    password: str = Field(..., min_length=1, max_length=128)
    confirm_password: str = Field(..., min_length=1, max_length=128)

    @model_validator(mode="after")
    def passwords_match(self) -> ResetPasswordRequest:
        if self.password != self.confirm_password:
            msg = "Passwords do not match"
            raise ValueError(msg)
        return self


class ChangePasswordRequest(BaseModel):
    old_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=1, max_length=128)


class UserBadgeResponse(BaseModel):
    id: int
    title: str
    image_url: str | None = None
    earned_at: datetime


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    role: str
    xp: int
    is_verified: bool
    avatar_url: str | None = None
    badges: list[UserBadgeResponse] = []
    created_at: datetime


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class AdminExistsResponse(BaseModel):
    admin_exists: bool


class LeaderboardEntry(BaseModel):
    rank: int
    id: int
    name: str
    avatar_url: str | None = None
    xp: int
    badges: list[str] = []


class LeaderboardResponse(BaseModel):
    entries: list[LeaderboardEntry]


class MessageResponse(BaseModel):
    message: str
