"""Pydantic models for badge and XP endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict


class BadgeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    content: str
    xp_threshold: int
    image_url: str | None = None
    created_at: datetime


class BadgeListResponse(BaseModel):
    badges: list[BadgeResponse]


class BadgeChange(BaseModel):
    badge_id: int
    title: str
    status: Literal["acquired", "removed"]


class XPHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount: int
    requested_amount: int
    balance_after: int
    source: str
    source_id: str | None = None
    description: str | None = None
    created_at: datetime


class XPHistoryResponse(BaseModel):
    entries: list[XPHistoryEntry]
    total: int
    page: int
    per_page: int


def badge_changes(awarded: list, revoked: list) -> list[BadgeChange]:
    """Flatten reconciler output for API responses."""
    return [BadgeChange(badge_id=b.id, title=b.title, status="acquired") for b in awarded] + [
        BadgeChange(badge_id=b.id, title=b.title, status="removed") for b in revoked
    ]
