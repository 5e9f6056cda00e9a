from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

EventCategory = Literal["academic", "social", "sports", "arts", "career", "cultural", "other"]
FlagReason = Literal["Inappropriate Content", "Spam", "Misinformation", "Other"]


def _not_blank(value: str) -> str:
    cleaned = value.strip() if isinstance(value, str) else ""
    if not cleaned:
        raise ValueError("must not be empty")
    return cleaned


class ClubCreate(BaseModel):
    name: str
    description: str = ""

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str):
        return _not_blank(value)


class ClubOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str
    creator_id: int
    approval_status: str
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: datetime


class ClubRejection(BaseModel):
    reason: str

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, value: str):
        cleaned = _not_blank(value)
        if len(cleaned) > 500:
            raise ValueError("must be 500 characters or less")
        return cleaned


class MembershipOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    club_id: int
    user_id: int
    role: str
    status: str


class MembershipDecision(BaseModel):
    action: Literal["approve", "reject"]


class MemberRoleUpdate(BaseModel):
    role: Literal["admin", "member"]


class EventCreate(BaseModel):
    club_id: int
    title: str
    event_date: datetime
    description: Optional[str] = None
    location: Optional[str] = None
    category: Optional[EventCategory] = None
    is_free: bool = True
    price: Optional[Decimal] = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str):
        return _not_blank(value)

    @model_validator(mode="after")
    def price_matches_is_free(self):
        if self.is_free and self.price is not None:
            raise ValueError("free events cannot have a price")
        if not self.is_free and (self.price is None or self.price <= 0):
            raise ValueError("paid events need a positive price")
        return self


class EventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    club_id: int
    creator_id: int
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    event_date: datetime
    category: Optional[str] = None
    is_free: bool
    price: Optional[Decimal] = None


class FlagCreate(BaseModel):
    reason: FlagReason
    details: Optional[str] = None


class FlagStatusUpdate(BaseModel):
    status: Literal["reviewed", "resolved", "dismissed"]
    notes: Optional[str] = None


class FlagOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    kind: str
    target_id: int
    reporter_id: int
    reason: str
    details: Optional[str] = None
    status: str
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime


class ModerationLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    admin_id: int
    action: str
    entity_type: str
    entity_id: int
    details: Optional[dict[str, Any]] = None
    created_at: datetime


class FlagCounts(BaseModel):
    total: int
    pending: int
    reviewed: int
    resolved: int
    dismissed: int


class FlagStats(BaseModel):
    event_flags: FlagCounts
    club_flags: FlagCounts
    combined: FlagCounts


class ClubStats(BaseModel):
    total: int
    pending: int
    approved: int
    rejected: int
    approval_rate: str


class StatsSummary(BaseModel):
    total_pending_items: int
    pending_flags: int
    pending_clubs: int
    requires_attention: bool


class AdminStatsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    summary: StatsSummary
    flags: FlagStats
    clubs: ClubStats
    recent_activity: list[ModerationLogOut]
    fetched_at: datetime
