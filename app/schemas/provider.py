"""Provider moderation and appeal schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.provider import AppealStatus, AppealType, ProviderStatus


class ProviderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    status: ProviderStatus
    updated_at: datetime | None = None


class ProviderStatusUpdate(BaseModel):
    """Admin moderation decision."""

    status: ProviderStatus
    reason: str | None = Field(None, max_length=500)


class ModerationAuditResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    actor_id: UUID
    provider_id: UUID
    old_status: ProviderStatus
    new_status: ProviderStatus
    reason: str | None = None
    at: datetime
    appeal_id: UUID | None = None


class AppealCreate(BaseModel):
    """Schema for submitting an appeal."""

    type: AppealType
    reason: str = Field(..., min_length=1, max_length=1000)
    details: str | None = Field(None, max_length=5000)


class AppealReview(BaseModel):
    """Schema for an admin decision on an appeal."""

    status: AppealStatus
    admin_notes: str | None = Field(None, max_length=2000)


class AppealResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    provider_id: UUID
    type: AppealType
    reason: str
    details: str | None = None
    status: AppealStatus
    admin_notes: str | None = None
    reviewed_by: UUID | None = None
    reviewed_at: datetime | None = None
    created_at: datetime
