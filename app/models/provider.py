"""Provider moderation records."""

from __future__ import annotations

import uuid
from enum import Enum
from typing import Any

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field


class ProviderStatus(str, Enum):
    """Provider moderation states."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SUSPENDED = "SUSPENDED"


class Provider(BaseModel):
    """Provider as seen by the booking core (moderation subject)."""

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    user_id: uuid.UUID
    status: ProviderStatus = ProviderStatus.PENDING
    updated_at: AwareDatetime | None = None

    def evolve(self, **changes: Any) -> "Provider":
        return type(self).model_validate({**dict(self), **changes})


class ModerationAuditRecord(BaseModel):
    """Append-only record of a provider status change."""

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    actor_id: uuid.UUID
    provider_id: uuid.UUID
    old_status: ProviderStatus
    new_status: ProviderStatus
    reason: str | None = None
    at: AwareDatetime
    appeal_id: uuid.UUID | None = None


class AppealType(str, Enum):
    """What the provider is appealing against."""

    SUSPENSION_APPEAL = "SUSPENSION_APPEAL"
    REJECTION_APPEAL = "REJECTION_APPEAL"


class AppealStatus(str, Enum):
    """Appeal review states."""

    PENDING = "PENDING"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Appeal(BaseModel):
    """Provider request to lift a suspension or rejection."""

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    provider_id: uuid.UUID
    type: AppealType
    reason: str = Field(min_length=1, max_length=1000)
    details: str | None = Field(None, max_length=5000)
    status: AppealStatus = AppealStatus.PENDING
    admin_notes: str | None = Field(None, max_length=2000)
    reviewed_by: uuid.UUID | None = None
    reviewed_at: AwareDatetime | None = None
    created_at: AwareDatetime

    @property
    def is_open(self) -> bool:
        return self.status in (AppealStatus.PENDING, AppealStatus.UNDER_REVIEW)

    def evolve(self, **changes: Any) -> "Appeal":
        return type(self).model_validate({**dict(self), **changes})
