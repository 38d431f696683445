"""Actor context resolved by the identity layer for each call."""

from __future__ import annotations

import uuid
from enum import Enum

from pydantic import BaseModel, ConfigDict, model_validator


class Role(str, Enum):
    """Roles an actor can hold."""

    CUSTOMER = "CUSTOMER"
    PROVIDER = "PROVIDER"
    ADMIN = "ADMIN"
    SYSTEM = "SYSTEM"  # Internal scheduler, never issued to a user


class Actor(BaseModel):
    """Authenticated caller attempting an action."""

    model_config = ConfigDict(frozen=True)

    user_id: uuid.UUID
    role: Role
    provider_id: uuid.UUID | None = None

    @model_validator(mode="after")
    def _provider_link(self) -> "Actor":
        if self.role == Role.PROVIDER and self.provider_id is None:
            raise ValueError("PROVIDER actors must carry a provider_id")
        if self.role != Role.PROVIDER and self.provider_id is not None:
            raise ValueError("Only PROVIDER actors may carry a provider_id")
        return self

    def acts_for_provider(self, provider_id: uuid.UUID) -> bool:
        return self.role == Role.PROVIDER and self.provider_id == provider_id


SYSTEM_ACTOR = Actor(user_id=uuid.UUID(int=0), role=Role.SYSTEM)
