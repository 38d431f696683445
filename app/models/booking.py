"""Booking aggregate and its value objects."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, field_validator, model_validator

from app.models.user import Role

CENTS = Decimal("0.01")


class BookingStatus(str, Enum):
    """Booking lifecycle states."""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


TERMINAL_STATUSES: frozenset[BookingStatus] = frozenset(
    {
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
        BookingStatus.REJECTED,
        BookingStatus.EXPIRED,
    }
)


class CompletionChallenge(BaseModel):
    """One-time code the customer hands to the provider at job completion."""

    model_config = ConfigDict(frozen=True)

    code: str = Field(pattern=r"^\d+$")
    issued_at: AwareDatetime
    expires_at: AwareDatetime
    attempts: int = Field(default=0, ge=0)

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class Cancellation(BaseModel):
    """Who cancelled, why and when."""

    model_config = ConfigDict(frozen=True)

    cancelled_by: uuid.UUID
    cancelled_by_role: Role
    reason: str | None = None
    at: AwareDatetime


class Rejection(BaseModel):
    """Provider rejection details."""

    model_config = ConfigDict(frozen=True)

    reason: str | None = None
    at: AwareDatetime


class Booking(BaseModel):
    """Booking aggregate root.

    Instances are immutable. Every change goes through the state machine,
    which builds a new instance with :meth:`evolve` so the invariants below
    are re-checked on each transition.

    Invariants:
    - ``cancellation`` is set exactly when status is CANCELLED
    - ``rejection`` is set exactly when status is REJECTED
    - ``completion_challenge`` only exists while IN_PROGRESS
    """

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    customer_id: uuid.UUID
    provider_id: uuid.UUID
    service_id: uuid.UUID
    status: BookingStatus = BookingStatus.PENDING
    scheduled_at: AwareDatetime
    created_at: AwareDatetime
    updated_at: AwareDatetime

    # Fixed at creation from the catalog price, never recomputed
    base_amount: Decimal = Field(ge=0)

    completion_challenge: CompletionChallenge | None = None
    cancellation: Cancellation | None = None
    rejection: Rejection | None = None

    @field_validator("base_amount")
    @classmethod
    def _two_places(cls, v: Decimal) -> Decimal:
        return v.quantize(CENTS, rounding=ROUND_HALF_UP)

    @model_validator(mode="after")
    def _check_invariants(self) -> "Booking":
        if (self.cancellation is not None) != (self.status == BookingStatus.CANCELLED):
            raise ValueError("cancellation details must be present exactly when status is CANCELLED")
        if (self.rejection is not None) != (self.status == BookingStatus.REJECTED):
            raise ValueError("rejection details must be present exactly when status is REJECTED")
        if self.completion_challenge is not None and self.status != BookingStatus.IN_PROGRESS:
            raise ValueError("completion challenge can only exist while IN_PROGRESS")
        if self.updated_at < self.created_at:
            raise ValueError("updated_at cannot precede created_at")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def has_live_challenge(self, now: datetime | None = None) -> bool:
        """Challenge attached and, when ``now`` is known, not yet expired."""
        if self.completion_challenge is None:
            return False
        if now is None:
            return True
        return not self.completion_challenge.is_expired(now)

    def evolve(self, **changes: Any) -> "Booking":
        """Return a validated copy with ``changes`` applied."""
        return type(self).model_validate({**dict(self), **changes})
