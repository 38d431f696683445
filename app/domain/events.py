"""Domain events handed to the notification dispatcher.

Events are published only after the change they describe has been
persisted. Delivery is best effort and never rolls a transition back.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from app.core.permissions import BookingAction
from app.models.booking import Booking, BookingStatus
from app.models.provider import Appeal, ModerationAuditRecord, ProviderStatus


@dataclass(frozen=True)
class DomainEvent:
    """Something that happened in the booking core."""

    occurred_at: datetime
    aggregate_id: UUID
    event_id: UUID = field(default_factory=uuid4)

    @property
    def event_type(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        """Convert event to a JSON-friendly dictionary."""
        data = {"event_type": self.event_type}
        for key, value in asdict(self).items():
            if isinstance(value, (UUID, Decimal)):
                value = str(value)
            elif isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, Enum):
                value = value.value
            data[key] = value
        return data


# ============ BOOKING EVENTS ============


@dataclass(frozen=True)
class BookingEvent(DomainEvent):
    customer_id: UUID | None = None
    provider_id: UUID | None = None


@dataclass(frozen=True)
class BookingAccepted(BookingEvent):
    pass


@dataclass(frozen=True)
class BookingRejected(BookingEvent):
    reason: str | None = None


@dataclass(frozen=True)
class BookingCancelled(BookingEvent):
    cancelled_by: UUID | None = None
    reason: str | None = None


@dataclass(frozen=True)
class BookingStarted(BookingEvent):
    pass


@dataclass(frozen=True)
class BookingExpired(BookingEvent):
    pass


@dataclass(frozen=True)
class CompletionChallengeIssued(BookingEvent):
    """Carries the code; deliver it to the customer only."""

    code: str = ""
    expires_at: datetime | None = None


@dataclass(frozen=True)
class BookingCompleted(BookingEvent):
    base_amount: Decimal | None = None


# ============ MODERATION EVENTS ============


@dataclass(frozen=True)
class ProviderStatusChanged(DomainEvent):
    old_status: ProviderStatus | None = None
    new_status: ProviderStatus | None = None
    reason: str | None = None


@dataclass(frozen=True)
class ProviderSuspended(ProviderStatusChanged):
    pass


@dataclass(frozen=True)
class AppealSubmitted(DomainEvent):
    provider_id: UUID | None = None
    appeal_type: str | None = None


@dataclass(frozen=True)
class AppealReviewed(DomainEvent):
    provider_id: UUID | None = None
    decision: str | None = None
    admin_notes: str | None = None


_STATUS_EVENTS: dict[BookingStatus, type[BookingEvent]] = {
    BookingStatus.CONFIRMED: BookingAccepted,
    BookingStatus.REJECTED: BookingRejected,
    BookingStatus.CANCELLED: BookingCancelled,
    BookingStatus.IN_PROGRESS: BookingStarted,
    BookingStatus.EXPIRED: BookingExpired,
    BookingStatus.COMPLETED: BookingCompleted,
}


def events_for_transition(before: Booking, after: Booking, action: BookingAction) -> list[DomainEvent]:
    """Events describing the change from ``before`` to ``after``."""
    common = {
        "occurred_at": after.updated_at,
        "aggregate_id": after.id,
        "customer_id": after.customer_id,
        "provider_id": after.provider_id,
    }

    if action == BookingAction.INITIATE_COMPLETION and after.completion_challenge is not None:
        challenge = after.completion_challenge
        return [
            CompletionChallengeIssued(
                **common, code=challenge.code, expires_at=challenge.expires_at
            )
        ]

    if before.status == after.status:
        return []

    event_cls = _STATUS_EVENTS.get(after.status)
    if event_cls is None:
        return []

    if event_cls is BookingRejected:
        return [BookingRejected(**common, reason=after.rejection.reason if after.rejection else None)]
    if event_cls is BookingCancelled:
        cancellation = after.cancellation
        return [
            BookingCancelled(
                **common,
                cancelled_by=cancellation.cancelled_by if cancellation else None,
                reason=cancellation.reason if cancellation else None,
            )
        ]
    if event_cls is BookingCompleted:
        return [BookingCompleted(**common, base_amount=after.base_amount)]
    return [event_cls(**common)]


def events_for_moderation(record: ModerationAuditRecord) -> list[DomainEvent]:
    event_cls = ProviderSuspended if record.new_status == ProviderStatus.SUSPENDED else ProviderStatusChanged
    return [
        event_cls(
            occurred_at=record.at,
            aggregate_id=record.provider_id,
            old_status=record.old_status,
            new_status=record.new_status,
            reason=record.reason,
        )
    ]


def appeal_submitted(appeal: Appeal) -> AppealSubmitted:
    return AppealSubmitted(
        occurred_at=appeal.created_at,
        aggregate_id=appeal.id,
        provider_id=appeal.provider_id,
        appeal_type=appeal.type.value,
    )


def appeal_reviewed(appeal: Appeal) -> AppealReviewed:
    return AppealReviewed(
        occurred_at=appeal.reviewed_at or appeal.created_at,
        aggregate_id=appeal.id,
        provider_id=appeal.provider_id,
        decision=appeal.status.value,
        admin_notes=appeal.admin_notes,
    )
