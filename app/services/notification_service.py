"""Notification dispatch for domain events.

Delivery channels (push, email, SMS) live outside the booking core. This
service fans events out to subscribed handlers and keeps an in-app inbox.
A failing subscriber is logged and skipped; it never undoes the
transition that produced the event.
"""

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import datetime
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from app.domain.events import (
    AppealReviewed,
    BookingAccepted,
    BookingCancelled,
    BookingCompleted,
    BookingExpired,
    BookingRejected,
    BookingStarted,
    CompletionChallengeIssued,
    DomainEvent,
    ProviderStatusChanged,
    ProviderSuspended,
)
from app.models.user import Role

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], None]


class Notification(BaseModel):
    """In-app notification addressed to a customer or a provider."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    recipient_role: Role
    recipient_id: UUID
    notification_type: str
    title: str
    body: str
    booking_id: UUID | None = None
    created_at: datetime


def build_notifications(event: DomainEvent) -> list[Notification]:
    """Translate an event into the in-app messages it should produce.

    The completion code only ever goes to the customer; the provider is
    told to ask for it.
    """
    at = event.occurred_at

    def to_customer(kind: str, title: str, body: str) -> Notification:
        return Notification(
            recipient_role=Role.CUSTOMER,
            recipient_id=event.customer_id,
            notification_type=kind,
            title=title,
            body=body,
            booking_id=event.aggregate_id,
            created_at=at,
        )

    def to_provider(kind: str, title: str, body: str, booking_id: UUID | None = None) -> Notification:
        return Notification(
            recipient_role=Role.PROVIDER,
            recipient_id=event.provider_id if booking_id else event.aggregate_id,
            notification_type=kind,
            title=title,
            body=body,
            booking_id=booking_id,
            created_at=at,
        )

    if isinstance(event, BookingAccepted):
        return [to_customer("booking_confirmed", "Booking Confirmed", "Provider accepted your booking")]
    if isinstance(event, BookingRejected):
        return [to_customer("booking_rejected", "Booking Rejected", "Provider rejected your booking")]
    if isinstance(event, BookingStarted):
        return [to_customer("booking_started", "Service Started", "Provider has started working on your service")]
    if isinstance(event, BookingCancelled):
        return [
            to_customer("booking_cancelled", "Booking Cancelled", "Booking was cancelled"),
            to_provider("booking_cancelled", "Booking Cancelled", "Booking was cancelled", event.aggregate_id),
        ]
    if isinstance(event, BookingExpired):
        return [
            to_customer(
                "booking_expired",
                "Booking Expired",
                "Your booking has expired as the provider did not respond in time.",
            ),
            to_provider(
                "booking_expired",
                "Booking Expired",
                "A booking request has expired due to no response.",
                event.aggregate_id,
            ),
        ]
    if isinstance(event, CompletionChallengeIssued):
        return [
            to_customer(
                "completion_code",
                "Verify Service Completion",
                f"Provider requested completion. Please share this code with them: {event.code}",
            ),
            to_provider(
                "completion_initiated",
                "Completion Initiated",
                "Ask the customer for the verification code.",
                event.aggregate_id,
            ),
        ]
    if isinstance(event, BookingCompleted):
        return [to_customer("booking_completed", "Service Completed", "Your service has been marked as completed.")]
    if isinstance(event, ProviderSuspended):
        return [to_provider("provider_suspended", "Account Suspended", event.reason or "Your provider account has been suspended")]
    if isinstance(event, ProviderStatusChanged):
        return [
            to_provider(
                "provider_status_changed",
                "Account Status Updated",
                f"Your provider account is now {event.new_status.value.lower()}",
            )
        ]
    if isinstance(event, AppealReviewed):
        return [
            Notification(
                recipient_role=Role.PROVIDER,
                recipient_id=event.provider_id,
                notification_type="appeal_reviewed",
                title="Appeal Reviewed",
                body=f"Your appeal is now {event.decision.lower()}",
                created_at=at,
            )
        ]
    return []


class NotificationService:
    """Fan-out of domain events to subscribers plus an in-app inbox."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: list[tuple[tuple[type[DomainEvent], ...], EventHandler]] = []
        self._inbox: list[Notification] = []
        self.subscribe(self._store_in_app)

    def subscribe(self, handler: EventHandler, *event_types: type[DomainEvent]) -> None:
        """Register ``handler`` for ``event_types`` (all events if none given)."""
        with self._lock:
            self._subscribers.append((event_types or (DomainEvent,), handler))

    def publish(self, events: Iterable[DomainEvent]) -> int:
        """Deliver events to every matching subscriber.

        Returns:
            int: Number of failed deliveries
        """
        with self._lock:
            subscribers = list(self._subscribers)

        failures = 0
        for event in events:
            for event_types, handler in subscribers:
                if not isinstance(event, event_types):
                    continue
                try:
                    handler(event)
                except Exception:
                    failures += 1
                    logger.exception(
                        f"Notification handler {getattr(handler, '__name__', handler)!r} "
                        f"failed for {event.event_type} {event.aggregate_id}"
                    )
        return failures

    def inbox(self, recipient_id: UUID | None = None) -> list[Notification]:
        with self._lock:
            notifications = list(self._inbox)
        if recipient_id is not None:
            notifications = [n for n in notifications if n.recipient_id == recipient_id]
        return notifications

    def _store_in_app(self, event: DomainEvent) -> None:
        notifications = build_notifications(event)
        with self._lock:
            self._inbox.extend(notifications)


notification_service = NotificationService()
