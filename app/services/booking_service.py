"""Booking lifecycle service.

Loads snapshots, runs them through the state machine, persists the result
with a compare-and-swap write and publishes events once the write landed.
"""

import logging
from collections.abc import Mapping
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import ValidationError

from app.core.exceptions import (
    CompletionChallengeError,
    ConcurrentUpdateError,
    InvalidBookingStatus,
    InvalidProviderStatus,
    InvariantViolation,
    NotFoundError,
    UnauthorizedAction,
)
from app.core.permissions import BookingAction
from app.database import InMemoryDatabase
from app.domain.booking_state import BookingStateMachine, TransitionPayload, is_expiry_due
from app.domain.events import events_for_transition
from app.domain.invoice import Invoice, InvoiceRates, project_invoice
from app.models.booking import Booking, BookingStatus
from app.models.provider import ProviderStatus
from app.models.user import SYSTEM_ACTOR, Actor, Role
from app.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


class BookingService:
    """Service for booking creation, transitions and invoices."""

    def __init__(
        self,
        machine: BookingStateMachine,
        notifications: NotificationService,
        rates: InvoiceRates | None = None,
    ) -> None:
        self.machine = machine
        self.notifications = notifications
        self.rates = rates or InvoiceRates()

    # ============ READS ============

    def get_booking(self, db: InMemoryDatabase, booking_id: UUID) -> Booking:
        booking = db.get_booking(booking_id)
        if booking is None:
            raise NotFoundError("Booking", str(booking_id))
        return booking

    def get_booking_for(self, db: InMemoryDatabase, booking_id: UUID, actor: Actor) -> Booking:
        """Booking visible to its customer, its provider and admins."""
        booking = self.get_booking(db, booking_id)
        if not self._can_view(booking, actor):
            # Same answer as a missing booking so ids cannot be guessed
            raise NotFoundError("Booking", str(booking_id))
        return booking

    def permitted_actions(
        self, db: InMemoryDatabase, booking_id: UUID, actor: Actor
    ) -> frozenset[BookingAction]:
        booking = self.get_booking_for(db, booking_id, actor)
        provider = db.get_provider(booking.provider_id)
        return self.machine.permitted_actions(actor, booking, provider)

    def list_bookings(
        self,
        db: InMemoryDatabase,
        actor: Actor,
        status: BookingStatus | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Booking], int]:
        """Bookings visible to ``actor``, newest first.

        Customers get their own bookings, providers the bookings of the
        provider they act for, admins everything.

        Returns:
            tuple[list[Booking], int]: The requested page and the total count
        """
        bookings = [b for b in db.list_bookings(status) if self._can_view(b, actor)]
        bookings.sort(key=lambda b: b.created_at, reverse=True)

        offset = (page - 1) * page_size
        return bookings[offset : offset + page_size], len(bookings)

    # ============ CREATE ============

    def create_booking(
        self,
        db: InMemoryDatabase,
        actor: Actor,
        provider_id: UUID,
        service_id: UUID,
        scheduled_at: datetime,
        base_amount: Decimal,
    ) -> Booking:
        """Create a PENDING booking for the calling customer.

        Args:
            db: Store
            actor: Must be a CUSTOMER
            provider_id: Provider being booked
            service_id: Catalog service being booked
            scheduled_at: Appointment time, must be in the future
            base_amount: Catalog price, fixed for the booking's lifetime

        Returns:
            Booking: The stored booking
        """
        if actor.role != Role.CUSTOMER:
            raise UnauthorizedAction("Only customers can create bookings")

        provider = db.get_provider(provider_id)
        if provider is None:
            raise NotFoundError("Provider", str(provider_id))
        if provider.status != ProviderStatus.APPROVED:
            raise InvalidProviderStatus("Provider is not accepting bookings")

        now = self.machine.clock.now()
        if scheduled_at <= now:
            raise InvariantViolation("Scheduled time must be in the future")

        try:
            booking = Booking(
                customer_id=actor.user_id,
                provider_id=provider_id,
                service_id=service_id,
                scheduled_at=scheduled_at,
                created_at=now,
                updated_at=now,
                base_amount=base_amount,
            )
        except ValidationError as e:
            raise InvariantViolation(
                "Invalid booking", errors=e.errors(include_url=False, include_context=False)
            )

        db.add_booking(booking)
        logger.info(f"Booking {booking.id} created by customer {actor.user_id} for provider {provider_id}")
        return booking

    # ============ TRANSITIONS ============

    def perform(
        self,
        db: InMemoryDatabase,
        booking_id: UUID,
        actor: Actor,
        action: BookingAction | str,
        payload: TransitionPayload | Mapping[str, Any] | None = None,
    ) -> Booking:
        """Apply an action and persist the result.

        A failed code verification still changes the booking (attempt
        counter, cleared code). That snapshot is saved before the error is
        re-raised.

        Raises:
            NotFoundError: If the booking is missing or not visible to ``actor``
            ConcurrentUpdateError: If the booking changed since it was read
        """
        if actor.role == Role.SYSTEM:
            booking = self.get_booking(db, booking_id)
        else:
            booking = self.get_booking_for(db, booking_id, actor)
        provider = db.get_provider(booking.provider_id)

        try:
            updated = self.machine.apply(booking, actor, action, payload, provider)
        except CompletionChallengeError as exc:
            if exc.booking is not None and exc.booking != booking:
                db.compare_and_swap_booking(exc.booking, booking.status, booking.updated_at)
            raise

        db.compare_and_swap_booking(updated, booking.status, booking.updated_at)
        self.notifications.publish(events_for_transition(booking, updated, BookingAction(action)))
        return updated

    def expire_stale_bookings(self, db: InMemoryDatabase, grace: timedelta | None = None) -> list[UUID]:
        """Expire PENDING bookings whose grace period has passed.

        Bookings that change underneath the sweep are skipped and picked up
        on the next run if still due.

        Returns:
            list[UUID]: Ids of bookings expired by this run
        """
        grace = grace if grace is not None else self.machine.policy.pending_grace
        now = self.machine.clock.now()
        expired: list[UUID] = []

        for booking in db.list_bookings(BookingStatus.PENDING):
            if not is_expiry_due(booking, now, grace):
                continue
            try:
                self.perform(db, booking.id, SYSTEM_ACTOR, BookingAction.EXPIRE)
            except (ConcurrentUpdateError, InvalidBookingStatus) as e:
                logger.warning(f"Skipping expiry of booking {booking.id}: {e.detail}")
                continue
            expired.append(booking.id)

        if expired:
            logger.info(f"Expired {len(expired)} stale booking(s)")
        return expired

    # ============ INVOICE ============

    def get_invoice(self, db: InMemoryDatabase, booking_id: UUID, actor: Actor) -> Invoice:
        """Project the invoice of a completed booking for an allowed viewer."""
        booking = self.get_booking_for(db, booking_id, actor)
        return project_invoice(booking, self.rates)

    # ============ HELPERS ============

    @staticmethod
    def _can_view(booking: Booking, actor: Actor) -> bool:
        if actor.role == Role.ADMIN:
            return True
        if actor.role == Role.CUSTOMER:
            return actor.user_id == booking.customer_id
        return actor.acts_for_provider(booking.provider_id)
