"""Snapshot store for bookings, providers, appeals and the moderation audit log.

Writes are compare-and-swap: a booking is only replaced when the stored
copy still has the status and ``updated_at`` the caller read, so at most
one concurrent transition per booking succeeds. The audit log is
append-only.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from uuid import UUID

from app.core.exceptions import ConcurrentUpdateError, InvariantViolation
from app.models.booking import Booking, BookingStatus
from app.models.provider import Appeal, AppealStatus, ModerationAuditRecord, Provider, ProviderStatus

logger = logging.getLogger(__name__)


class InMemoryDatabase:
    """Thread-safe in-process store."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._bookings: dict[UUID, Booking] = {}
        self._providers: dict[UUID, Provider] = {}
        self._appeals: dict[UUID, Appeal] = {}
        self._audit: list[ModerationAuditRecord] = []

    # ============ BOOKINGS ============

    def get_booking(self, booking_id: UUID) -> Booking | None:
        with self._lock:
            return self._bookings.get(booking_id)

    def list_bookings(self, status: BookingStatus | None = None) -> list[Booking]:
        with self._lock:
            bookings = list(self._bookings.values())
        if status is not None:
            bookings = [b for b in bookings if b.status == status]
        return sorted(bookings, key=lambda b: (b.created_at, str(b.id)))

    def add_booking(self, booking: Booking) -> Booking:
        with self._lock:
            if booking.id in self._bookings:
                raise InvariantViolation(f"Booking {booking.id} already exists")
            self._bookings[booking.id] = booking
        return booking

    def compare_and_swap_booking(
        self,
        booking: Booking,
        expected_status: BookingStatus,
        expected_updated_at: datetime,
    ) -> Booking:
        """Replace the stored booking if it is unchanged since it was read.

        Raises:
            ConcurrentUpdateError: If another write landed first
        """
        with self._lock:
            current = self._bookings.get(booking.id)
            if (
                current is None
                or current.status != expected_status
                or current.updated_at != expected_updated_at
            ):
                logger.warning(
                    f"Stale write rejected for booking {booking.id}: expected "
                    f"{expected_status.value}@{expected_updated_at.isoformat()}"
                )
                raise ConcurrentUpdateError()
            self._bookings[booking.id] = booking
        return booking

    # ============ PROVIDERS ============

    def get_provider(self, provider_id: UUID) -> Provider | None:
        with self._lock:
            return self._providers.get(provider_id)

    def add_provider(self, provider: Provider) -> Provider:
        with self._lock:
            if provider.id in self._providers:
                raise InvariantViolation(f"Provider {provider.id} already exists")
            self._providers[provider.id] = provider
        return provider

    def commit_provider_change(
        self,
        provider: Provider,
        expected_status: ProviderStatus,
        record: ModerationAuditRecord,
    ) -> Provider:
        """Swap the provider and append its audit record atomically."""
        with self._lock:
            current = self._providers.get(provider.id)
            if current is None or current.status != expected_status:
                raise ConcurrentUpdateError("This provider was changed by someone else. Please refresh and try again.")
            self._providers[provider.id] = provider
            self._audit.append(record)
        return provider

    def list_audit_records(self, provider_id: UUID | None = None) -> list[ModerationAuditRecord]:
        with self._lock:
            records = list(self._audit)
        if provider_id is not None:
            records = [r for r in records if r.provider_id == provider_id]
        return records

    # ============ APPEALS ============

    def get_appeal(self, appeal_id: UUID) -> Appeal | None:
        with self._lock:
            return self._appeals.get(appeal_id)

    def list_appeals(self, provider_id: UUID | None = None) -> list[Appeal]:
        with self._lock:
            appeals = list(self._appeals.values())
        if provider_id is not None:
            appeals = [a for a in appeals if a.provider_id == provider_id]
        return sorted(appeals, key=lambda a: (a.created_at, str(a.id)))

    def add_appeal(self, appeal: Appeal) -> Appeal:
        with self._lock:
            if any(a.provider_id == appeal.provider_id and a.is_open for a in self._appeals.values()):
                raise ConcurrentUpdateError("An appeal for this provider is already open")
            self._appeals[appeal.id] = appeal
        return appeal

    def compare_and_swap_appeal(self, appeal: Appeal, expected_status: AppealStatus) -> Appeal:
        with self._lock:
            current = self._appeals.get(appeal.id)
            if current is None or current.status != expected_status:
                raise ConcurrentUpdateError("This appeal was changed by someone else. Please refresh and try again.")
            self._appeals[appeal.id] = appeal
        return appeal

    def clear(self) -> None:
        with self._lock:
            self._bookings.clear()
            self._providers.clear()
            self._appeals.clear()
            self._audit.clear()


database = InMemoryDatabase()


def get_db() -> InMemoryDatabase:
    """Dependency returning the process-wide store."""
    return database


def close_db() -> None:
    database.clear()
