"""Booking-related Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

from app.core.permissions import BookingAction
from app.domain.invoice import Invoice
from app.models.booking import Booking, BookingStatus
from app.models.user import Actor, Role


class BookingCreate(BaseModel):
    """Schema for creating a booking."""

    provider_id: UUID
    service_id: UUID
    scheduled_at: AwareDatetime
    base_amount: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)


class BookingReasonRequest(BaseModel):
    """Optional reason for reject/cancel."""

    reason: str | None = Field(None, max_length=500)


class CompletionVerifyRequest(BaseModel):
    """Code the customer handed to the provider."""

    code: str = Field(..., min_length=4, max_length=10, pattern=r"^\d+$")


class CompletionChallengeResponse(BaseModel):
    """Outstanding challenge; ``code`` is only shown to the customer."""

    code: str | None = None
    issued_at: datetime
    expires_at: datetime
    attempts: int


class BookingResponse(BaseModel):
    """Schema for booking response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    customer_id: UUID
    provider_id: UUID
    service_id: UUID
    status: BookingStatus
    scheduled_at: datetime
    base_amount: Decimal

    completion_challenge: CompletionChallengeResponse | None = None

    # Cancellation
    cancelled_by: UUID | None = None
    cancelled_by_role: Role | None = None
    cancellation_reason: str | None = None
    cancelled_at: datetime | None = None

    # Rejection
    rejection_reason: str | None = None
    rejected_at: datetime | None = None

    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_booking(cls, booking: Booking, viewer: Actor) -> "BookingResponse":
        """Snapshot as seen by ``viewer``."""
        challenge = None
        if booking.completion_challenge is not None:
            c = booking.completion_challenge
            challenge = CompletionChallengeResponse(
                code=c.code if viewer.user_id == booking.customer_id else None,
                issued_at=c.issued_at,
                expires_at=c.expires_at,
                attempts=c.attempts,
            )

        cancellation = booking.cancellation
        rejection = booking.rejection
        return cls(
            id=booking.id,
            customer_id=booking.customer_id,
            provider_id=booking.provider_id,
            service_id=booking.service_id,
            status=booking.status,
            scheduled_at=booking.scheduled_at,
            base_amount=booking.base_amount,
            completion_challenge=challenge,
            cancelled_by=cancellation.cancelled_by if cancellation else None,
            cancelled_by_role=cancellation.cancelled_by_role if cancellation else None,
            cancellation_reason=cancellation.reason if cancellation else None,
            cancelled_at=cancellation.at if cancellation else None,
            rejection_reason=rejection.reason if rejection else None,
            rejected_at=rejection.at if rejection else None,
            created_at=booking.created_at,
            updated_at=booking.updated_at,
        )


class BookingListResponse(BaseModel):
    """Schema for paginated booking list."""

    bookings: list[BookingResponse]
    total: int
    page: int
    page_size: int


class ExpirySweepResponse(BaseModel):
    """Result of an on-demand expiry sweep."""

    expired_count: int
    expired_bookings: list[UUID]


class PermittedActionsResponse(BaseModel):
    """Actions the caller may take on a booking right now."""

    booking_id: UUID
    status: BookingStatus
    actions: list[BookingAction]


class CustomerInvoiceResponse(BaseModel):
    """Invoice as the customer sees it."""

    invoice_number: str
    booking_id: UUID
    customer_id: UUID
    provider_id: UUID
    issued_at: datetime
    subtotal: Decimal
    tax_rate: Decimal
    tax: Decimal
    total: Decimal


class InvoiceResponse(CustomerInvoiceResponse):
    """Full invoice including the provider-side fee."""

    platform_fee_rate: Decimal
    platform_fee: Decimal
    provider_earnings: Decimal


def invoice_for_viewer(invoice: Invoice, viewer: Actor) -> InvoiceResponse | CustomerInvoiceResponse:
    if viewer.role == Role.CUSTOMER:
        return CustomerInvoiceResponse(**invoice.customer_view())
    return InvoiceResponse(**invoice.model_dump())
