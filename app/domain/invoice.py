"""Invoice projection for completed bookings.

BILLING RULES:
- subtotal is the booking's base amount, fixed when the booking was made
- tax is charged to the customer on top of the subtotal
- the platform fee is deducted from the provider payout and is never part
  of the customer total
- every figure is rounded half-up to 2 decimal places

The projection reads only the booking and the rates, so projecting the
same booking twice yields identical invoices.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from pydantic import AwareDatetime, BaseModel, ConfigDict

from app.core.exceptions import InvalidBookingStatus
from app.models.booking import Booking, BookingStatus

CENTS = Decimal("0.01")

DEFAULT_TAX_RATE = Decimal("0.08")
DEFAULT_PLATFORM_FEE_RATE = Decimal("0.07")


def round_money(amount: Decimal) -> Decimal:
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class InvoiceRates:
    """Tax and platform fee rates as fractions (0.08 = 8%)."""

    tax_rate: Decimal = DEFAULT_TAX_RATE
    platform_fee_rate: Decimal = DEFAULT_PLATFORM_FEE_RATE

    def __post_init__(self) -> None:
        for name in ("tax_rate", "platform_fee_rate"):
            rate = Decimal(str(getattr(self, name)))
            if rate < 0 or rate >= 1:
                raise ValueError(f"{name} must be in [0, 1), got {rate}")
            object.__setattr__(self, name, rate)

    @classmethod
    def from_settings(cls, settings: Any) -> "InvoiceRates":
        return cls(tax_rate=settings.tax_rate, platform_fee_rate=settings.platform_fee_rate)


class Invoice(BaseModel):
    """Billing breakdown for a completed booking."""

    model_config = ConfigDict(frozen=True)

    invoice_number: str
    booking_id: uuid.UUID
    customer_id: uuid.UUID
    provider_id: uuid.UUID
    issued_at: AwareDatetime
    subtotal: Decimal
    tax_rate: Decimal
    tax: Decimal
    total: Decimal
    platform_fee_rate: Decimal
    platform_fee: Decimal
    provider_earnings: Decimal

    def customer_view(self) -> dict[str, Any]:
        """Breakdown without the provider-side fee figures."""
        return self.model_dump(exclude={"platform_fee_rate", "platform_fee", "provider_earnings"})


def invoice_number_for(booking_id: uuid.UUID) -> str:
    """Invoice number like 'INV-3F2A9C1B'."""
    return f"INV-{booking_id.hex[:8].upper()}"


def project_invoice(booking: Booking, rates: InvoiceRates | None = None) -> Invoice:
    """Derive the invoice for a completed booking.

    Args:
        booking: Booking snapshot, must be COMPLETED
        rates: Tax and platform fee rates (current rates by default)

    Returns:
        Invoice: Billing breakdown

    Raises:
        InvalidBookingStatus: If the booking is not completed
    """
    if booking.status != BookingStatus.COMPLETED:
        raise InvalidBookingStatus(
            f"Invoices are only available for completed bookings (status is {booking.status.value})"
        )

    rates = rates or InvoiceRates()

    subtotal = round_money(booking.base_amount)
    tax = round_money(subtotal * rates.tax_rate)
    platform_fee = round_money(subtotal * rates.platform_fee_rate)

    return Invoice(
        invoice_number=invoice_number_for(booking.id),
        booking_id=booking.id,
        customer_id=booking.customer_id,
        provider_id=booking.provider_id,
        # Completion time, not the time of projection
        issued_at=booking.updated_at,
        subtotal=subtotal,
        tax_rate=rates.tax_rate,
        tax=tax,
        total=subtotal + tax,
        platform_fee_rate=rates.platform_fee_rate,
        platform_fee=platform_fee,
        provider_earnings=subtotal - platform_fee,
    )
