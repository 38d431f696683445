from datetime import timedelta
from decimal import Decimal

import pytest

from app.core.exceptions import InvalidBookingStatus
from app.domain.invoice import InvoiceRates, invoice_number_for, project_invoice
from app.models.booking import BookingStatus
from conftest import NOW


def test_scenario_totals(make_booking):
    invoice = project_invoice(make_booking(status=BookingStatus.COMPLETED), InvoiceRates(tax_rate=Decimal("0.08")))
    assert invoice.subtotal == Decimal("1000.00")
    assert invoice.tax == Decimal("80.00")
    assert invoice.total == Decimal("1080.00")


def test_platform_fee_not_in_customer_total(make_booking):
    invoice = project_invoice(make_booking(status=BookingStatus.COMPLETED))
    assert invoice.platform_fee == Decimal("70.00")
    assert invoice.provider_earnings == Decimal("930.00")
    assert invoice.total == invoice.subtotal + invoice.tax


def test_rounding_half_up(make_booking):
    booking = make_booking(status=BookingStatus.COMPLETED, base_amount=Decimal("19.99"))
    invoice = project_invoice(booking, InvoiceRates(tax_rate=Decimal("0.075"), platform_fee_rate=Decimal("0.05")))
    # 19.99 * 0.075 = 1.49925, 19.99 * 0.05 = 0.9995
    assert invoice.tax == Decimal("1.50")
    assert invoice.platform_fee == Decimal("1.00")
    assert invoice.total == Decimal("21.49")


def test_deterministic(make_booking):
    booking = make_booking(status=BookingStatus.COMPLETED, updated_at=NOW)
    first = project_invoice(booking)
    second = project_invoice(booking)
    assert first == second
    assert first.model_dump_json() == second.model_dump_json()
    assert first.issued_at == NOW


def test_invoice_number(make_booking):
    booking = make_booking(status=BookingStatus.COMPLETED)
    invoice = project_invoice(booking)
    assert invoice.invoice_number == invoice_number_for(booking.id)
    assert invoice.invoice_number.startswith("INV-")
    assert len(invoice.invoice_number) == 12


@pytest.mark.parametrize(
    "status",
    [BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS, BookingStatus.EXPIRED],
)
def test_only_completed_bookings_have_invoices(make_booking, status):
    with pytest.raises(InvalidBookingStatus):
        project_invoice(make_booking(status=status))


def test_customer_view_hides_fee(make_booking):
    view = project_invoice(make_booking(status=BookingStatus.COMPLETED)).customer_view()
    assert "platform_fee" not in view
    assert "platform_fee_rate" not in view
    assert "provider_earnings" not in view
    assert view["total"] == Decimal("1080.00")


def test_rates_validated():
    with pytest.raises(ValueError):
        InvoiceRates(tax_rate=Decimal("-0.01"))
    with pytest.raises(ValueError):
        InvoiceRates(platform_fee_rate=Decimal("1"))


def test_rates_accept_strings_and_floats():
    rates = InvoiceRates(tax_rate="0.08", platform_fee_rate=0.07)
    assert rates.tax_rate == Decimal("0.08")
    assert rates.platform_fee_rate == Decimal("0.07")


def test_zero_amount(make_booking):
    invoice = project_invoice(
        make_booking(status=BookingStatus.COMPLETED, base_amount=Decimal("0"), updated_at=NOW + timedelta(hours=1))
    )
    assert invoice.total == Decimal("0.00")
