import logging
import random
from datetime import timedelta
from decimal import Decimal

import pytest

from app.core.clock import FixedClock, SequenceCodeSource
from app.core.exceptions import (
    CompletionCodeExpired,
    CompletionCodeMismatch,
    InvalidBookingStatus,
    InvariantViolation,
    NoOutstandingChallenge,
    UnauthorizedAction,
)
from app.core.permissions import BookingAction
from app.domain.booking_state import BOOKING_TRANSITIONS, BookingStateMachine, is_expiry_due
from app.domain.invoice import project_invoice
from app.models.booking import BookingStatus
from app.models.provider import ProviderStatus
from app.models.user import SYSTEM_ACTOR, Role
from conftest import NOW


def test_happy_path_to_invoice(machine, make_booking, provider_actor, provider):
    booking = make_booking()

    booking = machine.apply(booking, provider_actor, BookingAction.ACCEPT, provider=provider)
    assert booking.status == BookingStatus.CONFIRMED

    booking = machine.apply(booking, provider_actor, BookingAction.START, provider=provider)
    assert booking.status == BookingStatus.IN_PROGRESS

    booking = machine.apply(booking, provider_actor, BookingAction.INITIATE_COMPLETION, provider=provider)
    assert booking.status == BookingStatus.IN_PROGRESS
    assert booking.completion_challenge.code == "482913"

    booking = machine.apply(
        booking, provider_actor, BookingAction.VERIFY_COMPLETION, {"code": "482913"}, provider
    )
    assert booking.status == BookingStatus.COMPLETED
    assert booking.completion_challenge is None

    invoice = project_invoice(booking)
    assert invoice.subtotal == Decimal("1000.00")
    assert invoice.tax == Decimal("80.00")
    assert invoice.total == Decimal("1080.00")


def test_apply_stamps_updated_at(machine, make_booking, provider_actor, provider):
    booking = make_booking()
    accepted = machine.apply(booking, provider_actor, "ACCEPT", provider=provider)
    assert accepted.updated_at == NOW
    assert accepted.created_at == booking.created_at


def test_updated_at_never_moves_backwards(machine, make_booking, provider_actor, provider):
    later = NOW + timedelta(minutes=5)
    booking = make_booking(created_at=later, updated_at=later)
    accepted = machine.apply(booking, provider_actor, "ACCEPT", provider=provider)
    assert accepted.updated_at == later


def test_apply_never_mutates_input(machine, make_booking, provider_actor, provider):
    booking = make_booking()
    before = booking.model_dump()
    machine.apply(booking, provider_actor, BookingAction.ACCEPT, provider=provider)
    assert booking.model_dump() == before
    assert booking.status == BookingStatus.PENDING


def test_apply_is_referentially_transparent(make_booking, provider_actor, provider):
    booking = make_booking(status=BookingStatus.IN_PROGRESS)
    first = BookingStateMachine(FixedClock(NOW), SequenceCodeSource(["482913"]))
    second = BookingStateMachine(FixedClock(NOW), SequenceCodeSource(["482913"]))

    a = first.apply(booking, provider_actor, BookingAction.INITIATE_COMPLETION, provider=provider)
    b = second.apply(booking, provider_actor, BookingAction.INITIATE_COMPLETION, provider=provider)
    assert a == b


def test_double_cancel_is_invalid_state(machine, make_booking, customer, provider):
    booking = make_booking()
    cancelled = machine.apply(booking, customer, BookingAction.CANCEL, {"reason": "Plans changed"}, provider)
    assert cancelled.status == BookingStatus.CANCELLED
    assert cancelled.cancellation.cancelled_by == customer.user_id
    assert cancelled.cancellation.cancelled_by_role == Role.CUSTOMER
    assert cancelled.cancellation.reason == "Plans changed"

    with pytest.raises(InvalidBookingStatus, match="already cancelled"):
        machine.apply(cancelled, customer, BookingAction.CANCEL, provider=provider)


def test_reject_records_reason(machine, make_booking, provider_actor, provider):
    rejected = machine.apply(
        make_booking(), provider_actor, BookingAction.REJECT, {"reason": "Fully booked"}, provider
    )
    assert rejected.status == BookingStatus.REJECTED
    assert rejected.rejection.reason == "Fully booked"
    assert rejected.cancellation is None


def test_accept_twice_reports_already_accepted(machine, make_booking, provider_actor, provider):
    confirmed = machine.apply(make_booking(), provider_actor, BookingAction.ACCEPT, provider=provider)
    with pytest.raises(InvalidBookingStatus, match="already accepted"):
        machine.apply(confirmed, provider_actor, BookingAction.ACCEPT, provider=provider)


def test_customer_cannot_accept(machine, make_booking, customer, provider):
    with pytest.raises(UnauthorizedAction):
        machine.apply(make_booking(), customer, BookingAction.ACCEPT, provider=provider)


def test_other_provider_cannot_accept(machine, make_booking, other_provider_actor, provider):
    with pytest.raises(UnauthorizedAction):
        machine.apply(make_booking(), other_provider_actor, BookingAction.ACCEPT, provider=provider)


def test_admin_cannot_cancel_booking(machine, make_booking, admin, provider):
    with pytest.raises(UnauthorizedAction):
        machine.apply(make_booking(), admin, BookingAction.CANCEL, provider=provider)


def test_customer_cannot_cancel_confirmed(machine, make_booking, customer, provider):
    booking = make_booking(status=BookingStatus.CONFIRMED)
    with pytest.raises(InvalidBookingStatus):
        machine.apply(booking, customer, BookingAction.CANCEL, provider=provider)


def test_provider_cancel_in_progress_clears_challenge(machine, make_booking, provider_actor, provider):
    booking = make_booking(status=BookingStatus.IN_PROGRESS)
    booking = machine.apply(booking, provider_actor, BookingAction.INITIATE_COMPLETION, provider=provider)
    cancelled = machine.apply(booking, provider_actor, BookingAction.CANCEL, provider=provider)
    assert cancelled.status == BookingStatus.CANCELLED
    assert cancelled.completion_challenge is None
    assert cancelled.cancellation.cancelled_by_role == Role.PROVIDER


def test_suspended_provider_blocked_until_restored(machine, make_booking, provider_actor, provider):
    booking = make_booking(status=BookingStatus.IN_PROGRESS)
    suspended = provider.evolve(status=ProviderStatus.SUSPENDED)

    with pytest.raises(UnauthorizedAction):
        machine.apply(booking, provider_actor, BookingAction.INITIATE_COMPLETION, provider=suspended)

    restored = suspended.evolve(status=ProviderStatus.APPROVED)
    updated = machine.apply(booking, provider_actor, BookingAction.INITIATE_COMPLETION, provider=restored)
    assert updated.completion_challenge is not None


def test_unknown_action_is_invariant_violation(machine, make_booking, provider_actor, provider):
    with pytest.raises(InvariantViolation):
        machine.apply(make_booking(), provider_actor, "TELEPORT", provider=provider)


def test_overlong_reason_is_invariant_violation(machine, make_booking, customer, provider):
    with pytest.raises(InvariantViolation):
        machine.apply(make_booking(), customer, BookingAction.CANCEL, {"reason": "x" * 501}, provider)


def test_unexpected_payload_field_rejected(machine, make_booking, customer, provider):
    with pytest.raises(InvariantViolation):
        machine.apply(make_booking(), customer, BookingAction.CANCEL, {"refund": "all"}, provider)


# ============ COMPLETION ============


@pytest.fixture
def with_code(machine, make_booking, provider_actor, provider):
    booking = make_booking(status=BookingStatus.IN_PROGRESS)
    return machine.apply(booking, provider_actor, BookingAction.INITIATE_COMPLETION, provider=provider)


def test_verify_requires_code(machine, with_code, provider_actor, provider):
    with pytest.raises(InvariantViolation):
        machine.apply(with_code, provider_actor, BookingAction.VERIFY_COMPLETION, provider=provider)
    with pytest.raises(InvariantViolation):
        machine.apply(with_code, provider_actor, BookingAction.VERIFY_COMPLETION, {"code": "123"}, provider)


def test_mismatch_carries_bumped_attempts(machine, with_code, provider_actor, provider):
    with pytest.raises(CompletionCodeMismatch) as exc_info:
        machine.apply(with_code, provider_actor, BookingAction.VERIFY_COMPLETION, {"code": "000000"}, provider)

    exc = exc_info.value
    assert exc.attempts_remaining == 4
    assert exc.booking.completion_challenge.attempts == 1
    assert exc.booking.status == BookingStatus.IN_PROGRESS
    assert with_code.completion_challenge.attempts == 0


def test_expired_code_is_cleared(machine, clock, with_code, provider_actor, provider):
    clock.advance(timedelta(minutes=31))
    with pytest.raises(CompletionCodeExpired) as exc_info:
        machine.apply(with_code, provider_actor, BookingAction.VERIFY_COMPLETION, {"code": "482913"}, provider)
    assert exc_info.value.booking.completion_challenge is None


def test_reinitiate_after_expiry_invalidates_old_code(machine, clock, with_code, provider_actor, provider):
    clock.advance(timedelta(minutes=31))
    reissued = machine.apply(with_code, provider_actor, BookingAction.INITIATE_COMPLETION, provider=provider)
    assert reissued.completion_challenge.code == "105577"

    with pytest.raises(CompletionCodeMismatch):
        machine.apply(reissued, provider_actor, BookingAction.VERIFY_COMPLETION, {"code": "482913"}, provider)


def test_cannot_reinitiate_while_code_is_live(machine, with_code, provider_actor, provider):
    with pytest.raises(UnauthorizedAction):
        machine.apply(with_code, provider_actor, BookingAction.INITIATE_COMPLETION, provider=provider)


def test_verify_without_challenge(machine, make_booking, provider_actor, provider):
    booking = make_booking(status=BookingStatus.IN_PROGRESS)
    with pytest.raises(NoOutstandingChallenge):
        machine.apply(booking, provider_actor, BookingAction.VERIFY_COMPLETION, {"code": "482913"}, provider)


def test_repeat_verify_after_completion(machine, with_code, provider_actor, provider):
    completed = machine.apply(
        with_code, provider_actor, BookingAction.VERIFY_COMPLETION, {"code": "482913"}, provider
    )
    with pytest.raises(NoOutstandingChallenge):
        machine.apply(completed, provider_actor, BookingAction.VERIFY_COMPLETION, {"code": "482913"}, provider)


def test_customer_cannot_verify(machine, with_code, customer, provider):
    with pytest.raises(UnauthorizedAction):
        machine.apply(with_code, customer, BookingAction.VERIFY_COMPLETION, {"code": "482913"}, provider)


def test_completed_only_through_verify():
    completing = [(s, a) for (s, a), dest in BOOKING_TRANSITIONS.items() if dest == BookingStatus.COMPLETED]
    assert completing == [(BookingStatus.IN_PROGRESS, BookingAction.VERIFY_COMPLETION)]


# ============ EXPIRY ============


def test_expire_after_grace(machine, clock, make_booking, provider):
    booking = make_booking()
    clock.set(booking.scheduled_at + timedelta(minutes=60))
    expired = machine.apply(booking, SYSTEM_ACTOR, BookingAction.EXPIRE, provider=provider)
    assert expired.status == BookingStatus.EXPIRED


def test_expire_before_grace_refused(machine, clock, make_booking, provider):
    booking = make_booking()
    clock.set(booking.scheduled_at + timedelta(minutes=59))
    with pytest.raises(InvalidBookingStatus):
        machine.apply(booking, SYSTEM_ACTOR, BookingAction.EXPIRE, provider=provider)


def test_only_system_expires(machine, clock, make_booking, customer, provider):
    booking = make_booking()
    clock.set(booking.scheduled_at + timedelta(hours=2))
    with pytest.raises(UnauthorizedAction):
        machine.apply(booking, customer, BookingAction.EXPIRE, provider=provider)


def test_expiry_due(make_booking):
    booking = make_booking()
    grace = timedelta(minutes=60)
    assert not is_expiry_due(booking, booking.scheduled_at, grace)
    assert is_expiry_due(booking, booking.scheduled_at + grace, grace)
    assert not is_expiry_due(make_booking(status=BookingStatus.CONFIRMED), booking.scheduled_at + grace, grace)


def test_status_sequences_follow_the_table(machine, clock, make_booking, customer, provider_actor, provider):
    """Random walks over all actors and actions never leave the transition table."""
    rng = random.Random(7)
    actors = [customer, provider_actor, SYSTEM_ACTOR]
    for _ in range(50):
        machine.codes = SequenceCodeSource(["482913"] * 20)
        clock.set(NOW)
        booking = make_booking()
        for _ in range(12):
            actor = rng.choice(actors)
            action = rng.choice(list(BookingAction))
            payload = {"code": "482913"} if action == BookingAction.VERIFY_COMPLETION else None
            if action == BookingAction.EXPIRE:
                clock.set(booking.scheduled_at + timedelta(hours=2))
            try:
                after = machine.apply(booking, actor, action, payload, provider)
            except (InvalidBookingStatus, UnauthorizedAction, CompletionCodeExpired, NoOutstandingChallenge):
                continue
            assert BOOKING_TRANSITIONS[(booking.status, action)] == after.status
            booking = after


def test_no_drift_logged_in_normal_use(machine, make_booking, customer, provider, caplog):
    with caplog.at_level(logging.ERROR):
        machine.apply(make_booking(), customer, BookingAction.CANCEL, provider=provider)
    assert "TRANSITION_DRIFT" not in caplog.text


def test_missing_edge_is_refused_and_logged(machine, make_booking, customer, provider, caplog, monkeypatch):
    monkeypatch.delitem(BOOKING_TRANSITIONS, (BookingStatus.PENDING, BookingAction.CANCEL))
    booking = make_booking()
    assert BookingAction.CANCEL in machine.permitted_actions(customer, booking, provider)

    with caplog.at_level(logging.ERROR), pytest.raises(InvalidBookingStatus):
        machine.apply(booking, customer, BookingAction.CANCEL, provider=provider)

    assert "TRANSITION_DRIFT" in caplog.text
    assert booking.status == BookingStatus.PENDING


def test_wrong_destination_is_refused_and_logged(machine, make_booking, customer, provider, caplog, monkeypatch):
    monkeypatch.setitem(BOOKING_TRANSITIONS, (BookingStatus.PENDING, BookingAction.CANCEL), BookingStatus.EXPIRED)

    with caplog.at_level(logging.ERROR), pytest.raises(InvalidBookingStatus):
        machine.apply(make_booking(), customer, BookingAction.CANCEL, provider=provider)

    assert "produced CANCELLED, table expects EXPIRED" in caplog.text
