"""Booking authorization guard.

Every role/state/moderation rule deciding who may move a booking lives
here. Handlers and the state machine ask :func:`permitted_actions` and
treat "action not in the set" as the single authorization failure.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from app.models.booking import Booking, BookingStatus
from app.models.provider import Provider, ProviderStatus
from app.models.user import Actor, Role


class BookingAction(str, Enum):
    """Intents an actor can issue against a booking."""

    ACCEPT = "ACCEPT"
    REJECT = "REJECT"
    CANCEL = "CANCEL"
    START = "START"
    INITIATE_COMPLETION = "INITIATE_COMPLETION"
    VERIFY_COMPLETION = "VERIFY_COMPLETION"
    EXPIRE = "EXPIRE"


# Upper bound per role; state and moderation narrow it further
ROLE_ACTIONS: dict[Role, frozenset[BookingAction]] = {
    Role.CUSTOMER: frozenset({BookingAction.CANCEL}),
    Role.PROVIDER: frozenset(
        {
            BookingAction.ACCEPT,
            BookingAction.REJECT,
            BookingAction.CANCEL,
            BookingAction.START,
            BookingAction.INITIATE_COMPLETION,
            BookingAction.VERIFY_COMPLETION,
        }
    ),
    # Admins act on providers through the moderation gate, never on bookings
    Role.ADMIN: frozenset(),
    Role.SYSTEM: frozenset({BookingAction.EXPIRE}),
}

# Actions that need the provider to be in good standing
MODERATED_ACTIONS: frozenset[BookingAction] = frozenset(
    {
        BookingAction.ACCEPT,
        BookingAction.REJECT,
        BookingAction.START,
        BookingAction.INITIATE_COMPLETION,
    }
)

CUSTOMER_CANCELLABLE: frozenset[BookingStatus] = frozenset(
    {BookingStatus.PENDING, BookingStatus.IN_PROGRESS}
)
PROVIDER_CANCELLABLE: frozenset[BookingStatus] = frozenset({BookingStatus.IN_PROGRESS})

NO_ACTIONS: frozenset[BookingAction] = frozenset()


def has_role_action(role: Role, action: BookingAction) -> bool:
    """Check if a role can ever perform an action."""
    return action in ROLE_ACTIONS.get(role, NO_ACTIONS)


def provider_in_good_standing(provider: Provider | None, booking: Booking) -> bool:
    """True when ``provider`` is the booking's provider and is APPROVED."""
    return (
        provider is not None
        and provider.id == booking.provider_id
        and provider.status == ProviderStatus.APPROVED
    )


def permitted_actions(
    actor: Actor,
    booking: Booking,
    provider: Provider | None,
    now: datetime | None = None,
) -> frozenset[BookingAction]:
    """Derive what ``actor`` may do to ``booking`` right now.

    Pure and total: never raises, returns an empty set when nothing is
    allowed.

    Args:
        actor: Caller context
        booking: Current booking snapshot
        provider: Snapshot of the booking's provider (moderation status)
        now: Evaluation time. When given, an expired completion challenge
            no longer blocks INITIATE_COMPLETION.

    Returns:
        frozenset[BookingAction]: Permitted actions
    """
    if booking.is_terminal:
        return NO_ACTIONS

    status = booking.status

    if actor.role == Role.SYSTEM:
        return frozenset({BookingAction.EXPIRE}) if status == BookingStatus.PENDING else NO_ACTIONS

    allowed: set[BookingAction] = set()

    if actor.role == Role.CUSTOMER and actor.user_id == booking.customer_id:
        if status in CUSTOMER_CANCELLABLE:
            allowed.add(BookingAction.CANCEL)

    elif actor.acts_for_provider(booking.provider_id):
        approved = provider_in_good_standing(provider, booking)

        if status == BookingStatus.PENDING and approved:
            allowed.update({BookingAction.ACCEPT, BookingAction.REJECT})
        elif status == BookingStatus.CONFIRMED and approved:
            allowed.add(BookingAction.START)
        elif status == BookingStatus.IN_PROGRESS:
            if status in PROVIDER_CANCELLABLE:
                allowed.add(BookingAction.CANCEL)
            if approved and not booking.has_live_challenge(now):
                allowed.add(BookingAction.INITIATE_COMPLETION)
            # Expiry is judged by the verifier so the caller learns the code expired
            if booking.completion_challenge is not None:
                allowed.add(BookingAction.VERIFY_COMPLETION)

    return frozenset(a for a in allowed if has_role_action(actor.role, a))
