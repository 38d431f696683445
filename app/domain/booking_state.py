"""Booking state machine.

Transitions (source, action → destination):
- PENDING: ACCEPT → CONFIRMED, REJECT → REJECTED, CANCEL → CANCELLED,
  EXPIRE → EXPIRED
- CONFIRMED: START → IN_PROGRESS
- IN_PROGRESS: INITIATE_COMPLETION → IN_PROGRESS (challenge attached),
  VERIFY_COMPLETION → COMPLETED, CANCEL → CANCELLED

COMPLETED, CANCELLED, REJECTED and EXPIRED are terminal.

:meth:`BookingStateMachine.apply` is value-in/value-out. The caller
persists the returned booking with a compare-and-swap on the prior status
so only one transition wins under concurrency.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.core.clock import Clock, CodeSource, secure_codes, system_clock
from app.core.exceptions import (
    CompletionCodeExpired,
    CompletionCodeMismatch,
    InvalidBookingStatus,
    InvariantViolation,
    NoOutstandingChallenge,
    UnauthorizedAction,
)
from app.core.permissions import BookingAction, permitted_actions, provider_in_good_standing
from app.domain.completion_challenge import (
    DEFAULT_CODE_LENGTH,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_TTL,
    VerificationResult,
    attempts_remaining,
    issue_challenge,
    verify_challenge,
)
from app.models.booking import Booking, BookingStatus, Cancellation, Rejection
from app.models.provider import Provider
from app.models.user import Actor, Role

logger = logging.getLogger(__name__)

BOOKING_TRANSITIONS: dict[tuple[BookingStatus, BookingAction], BookingStatus] = {
    (BookingStatus.PENDING, BookingAction.ACCEPT): BookingStatus.CONFIRMED,
    (BookingStatus.PENDING, BookingAction.REJECT): BookingStatus.REJECTED,
    (BookingStatus.PENDING, BookingAction.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.PENDING, BookingAction.EXPIRE): BookingStatus.EXPIRED,
    (BookingStatus.CONFIRMED, BookingAction.START): BookingStatus.IN_PROGRESS,
    (BookingStatus.IN_PROGRESS, BookingAction.INITIATE_COMPLETION): BookingStatus.IN_PROGRESS,
    (BookingStatus.IN_PROGRESS, BookingAction.VERIFY_COMPLETION): BookingStatus.COMPLETED,
    (BookingStatus.IN_PROGRESS, BookingAction.CANCEL): BookingStatus.CANCELLED,
}

_STATUS_MESSAGES: dict[BookingStatus, str] = {
    BookingStatus.COMPLETED: "This booking is already completed",
    BookingStatus.CANCELLED: "This booking was already cancelled",
    BookingStatus.REJECTED: "This booking was already rejected",
    BookingStatus.EXPIRED: "This booking has expired",
}


def next_status(current: BookingStatus, action: BookingAction) -> BookingStatus | None:
    """Destination for ``action`` from ``current``, or None if no edge exists."""
    return BOOKING_TRANSITIONS.get((current, action))


def invalid_state_message(current: BookingStatus, action: BookingAction) -> str:
    """User-facing explanation for an action with no edge from ``current``."""
    if current in _STATUS_MESSAGES:
        return _STATUS_MESSAGES[current]
    if action in (BookingAction.ACCEPT, BookingAction.REJECT) and current != BookingStatus.PENDING:
        return "This booking was already accepted"
    if action == BookingAction.START and current == BookingStatus.IN_PROGRESS:
        return "This service has already started"
    if action == BookingAction.START:
        return "Only confirmed bookings can be started"
    if action in (BookingAction.INITIATE_COMPLETION, BookingAction.VERIFY_COMPLETION):
        return "Completion is only possible while the service is in progress"
    if action == BookingAction.EXPIRE:
        return "Only pending bookings can expire"
    return f"Cannot {action.value.lower()} a {current.value.lower()} booking"


@dataclass(frozen=True)
class BookingPolicy:
    """Time and attempt limits applied by the state machine."""

    completion_code_ttl: timedelta = DEFAULT_TTL
    completion_code_length: int = DEFAULT_CODE_LENGTH
    completion_max_attempts: int = DEFAULT_MAX_ATTEMPTS
    pending_grace: timedelta = timedelta(minutes=60)

    @classmethod
    def from_settings(cls, settings: Any) -> "BookingPolicy":
        return cls(
            completion_code_ttl=timedelta(minutes=settings.completion_code_ttl_minutes),
            completion_code_length=settings.completion_code_length,
            completion_max_attempts=settings.completion_max_attempts,
            pending_grace=timedelta(minutes=settings.pending_grace_minutes),
        )


class TransitionPayload(BaseModel):
    """Optional data carried by an action."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    reason: str | None = Field(None, max_length=500)
    code: str | None = Field(None, pattern=r"^\d+$")


def _precondition_holds(
    booking: Booking,
    actor: Actor,
    action: BookingAction,
    provider: Provider | None,
) -> bool:
    """Re-derive the transition precondition without consulting the guard."""
    status = booking.status
    owns = actor.acts_for_provider(booking.provider_id)
    approved = provider_in_good_standing(provider, booking)

    if action in (BookingAction.ACCEPT, BookingAction.REJECT):
        return status == BookingStatus.PENDING and owns and approved
    if action == BookingAction.START:
        return status == BookingStatus.CONFIRMED and owns and approved
    if action == BookingAction.INITIATE_COMPLETION:
        return status == BookingStatus.IN_PROGRESS and owns and approved
    if action == BookingAction.VERIFY_COMPLETION:
        return status == BookingStatus.IN_PROGRESS and owns and booking.completion_challenge is not None
    if action == BookingAction.CANCEL:
        if actor.role == Role.CUSTOMER:
            return actor.user_id == booking.customer_id and status in (
                BookingStatus.PENDING,
                BookingStatus.IN_PROGRESS,
            )
        return owns and status == BookingStatus.IN_PROGRESS
    if action == BookingAction.EXPIRE:
        return actor.role == Role.SYSTEM and status == BookingStatus.PENDING
    return False


class BookingStateMachine:
    """Applies actor intents to booking snapshots."""

    def __init__(
        self,
        clock: Clock = system_clock,
        codes: CodeSource = secure_codes,
        policy: BookingPolicy | None = None,
    ) -> None:
        self.clock = clock
        self.codes = codes
        self.policy = policy or BookingPolicy()
        self._handlers: dict[BookingAction, Callable[..., Booking]] = {
            BookingAction.ACCEPT: self._accept,
            BookingAction.REJECT: self._reject,
            BookingAction.CANCEL: self._cancel,
            BookingAction.START: self._start,
            BookingAction.INITIATE_COMPLETION: self._initiate_completion,
            BookingAction.VERIFY_COMPLETION: self._verify_completion,
            BookingAction.EXPIRE: self._expire,
        }

    def permitted_actions(
        self,
        actor: Actor,
        booking: Booking,
        provider: Provider | None,
    ) -> frozenset[BookingAction]:
        return permitted_actions(actor, booking, provider, self.clock.now())

    def apply(
        self,
        booking: Booking,
        actor: Actor,
        action: BookingAction | str,
        payload: TransitionPayload | Mapping[str, Any] | None = None,
        provider: Provider | None = None,
    ) -> Booking:
        """Apply ``action`` and return the resulting booking.

        Args:
            booking: Current snapshot (never mutated)
            actor: Caller context
            action: Requested action
            payload: Reason text and/or completion code
            provider: Snapshot of the booking's provider

        Returns:
            Booking: New snapshot with ``updated_at`` stamped

        Raises:
            InvalidBookingStatus: No such transition from the current status
            UnauthorizedAction: Action not in the actor's permitted set
            InvariantViolation: Malformed payload
            CompletionChallengeError: Code verification failed; ``exc.booking``
                carries the snapshot to persist
        """
        try:
            action = BookingAction(action)
        except ValueError:
            raise InvariantViolation(f"Unknown booking action: {action}")

        now = self.clock.now()
        allowed = permitted_actions(actor, booking, provider, now)
        destination = next_status(booking.status, action)

        if action not in allowed:
            # A consumed code reads as "nothing outstanding", also after completion
            if (
                action == BookingAction.VERIFY_COMPLETION
                and actor.acts_for_provider(booking.provider_id)
                and booking.completion_challenge is None
                and booking.status in (BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED)
            ):
                raise NoOutstandingChallenge(booking)
            if destination is None:
                raise InvalidBookingStatus(invalid_state_message(booking.status, action))
            raise UnauthorizedAction(
                f"You are not allowed to {action.value.lower().replace('_', ' ')} this booking"
            )

        if destination is None or not _precondition_holds(booking, actor, action, provider):
            logger.error(
                f"TRANSITION_DRIFT: guard permitted {action.value} on booking {booking.id} "
                f"in status {booking.status.value} for {actor.role.value} {actor.user_id} "
                f"but the transition table refuses it"
            )
            raise InvalidBookingStatus(invalid_state_message(booking.status, action))

        data = self._parse_payload(payload)
        result = self._handlers[action](booking, actor, data, now)

        if result.status != destination:
            logger.error(
                f"TRANSITION_DRIFT: {action.value} on booking {booking.id} produced "
                f"{result.status.value}, table expects {destination.value}"
            )
            raise InvalidBookingStatus(invalid_state_message(booking.status, action))

        logger.info(
            f"Booking {booking.id}: {booking.status.value} -[{action.value}]-> "
            f"{result.status.value} by {actor.role.value} {actor.user_id}"
        )
        return result

    # ============ PAYLOAD ============

    def _parse_payload(
        self, payload: TransitionPayload | Mapping[str, Any] | None
    ) -> TransitionPayload:
        if payload is None:
            return TransitionPayload()
        if isinstance(payload, TransitionPayload):
            return payload
        try:
            return TransitionPayload.model_validate(dict(payload))
        except ValidationError as e:
            raise InvariantViolation(
                "Malformed transition payload",
                errors=e.errors(include_url=False, include_context=False),
            )

    def _evolve(self, booking: Booking, now: datetime, **changes: Any) -> Booking:
        stamped = max(now, booking.updated_at)
        try:
            return booking.evolve(updated_at=stamped, **changes)
        except ValidationError as e:
            logger.error(f"Booking {booking.id} transition would break an invariant: {e}")
            raise InvariantViolation(
                "Transition would leave the booking inconsistent",
                errors=e.errors(include_url=False, include_context=False),
            )

    # ============ HANDLERS ============

    def _accept(self, booking: Booking, actor: Actor, data: TransitionPayload, now: datetime) -> Booking:
        return self._evolve(booking, now, status=BookingStatus.CONFIRMED)

    def _reject(self, booking: Booking, actor: Actor, data: TransitionPayload, now: datetime) -> Booking:
        return self._evolve(
            booking,
            now,
            status=BookingStatus.REJECTED,
            rejection=Rejection(reason=data.reason, at=now),
        )

    def _cancel(self, booking: Booking, actor: Actor, data: TransitionPayload, now: datetime) -> Booking:
        return self._evolve(
            booking,
            now,
            status=BookingStatus.CANCELLED,
            completion_challenge=None,
            cancellation=Cancellation(
                cancelled_by=actor.user_id,
                cancelled_by_role=actor.role,
                reason=data.reason,
                at=now,
            ),
        )

    def _start(self, booking: Booking, actor: Actor, data: TransitionPayload, now: datetime) -> Booking:
        return self._evolve(booking, now, status=BookingStatus.IN_PROGRESS)

    def _initiate_completion(
        self, booking: Booking, actor: Actor, data: TransitionPayload, now: datetime
    ) -> Booking:
        challenge = issue_challenge(
            now,
            self.codes,
            ttl=self.policy.completion_code_ttl,
            length=self.policy.completion_code_length,
        )
        return self._evolve(booking, now, completion_challenge=challenge)

    def _verify_completion(
        self, booking: Booking, actor: Actor, data: TransitionPayload, now: datetime
    ) -> Booking:
        code = data.code
        if code is None or len(code) != self.policy.completion_code_length:
            raise InvariantViolation(
                f"A {self.policy.completion_code_length}-digit completion code is required"
            )

        result, kept = verify_challenge(
            booking.completion_challenge,
            code,
            now,
            max_attempts=self.policy.completion_max_attempts,
        )

        if result == VerificationResult.OK:
            return self._evolve(
                booking, now, status=BookingStatus.COMPLETED, completion_challenge=None
            )
        if result == VerificationResult.MISMATCH:
            updated = self._evolve(booking, now, completion_challenge=kept)
            logger.warning(
                f"Booking {booking.id}: completion code mismatch "
                f"({attempts_remaining(kept, self.policy.completion_max_attempts)} attempts left)"
            )
            raise CompletionCodeMismatch(
                updated, attempts_remaining(kept, self.policy.completion_max_attempts)
            )
        if result == VerificationResult.EXPIRED:
            raise CompletionCodeExpired(self._evolve(booking, now, completion_challenge=None))
        raise NoOutstandingChallenge(booking)

    def _expire(self, booking: Booking, actor: Actor, data: TransitionPayload, now: datetime) -> Booking:
        deadline = booking.scheduled_at + self.policy.pending_grace
        if now < deadline:
            raise InvalidBookingStatus(
                f"Booking cannot expire before {deadline.isoformat()}"
            )
        return self._evolve(booking, now, status=BookingStatus.EXPIRED)


def is_expiry_due(booking: Booking, now: datetime, grace: timedelta) -> bool:
    """Whether the sweep should expire ``booking``."""
    return booking.status == BookingStatus.PENDING and now >= booking.scheduled_at + grace
