"""Custom application exceptions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import HTTPException, status

if TYPE_CHECKING:
    from app.models.booking import Booking


class AppException(HTTPException):
    """Base application exception."""

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "An unexpected error occurred",
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class NotFoundError(AppException):
    """Resource not found exception."""

    def __init__(self, resource: str = "Resource", identifier: str | None = None) -> None:
        detail = f"{resource} not found"
        if identifier:
            detail = f"{resource} with ID '{identifier}' not found"
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class AuthenticationError(AppException):
    """Authentication failed exception."""

    def __init__(self, detail: str = "Authentication failed") -> None:
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class UnauthorizedAction(AppException):
    """The action is absent from the actor's permitted set."""

    def __init__(self, detail: str = "You are not allowed to perform this action") -> None:
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class InvalidBookingStatus(AppException):
    """Invalid booking status for operation."""

    def __init__(self, detail: str = "This operation is not allowed for the current booking status") -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class InvariantViolation(AppException):
    """Malformed payload or a record that would break a domain invariant."""

    def __init__(self, detail: str = "Request violates a booking invariant", errors: list[dict[str, Any]] | None = None) -> None:
        self.errors = errors
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)


class ConcurrentUpdateError(AppException):
    """Another transition won the race for this record."""

    def __init__(self, detail: str = "This booking was changed by someone else. Please refresh and try again.") -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class InvalidProviderStatus(AppException):
    """Provider moderation transition not allowed."""

    def __init__(self, detail: str = "This provider status change is not allowed") -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class InvalidAppealStatus(AppException):
    """Appeal operation not allowed in the current appeal state."""

    def __init__(self, detail: str = "This appeal cannot be changed") -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class RateLimitExceeded(AppException):
    """Rate limit exceeded exception."""

    def __init__(self, detail: str = "Too many requests. Please try again later.") -> None:
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=detail,
            headers={"Retry-After": "60"},
        )


# ============ COMPLETION CHALLENGE ============


class CompletionChallengeError(AppException):
    """Base for completion code failures.

    ``booking`` holds the snapshot the failure produced (attempt counter
    bumped, stale code cleared). Callers must persist it before surfacing
    the error, otherwise the attempt limit could be bypassed.
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        booking: "Booking | None" = None,
    ) -> None:
        self.booking = booking
        super().__init__(status_code=status_code, detail=detail)


class CompletionCodeMismatch(CompletionChallengeError):
    """Supplied code does not match the outstanding challenge."""

    def __init__(self, booking: "Booking | None" = None, attempts_remaining: int = 0) -> None:
        self.attempts_remaining = attempts_remaining
        if attempts_remaining > 0:
            detail = f"Invalid completion code. {attempts_remaining} attempt(s) remaining."
        else:
            detail = "Invalid completion code. Too many failed attempts, please request a new code."
        super().__init__(status.HTTP_400_BAD_REQUEST, detail, booking)


class CompletionCodeExpired(CompletionChallengeError):
    """Outstanding challenge has outlived its TTL."""

    def __init__(self, booking: "Booking | None" = None) -> None:
        super().__init__(
            status.HTTP_410_GONE,
            "The completion code has expired. Please request a new code.",
            booking,
        )


class NoOutstandingChallenge(CompletionChallengeError):
    """No completion code has been issued, or it was already used."""

    def __init__(self, booking: "Booking | None" = None) -> None:
        super().__init__(
            status.HTTP_409_CONFLICT,
            "Completion has not been initiated for this booking",
            booking,
        )
