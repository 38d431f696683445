"""Core utilities and security modules."""

from app.core.clock import Clock, CodeSource, FixedClock, SequenceCodeSource, system_clock
from app.core.exceptions import (
    AppException,
    AuthenticationError,
    CompletionChallengeError,
    CompletionCodeExpired,
    CompletionCodeMismatch,
    ConcurrentUpdateError,
    InvalidAppealStatus,
    InvalidBookingStatus,
    InvalidProviderStatus,
    InvariantViolation,
    NoOutstandingChallenge,
    NotFoundError,
    UnauthorizedAction,
)
from app.core.security import actor_from_token, create_access_token, verify_token

__all__ = [
    "Clock",
    "CodeSource",
    "FixedClock",
    "SequenceCodeSource",
    "system_clock",
    "AppException",
    "AuthenticationError",
    "CompletionChallengeError",
    "CompletionCodeExpired",
    "CompletionCodeMismatch",
    "ConcurrentUpdateError",
    "InvalidAppealStatus",
    "InvalidBookingStatus",
    "InvalidProviderStatus",
    "InvariantViolation",
    "NoOutstandingChallenge",
    "NotFoundError",
    "UnauthorizedAction",
    "actor_from_token",
    "create_access_token",
    "verify_token",
]
