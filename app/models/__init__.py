"""Domain records."""

from app.models.booking import (
    TERMINAL_STATUSES,
    Booking,
    BookingStatus,
    Cancellation,
    CompletionChallenge,
    Rejection,
)
from app.models.provider import (
    Appeal,
    AppealStatus,
    AppealType,
    ModerationAuditRecord,
    Provider,
    ProviderStatus,
)
from app.models.user import SYSTEM_ACTOR, Actor, Role

__all__ = [
    "TERMINAL_STATUSES",
    "Booking",
    "BookingStatus",
    "Cancellation",
    "CompletionChallenge",
    "Rejection",
    "Appeal",
    "AppealStatus",
    "AppealType",
    "ModerationAuditRecord",
    "Provider",
    "ProviderStatus",
    "SYSTEM_ACTOR",
    "Actor",
    "Role",
]
