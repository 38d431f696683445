"""API dependencies for authentication and service wiring."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config import settings
from app.core.clock import secure_codes, system_clock
from app.core.exceptions import UnauthorizedAction
from app.core.security import actor_from_token
from app.database import InMemoryDatabase, get_db
from app.domain.booking_state import BookingPolicy, BookingStateMachine
from app.domain.invoice import InvoiceRates
from app.models.user import Actor, Role
from app.services.booking_service import BookingService
from app.services.moderation_service import ModerationService
from app.services.notification_service import NotificationService, notification_service

# Security scheme
security = HTTPBearer()


async def get_current_actor(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> Actor:
    """Resolve the calling actor from the bearer token."""
    actor = actor_from_token(credentials.credentials)
    request.state.user_id = str(actor.user_id)
    return actor


async def get_current_admin(
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> Actor:
    """Get current actor and verify they are an admin."""
    if actor.role != Role.ADMIN:
        raise UnauthorizedAction("Admin access required")
    return actor


def get_notification_service() -> NotificationService:
    return notification_service


@lru_cache
def get_booking_service() -> BookingService:
    machine = BookingStateMachine(
        clock=system_clock,
        codes=secure_codes,
        policy=BookingPolicy.from_settings(settings),
    )
    return BookingService(machine, notification_service, InvoiceRates.from_settings(settings))


@lru_cache
def get_moderation_service() -> ModerationService:
    return ModerationService(notification_service, clock=system_clock)

