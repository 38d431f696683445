"""Notification endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_current_actor, get_notification_service
from app.models.user import Actor, Role
from app.services.notification_service import Notification, NotificationService

router = APIRouter()


@router.get("", response_model=list[Notification])
async def get_notifications(
    actor: Annotated[Actor, Depends(get_current_actor)],
    service: Annotated[NotificationService, Depends(get_notification_service)],
    limit: int = Query(default=20, ge=1, le=100),
) -> list[Notification]:
    """Caller's in-app notifications, newest first."""
    recipient_id = actor.provider_id if actor.role == Role.PROVIDER else actor.user_id
    notifications = service.inbox(recipient_id)
    return sorted(notifications, key=lambda n: n.created_at, reverse=True)[:limit]
