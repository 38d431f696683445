"""Provider appeal endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status

from app.api.deps import get_current_actor, get_current_admin, get_db, get_moderation_service
from app.database import InMemoryDatabase
from app.models.provider import Appeal
from app.models.user import Actor
from app.schemas.provider import AppealCreate, AppealResponse, AppealReview
from app.services.moderation_service import ModerationService

router = APIRouter()


@router.post("", response_model=AppealResponse, status_code=status.HTTP_201_CREATED)
async def submit_appeal(
    request: AppealCreate,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[InMemoryDatabase, Depends(get_db)],
    service: Annotated[ModerationService, Depends(get_moderation_service)],
) -> Appeal:
    """Appeal a suspension or rejection of the caller's provider account."""
    return service.submit_appeal(db, actor, request.type, request.reason, request.details)


@router.get("", response_model=list[AppealResponse])
async def list_appeals(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[InMemoryDatabase, Depends(get_db)],
    service: Annotated[ModerationService, Depends(get_moderation_service)],
    provider_id: UUID | None = None,
) -> list[Appeal]:
    """Admins see all appeals; providers see their own."""
    return service.list_appeals(db, actor, provider_id)


@router.post("/{appeal_id}/review", response_model=AppealResponse)
async def review_appeal(
    appeal_id: UUID,
    request: AppealReview,
    admin: Annotated[Actor, Depends(get_current_admin)],
    db: Annotated[InMemoryDatabase, Depends(get_db)],
    service: Annotated[ModerationService, Depends(get_moderation_service)],
) -> Appeal:
    """Record a decision. Approving restores the provider's status."""
    return service.review_appeal(db, appeal_id, admin, request.status, request.admin_notes)
