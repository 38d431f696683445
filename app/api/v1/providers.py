"""Provider moderation endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends

from app.api.deps import get_current_actor, get_current_admin, get_db, get_moderation_service
from app.database import InMemoryDatabase
from app.models.provider import ModerationAuditRecord, Provider
from app.models.user import Actor
from app.schemas.provider import ModerationAuditResponse, ProviderResponse, ProviderStatusUpdate
from app.services.moderation_service import ModerationService

router = APIRouter()


@router.get("/{provider_id}", response_model=ProviderResponse)
async def get_provider(
    provider_id: UUID,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[InMemoryDatabase, Depends(get_db)],
    service: Annotated[ModerationService, Depends(get_moderation_service)],
) -> Provider:
    """Get a provider's moderation status."""
    return service.get_provider(db, provider_id)


# ============ MODERATION ============


@router.put("/{provider_id}/status", response_model=ProviderResponse)
async def set_provider_status(
    provider_id: UUID,
    request: ProviderStatusUpdate,
    admin: Annotated[Actor, Depends(get_current_admin)],
    db: Annotated[InMemoryDatabase, Depends(get_db)],
    service: Annotated[ModerationService, Depends(get_moderation_service)],
) -> Provider:
    """Approve, reject, suspend or restore a provider."""
    return service.set_provider_status(db, provider_id, request.status, admin, request.reason)


@router.get("/{provider_id}/audit", response_model=list[ModerationAuditResponse])
async def get_provider_audit(
    provider_id: UUID,
    admin: Annotated[Actor, Depends(get_current_admin)],
    db: Annotated[InMemoryDatabase, Depends(get_db)],
    service: Annotated[ModerationService, Depends(get_moderation_service)],
) -> list[ModerationAuditRecord]:
    """Moderation history of a provider, oldest first."""
    service.get_provider(db, provider_id)
    return service.list_audit_records(db, admin, provider_id)
