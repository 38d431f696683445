"""Provider moderation and appeal service."""

import logging
from uuid import UUID

from app.core.clock import Clock, system_clock
from app.core.exceptions import NotFoundError, UnauthorizedAction
from app.database import InMemoryDatabase
from app.domain.appeal_state import APPEAL_RESTORES, open_appeal, review_appeal
from app.domain.events import appeal_reviewed, appeal_submitted, events_for_moderation
from app.domain.moderation_state import assert_provider_transition, set_provider_status
from app.models.provider import (
    Appeal,
    AppealStatus,
    AppealType,
    ModerationAuditRecord,
    Provider,
    ProviderStatus,
)
from app.models.user import Actor, Role
from app.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


class ModerationService:
    """Service for admin moderation of providers and provider appeals."""

    def __init__(self, notifications: NotificationService, clock: Clock = system_clock) -> None:
        self.notifications = notifications
        self.clock = clock

    # ============ PROVIDERS ============

    def get_provider(self, db: InMemoryDatabase, provider_id: UUID) -> Provider:
        provider = db.get_provider(provider_id)
        if provider is None:
            raise NotFoundError("Provider", str(provider_id))
        return provider

    def set_provider_status(
        self,
        db: InMemoryDatabase,
        provider_id: UUID,
        new_status: ProviderStatus,
        actor: Actor,
        reason: str | None = None,
        appeal: Appeal | None = None,
    ) -> Provider:
        """Move a provider to ``new_status`` and append the audit record.

        Bookings already in flight are left untouched; the guard reads the
        new status on their next action.
        """
        provider = self.get_provider(db, provider_id)
        updated, record = set_provider_status(
            provider, new_status, actor, reason, self.clock.now(), appeal
        )
        db.commit_provider_change(updated, provider.status, record)
        self.notifications.publish(events_for_moderation(record))
        return updated

    def list_audit_records(
        self, db: InMemoryDatabase, actor: Actor, provider_id: UUID | None = None
    ) -> list[ModerationAuditRecord]:
        if actor.role != Role.ADMIN:
            raise UnauthorizedAction("Admin access required")
        return db.list_audit_records(provider_id)

    # ============ APPEALS ============

    def submit_appeal(
        self,
        db: InMemoryDatabase,
        actor: Actor,
        appeal_type: AppealType,
        reason: str,
        details: str | None = None,
    ) -> Appeal:
        """File an appeal for the calling provider's own account."""
        if actor.role != Role.PROVIDER or actor.provider_id is None:
            raise UnauthorizedAction("Only providers can submit appeals")

        provider = self.get_provider(db, actor.provider_id)
        appeal = open_appeal(
            actor,
            provider,
            appeal_type,
            reason,
            details,
            self.clock.now(),
            existing=db.list_appeals(provider.id),
        )
        db.add_appeal(appeal)

        logger.info(f"Appeal {appeal.id} ({appeal_type.value}) submitted for provider {provider.id}")
        self.notifications.publish([appeal_submitted(appeal)])
        return appeal

    def get_appeal(self, db: InMemoryDatabase, appeal_id: UUID) -> Appeal:
        appeal = db.get_appeal(appeal_id)
        if appeal is None:
            raise NotFoundError("Appeal", str(appeal_id))
        return appeal

    def list_appeals(
        self, db: InMemoryDatabase, actor: Actor, provider_id: UUID | None = None
    ) -> list[Appeal]:
        """Admins see every appeal, providers only their own."""
        if actor.role == Role.ADMIN:
            return db.list_appeals(provider_id)
        if actor.role == Role.PROVIDER and actor.provider_id is not None:
            return db.list_appeals(actor.provider_id)
        raise UnauthorizedAction("Admin access required")

    def review_appeal(
        self,
        db: InMemoryDatabase,
        appeal_id: UUID,
        actor: Actor,
        decision: AppealStatus,
        admin_notes: str | None = None,
    ) -> Appeal:
        """Record an admin decision; approval restores the provider.

        The provider edge is checked before the decision is stored, so an
        approval never lands without its status change being possible.
        """
        appeal = self.get_appeal(db, appeal_id)
        reviewed = review_appeal(appeal, actor, decision, admin_notes, self.clock.now())

        restore_to: ProviderStatus | None = None
        if reviewed.status == AppealStatus.APPROVED:
            provider = self.get_provider(db, appeal.provider_id)
            restore_to = APPEAL_RESTORES[appeal.type]
            assert_provider_transition(provider.status, restore_to, reviewed)

        db.compare_and_swap_appeal(reviewed, appeal.status)
        logger.info(f"Appeal {appeal.id}: {appeal.status.value} → {reviewed.status.value} by admin {actor.user_id}")
        self.notifications.publish([appeal_reviewed(reviewed)])

        if restore_to is not None:
            self.set_provider_status(
                db,
                appeal.provider_id,
                restore_to,
                actor,
                reason=f"Appeal {appeal.id} approved",
                appeal=reviewed,
            )
        return reviewed
